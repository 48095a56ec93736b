"""
Orchestration Engine - Plan, retrieve, reason, verify, audit, reflect

WHAT: Bounded state machine turning a query into an auditable ReasoningChain
WHERE: aimcore/runtime/orchestration/ - above memory and verification
WHO: Callers answering questions over the memory store
TIME: One completion call per REASON iteration (per sample when sampling)

Node order:
PLAN → RETRIEVE → CONDENSE → REASON → VERIFY → (CRITIC → REASON)* → AUDITPACK → REFLECT

Boundary Notes:
- Provider failures become failed steps; fatal faults become partial chains
- The audit hash covers trace id, steps and agents preceding AUDITPACK
"""

from .audit import compute_audit_hash, verify_audit  # noqa: F401
from .chain_store import ArangoChainRepository, ChainRepository, InMemoryChainRepository  # noqa: F401
from .config import ChainConfig  # noqa: F401
from .engine import (  # noqa: F401
    CancellationToken,
    ChainCancelledError,
    ChainState,
    OrchestrationEngine,
    PipelineContext,
)
from .models import (  # noqa: F401
    AgentRecord,
    Citation,
    HealingEvent,
    NodeKind,
    ReasoningChain,
    ReasoningStep,
)
from .provider import (  # noqa: F401
    Completion,
    CompletionProvider,
    ProviderError,
    ProviderTimeoutError,
    TemplateCompletionProvider,
    TimeoutCompletionProvider,
)

__all__ = [
    "AgentRecord",
    "ArangoChainRepository",
    "CancellationToken",
    "ChainCancelledError",
    "ChainConfig",
    "ChainRepository",
    "ChainState",
    "Citation",
    "Completion",
    "CompletionProvider",
    "HealingEvent",
    "InMemoryChainRepository",
    "NodeKind",
    "OrchestrationEngine",
    "PipelineContext",
    "ProviderError",
    "ProviderTimeoutError",
    "ReasoningChain",
    "ReasoningStep",
    "TemplateCompletionProvider",
    "TimeoutCompletionProvider",
    "compute_audit_hash",
    "verify_audit",
]
