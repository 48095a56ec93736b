"""
Reasoning Models - Steps, citations and the chain record

WHAT: Pydantic models for one orchestration run and its trace
WHERE: aimcore/runtime/orchestration/models.py - data layer of the engine
WHO: OrchestrationEngine (sole builder), chain repositories, auditors
TIME: Model validation <1ms

A ReasoningChain is created once per query, appended to while the nodes
run, and persisted once in a terminal state. Steps are frozen: a step is
only materialized after its node has completed or failed.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..memory.models import utcnow
from ..verification.models import VerificationResult


class NodeKind(str, Enum):
    """Node types of the reasoning state machine."""

    PLAN = "PLAN"
    RETRIEVE = "RETRIEVE"
    CONDENSE = "CONDENSE"
    REASON = "REASON"
    CRITIC = "CRITIC"
    VERIFY = "VERIFY"
    AUDITPACK = "AUDITPACK"
    REFLECT = "REFLECT"


StepStatus = Literal["pending", "running", "completed", "failed"]
ChainStatus = Literal["completed", "failed", "cancelled"]
AgentRole = Literal["planner", "retriever", "composer", "verifier"]


class ReasoningStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_kind: NodeKind
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: float = Field(ge=0.0, default=0.0)
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    status: StepStatus = "completed"
    agent_id: str
    tokens: int = Field(ge=0, default=0)
    timestamp: datetime = Field(default_factory=utcnow)


class Citation(BaseModel):
    citation_id: str
    quote: str
    score: float = 0.0


class HealingEvent(BaseModel):
    event: str
    resolution: str
    timestamp: datetime = Field(default_factory=utcnow)


class AgentRecord(BaseModel):
    id: str
    role: AgentRole
    actions: List[str] = Field(default_factory=list)
    status: Literal["idle", "working", "completed"] = "completed"


class ReasoningChain(BaseModel):
    """Output of one orchestration run, including the full step trace."""

    trace_id: str
    user_query: str
    steps: List[ReasoningStep] = Field(default_factory=list)
    agents: List[AgentRecord] = Field(default_factory=list)
    token_budget: int
    tokens_used: int = 0
    final_answer: str = ""
    support: List[Citation] = Field(default_factory=list)
    assumptions: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    provenance_coverage: float = Field(ge=0.0, le=1.0, default=0.0)
    semantic_entropy: Optional[float] = None
    logit_variance: Optional[float] = None
    healing_events: List[HealingEvent] = Field(default_factory=list)
    verification: Optional[VerificationResult] = None
    audit_hash: Optional[str] = None
    iterations: int = 0
    budget_exhausted: bool = False
    status: ChainStatus = "completed"
    duration_ms: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)

    def steps_of(self, kind: NodeKind) -> List[ReasoningStep]:
        return [s for s in self.steps if s.node_kind == kind]

    @property
    def node_sequence(self) -> List[str]:
        return [s.node_kind.value for s in self.steps]

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(mode="json")
        doc["_key"] = self.trace_id
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> ReasoningChain:
        return cls.model_validate({k: v for k, v in doc.items() if not k.startswith("_")})


__all__ = [
    "NodeKind",
    "StepStatus",
    "ChainStatus",
    "AgentRole",
    "ReasoningStep",
    "Citation",
    "HealingEvent",
    "AgentRecord",
    "ReasoningChain",
]
