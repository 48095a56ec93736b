"""
Orchestration Engine - Bounded reasoning state machine over the memory store

WHAT: Executes PLAN → RETRIEVE → CONDENSE → REASON → VERIFY → AUDITPACK → REFLECT
WHERE: aimcore/runtime/orchestration/engine.py - top of the runtime stack
WHO: Entry point for every query answered by the pipeline
TIME: Dominated by the completion provider; everything else is in-process

One ReasoningChain is built per query. Failed verification loops back
through CRITIC → REASON until ``max_iterations`` REASON steps have run.
The token budget is checked before every node. The node that crosses it
is the last one charged: the chain then skips straight to an uncharged
AUDITPACK seal with degraded confidence and no REFLECT.

Boundary Notes:
- ``execute_chain`` never raises: fatal faults yield a partial chain with
  ``status="failed"``, cancellation yields ``status="cancelled"``
- Cancellation is cooperative and checked between nodes, never mid-node
- Collaborators come from an explicit PipelineContext, no module singletons
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..memory.memory_store import MemoryStore
from ..memory.models import MemoryRecord, RetrievalQuery, utcnow
from ..memory.tokens import TokenCounter
from ..telemetry import NoOpTelemetryClient, TelemetryClient
from ..verification.framework import VerificationFramework
from ..verification.models import VerificationResult
from .audit import compute_audit_hash
from .chain_store import ChainRepository, InMemoryChainRepository
from .config import ChainConfig
from .models import Citation, HealingEvent, NodeKind, ReasoningChain, ReasoningStep, StepStatus
from .nodes import (
    AUDIT_CONFIDENCE,
    CONDENSE_CONFIDENCE,
    CRITIC_CONFIDENCE,
    EMPTY_RETRIEVE_CONFIDENCE,
    PLAN_CONFIDENCE,
    REFLECT_CONFIDENCE,
    RETRIEVE_CONFIDENCE,
    VERIFY_FAIL_CONFIDENCE,
    VERIFY_PASS_CONFIDENCE,
    average_score,
    build_agents,
    build_citations,
    condense,
    decompose_query,
    extract_tags,
    reasoning_confidence,
    serialize_output,
)
from .prompting import compose_reason_prompt
from .provider import (
    Completion,
    CompletionProvider,
    ProviderError,
    TemplateCompletionProvider,
    TimeoutCompletionProvider,
    invoke_provider,
)

logger = logging.getLogger(__name__)

NODE_AGENTS = {
    NodeKind.PLAN: "planner",
    NodeKind.RETRIEVE: "retriever",
    NodeKind.CONDENSE: "retriever",
    NodeKind.REASON: "composer",
    NodeKind.VERIFY: "verifier",
    NodeKind.CRITIC: "verifier",
    NodeKind.AUDITPACK: "verifier",
    NodeKind.REFLECT: "composer",
}

REFLECTION_TAGS = ["reasoning", "meta-memory", "reasoning-chain"]
REFLECTION_SOURCE = "chain-reflection"
UNCITED_ASSUMPTION = "No supporting memories retrieved; answer is uncited"
CRITIC_SUGGESTION = "Increase retrieval limit and re-reason"
FAILED_ANSWER = "Error during reasoning"


class ChainCancelledError(RuntimeError):
    """Raised between nodes once the chain's CancellationToken is set."""


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and one chain."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ChainCancelledError("chain execution cancelled")


class ChainState(str, Enum):
    PLANNING = "planning"
    RETRIEVING = "retrieving"
    CONDENSING = "condensing"
    REASONING = "reasoning"
    VERIFYING = "verifying"
    CRITIQUING = "critiquing"
    AUDITING = "auditing"
    REFLECTING = "reflecting"
    DONE = "done"


@dataclass(slots=True)
class PipelineContext:
    """Collaborators one engine runs against; build one per configuration."""

    memory_store: MemoryStore = field(default_factory=MemoryStore)
    provider: CompletionProvider = field(default_factory=TemplateCompletionProvider)
    verifier: VerificationFramework = field(default_factory=VerificationFramework)
    chains: ChainRepository = field(default_factory=InMemoryChainRepository)
    telemetry: TelemetryClient = field(default_factory=NoOpTelemetryClient)
    token_counter: Optional[TokenCounter] = None
    clock: Callable[[], datetime] = utcnow


@dataclass(slots=True)
class _NodeFrame:
    kind: NodeKind
    inputs: Dict[str, Any]
    degraded: bool
    output: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0
    status: StepStatus = "completed"


@dataclass(slots=True)
class _ChainRun:
    chain: ReasoningChain
    config: ChainConfig
    cancel: CancellationToken
    state: ChainState = ChainState.PLANNING
    iteration: int = 0
    subtasks: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    memories: List[MemoryRecord] = field(default_factory=list)
    used: List[MemoryRecord] = field(default_factory=list)
    context: str = ""
    critique: Optional[str] = None
    verification: Optional[VerificationResult] = None

    @property
    def remaining(self) -> int:
        return self.config.token_budget - self.chain.tokens_used


def generate_trace_id(query: str, at: datetime) -> str:
    digest = hashlib.sha256(f"{query}|{at.isoformat()}".encode("utf-8")).hexdigest()
    return f"trace_{digest[:16]}_{uuid.uuid4().hex[:8]}"


class OrchestrationEngine:
    """Runs reasoning chains against a PipelineContext."""

    def __init__(self, context: PipelineContext | None = None, *, config: ChainConfig | None = None) -> None:
        self._ctx = context or PipelineContext()
        self._config = config or ChainConfig()
        self._tokens = self._ctx.token_counter or self._ctx.memory_store.token_counter
        self._handlers: Dict[ChainState, Callable[[_ChainRun], ChainState]] = {
            ChainState.PLANNING: self._plan,
            ChainState.RETRIEVING: self._retrieve,
            ChainState.CONDENSING: self._condense,
            ChainState.REASONING: self._reason,
            ChainState.VERIFYING: self._verify,
            ChainState.CRITIQUING: self._critique,
            ChainState.AUDITING: self._audit,
            ChainState.REFLECTING: self._reflect,
        }

    @property
    def context(self) -> PipelineContext:
        return self._ctx

    @property
    def config(self) -> ChainConfig:
        return self._config

    # ============================================================
    # Public API
    # ============================================================

    def execute_chain(
        self,
        user_query: str,
        config: ChainConfig | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ReasoningChain:
        """
        Answer ``user_query`` and return the full reasoning chain.

        Args:
            user_query: question to answer
            config: per-call override of the engine's ChainConfig
            cancel_token: checked between nodes

        Returns:
            A ReasoningChain in a terminal status. Judge quality from
            ``confidence``, ``provenance_coverage`` and ``healing_events``.
        """
        cfg = config or self._config
        started_at = self._ctx.clock()
        chain = ReasoningChain(
            trace_id=generate_trace_id(user_query, started_at),
            user_query=user_query,
            token_budget=cfg.token_budget,
            created_at=started_at,
        )
        run = _ChainRun(chain=chain, config=cfg, cancel=cancel_token or CancellationToken())
        logger.info(f"Starting chain {chain.trace_id} budget={cfg.token_budget}")
        t0 = time.perf_counter()

        with self._ctx.telemetry.span("chain.execute", attributes={"trace_id": chain.trace_id}) as span:
            try:
                self._drive(run)
                chain.status = "completed"
            except ChainCancelledError:
                logger.warning(f"Chain {chain.trace_id} cancelled in state {run.state.value}")
                self._finish_partial(
                    run,
                    status="cancelled",
                    event="Chain execution cancelled",
                    resolution="Returning steps completed before cancellation",
                )
            except Exception as exc:
                logger.exception(f"Chain {chain.trace_id} failed in state {run.state.value}")
                self._finish_partial(
                    run,
                    status="failed",
                    event=f"Chain execution failed: {type(exc).__name__}: {exc}",
                    resolution="Returning partial chain with zero confidence",
                )
            chain.agents = build_agents(chain.steps)
            chain.duration_ms = (time.perf_counter() - t0) * 1000.0
            span.set_attribute("status", chain.status)
            span.set_attribute("steps", len(chain.steps))
            span.set_attribute("tokens_used", chain.tokens_used)
            span.set_attribute("iterations", chain.iterations)

        self._persist(chain)
        logger.info(
            f"Chain {chain.trace_id} {chain.status}: confidence={chain.confidence:.2f} "
            f"κ={chain.provenance_coverage:.2f} tokens={chain.tokens_used}/{chain.token_budget}"
        )
        return chain

    def verify_chain(self, chain: ReasoningChain) -> VerificationResult:
        return self._ctx.verifier.verify_chain(chain)

    def get_chain(self, trace_id: str) -> Optional[ReasoningChain]:
        return self._ctx.chains.get_chain(trace_id)

    # ============================================================
    # State machine
    # ============================================================

    def _drive(self, run: _ChainRun) -> None:
        while run.state is not ChainState.DONE:
            run.cancel.raise_if_cancelled()
            if run.remaining <= 0 and run.state is not ChainState.AUDITING:
                run.state = self._exhaust_budget(run)
                continue
            run.state = self._handlers[run.state](run)

    def _finish_partial(self, run: _ChainRun, *, status: str, event: str, resolution: str) -> None:
        chain = run.chain
        chain.status = status
        chain.confidence = 0.0
        chain.provenance_coverage = 0.0
        if status == "failed":
            chain.final_answer = FAILED_ANSWER
        chain.healing_events.append(HealingEvent(event=event, resolution=resolution, timestamp=self._ctx.clock()))

    def _persist(self, chain: ReasoningChain) -> None:
        try:
            self._ctx.chains.save_chain(chain)
        except Exception:
            logger.exception(f"Failed to persist chain {chain.trace_id}")

    @contextmanager
    def _node(self, run: _ChainRun, kind: NodeKind, inputs: Dict[str, Any]) -> Iterator[_NodeFrame]:
        frame = _NodeFrame(kind=kind, inputs=inputs, degraded=run.remaining <= 0)
        if frame.degraded:
            self._note_budget_exhausted(run)
        started = time.perf_counter()
        with self._ctx.telemetry.span(
            f"chain.node.{kind.value.lower()}",
            attributes={"trace_id": run.chain.trace_id, "iteration": run.iteration},
        ) as span:
            yield frame
            step = self._commit(run, frame, (time.perf_counter() - started) * 1000.0)
            span.set_attribute("tokens", step.tokens)
            span.set_attribute("status", step.status)
            span.set_attribute("degraded", frame.degraded)
        logger.debug(f"{kind.value} done: confidence={step.confidence:.2f} tokens={step.tokens}")

    def _commit(self, run: _ChainRun, frame: _NodeFrame, duration_ms: float) -> ReasoningStep:
        # the seal written after exhaustion is never charged
        tokens = 0 if frame.degraded else self._tokens.count(serialize_output(frame.output))
        confidence = frame.confidence
        if frame.degraded:
            confidence *= run.config.budget_degradation
        step = ReasoningStep(
            node_kind=frame.kind,
            input=frame.inputs,
            output=frame.output,
            duration_ms=duration_ms,
            confidence=max(0.0, min(1.0, confidence)),
            status=frame.status,
            agent_id=NODE_AGENTS[frame.kind],
            tokens=tokens,
            timestamp=self._ctx.clock(),
        )
        run.chain.steps.append(step)
        run.chain.tokens_used += tokens
        return step

    def _note_budget_exhausted(self, run: _ChainRun) -> None:
        chain = run.chain
        if chain.budget_exhausted:
            return
        chain.budget_exhausted = True
        chain.confidence *= run.config.budget_degradation
        logger.warning(f"Chain {chain.trace_id} exhausted its token budget ({chain.tokens_used}/{chain.token_budget})")
        chain.healing_events.append(
            HealingEvent(
                event=f"Token budget exhausted ({chain.tokens_used}/{chain.token_budget} tokens)",
                resolution="Sealing chain with degraded confidence",
                timestamp=self._ctx.clock(),
            )
        )

    def _exhaust_budget(self, run: _ChainRun) -> ChainState:
        """Route an over-budget chain to its seal, skipping loop nodes and REFLECT."""
        self._note_budget_exhausted(run)
        if run.chain.audit_hash is None:
            logger.info(f"Chain {run.chain.trace_id} skipping {run.state.value}; sealing audit pack")
            return ChainState.AUDITING
        return ChainState.DONE

    # ============================================================
    # Nodes
    # ============================================================

    def _plan(self, run: _ChainRun) -> ChainState:
        query = run.chain.user_query
        with self._node(run, NodeKind.PLAN, {"query": query}) as node:
            run.subtasks = decompose_query(query)
            node.output = {"subtasks": run.subtasks}
            node.confidence = PLAN_CONFIDENCE
        return ChainState.RETRIEVING

    def _retrieve(self, run: _ChainRun) -> ChainState:
        cfg = run.config
        query = run.chain.user_query
        run.tags = extract_tags(query)
        inputs = {"query": query, "tags": run.tags, "limit": cfg.retrieval_limit}
        with self._node(run, NodeKind.RETRIEVE, inputs) as node:
            run.memories = self._ctx.memory_store.retrieve_memories(
                RetrievalQuery(
                    query=query,
                    tags=run.tags or None,
                    limit=cfg.retrieval_limit,
                    session_id=cfg.session_id,
                )
            )
            node.output = {
                "tags": run.tags,
                "memory_ids": [m.id for m in run.memories],
                "scores": [round(m.retrieval_score or 0.0, 6) for m in run.memories],
                "count": len(run.memories),
            }
            node.confidence = RETRIEVE_CONFIDENCE if run.memories else EMPTY_RETRIEVE_CONFIDENCE
        if not run.memories:
            logger.warning(f"Chain {run.chain.trace_id} retrieved no memories for tags {run.tags}")
        return ChainState.CONDENSING

    def _condense(self, run: _ChainRun) -> ChainState:
        ceiling = run.config.condense_ratio * max(run.remaining, 0)
        with self._node(run, NodeKind.CONDENSE, {"candidates": len(run.memories), "ceiling": ceiling}) as node:
            run.context, context_tokens, run.used = condense(run.memories, ceiling)
            node.output = {
                "memory_ids": [m.id for m in run.used],
                "context_tokens": context_tokens,
                "dropped": len(run.memories) - len(run.used),
            }
            node.confidence = CONDENSE_CONFIDENCE
        return ChainState.REASONING

    def _reason(self, run: _ChainRun) -> ChainState:
        chain = run.chain
        cfg = run.config
        run.iteration += 1
        chain.iterations = run.iteration
        prompt = compose_reason_prompt(
            query=chain.user_query,
            context=run.context,
            subtasks=run.subtasks,
            critique=run.critique,
        )
        constraints = {
            "query": chain.user_query,
            "memory_count": len(run.memories),
            "average_score": average_score(run.memories),
            "max_tokens": max(run.remaining, 0),
            "temperature": cfg.temperature_ladder[0],
        }
        inputs = {"iteration": run.iteration, "prompt_chars": len(prompt), "critique": run.critique}

        with self._node(run, NodeKind.REASON, inputs) as node:
            try:
                completions = self._sample(prompt, run.context, constraints, cfg)
            except ProviderError as exc:
                logger.warning(f"Completion provider failed on iteration {run.iteration}: {exc}")
                chain.healing_events.append(
                    HealingEvent(
                        event=f"Completion provider failed: {exc}",
                        resolution="Recorded failed REASON step; continuing degraded",
                        timestamp=self._ctx.clock(),
                    )
                )
                node.status = "failed"
                node.output = {"error": str(exc), "error_type": type(exc).__name__}
                node.confidence = 0.0
            else:
                citations = build_citations(run.used, cfg.citation_count, cfg.citation_preview_chars)
                self._apply_answer(run, completions, citations)
                node.output = {
                    "answer": chain.final_answer,
                    "citations": [c.citation_id for c in citations],
                    "samples": len(completions),
                    "provider_tokens": sum(c.tokens_used for c in completions),
                }
                node.confidence = reasoning_confidence(run.memories, len(citations))

        chain.confidence = chain.steps[-1].confidence
        return ChainState.VERIFYING

    def _sample(
        self,
        prompt: str,
        context: str,
        constraints: Dict[str, Any],
        cfg: ChainConfig,
    ) -> List[Completion]:
        provider = self._ctx.provider
        if cfg.provider_timeout_s:
            provider = TimeoutCompletionProvider(provider, cfg.provider_timeout_s)
        if cfg.entropy_samples == 1:
            return [invoke_provider(provider, prompt, context, constraints)]
        ladder = cfg.temperature_ladder
        return [
            invoke_provider(provider, prompt, context, {**constraints, "temperature": ladder[i % len(ladder)]})
            for i in range(cfg.entropy_samples)
        ]

    def _apply_answer(self, run: _ChainRun, completions: List[Completion], citations: List[Citation]) -> None:
        chain = run.chain
        chain.final_answer = completions[0].text.strip()
        chain.support = citations
        if not citations and UNCITED_ASSUMPTION not in chain.assumptions:
            chain.assumptions.append(UNCITED_ASSUMPTION)
        if len(completions) < 2:
            return
        verifier = self._ctx.verifier
        chain.semantic_entropy = verifier.calculate_semantic_entropy([c.text for c in completions])
        logprobs = [c.logprobs for c in completions if c.logprobs]
        if len(logprobs) == len(completions) and len({len(lp) for lp in logprobs}) == 1:
            chain.logit_variance = verifier.calculate_logit_variance(logprobs)

    def _verifier_for(self, cfg: ChainConfig) -> VerificationFramework:
        verifier = self._ctx.verifier
        if verifier.thresholds.min_provenance == cfg.min_provenance:
            return verifier
        return VerificationFramework(replace(verifier.thresholds, min_provenance=cfg.min_provenance))

    def _verify(self, run: _ChainRun) -> ChainState:
        chain = run.chain
        cfg = run.config
        with self._node(run, NodeKind.VERIFY, {"iteration": run.iteration, "citations": len(chain.support)}) as node:
            verifier = self._verifier_for(cfg)
            chain.provenance_coverage = verifier.calculate_provenance_coverage(chain.final_answer, chain.support)
            result = verifier.verify_chain(chain)
            passed = chain.provenance_coverage >= cfg.min_provenance
            meets_confidence = chain.confidence >= cfg.min_confidence
            node.output = {
                "passed": passed,
                "provenance_coverage": chain.provenance_coverage,
                "meets_confidence": meets_confidence,
                "confidence_level": result.confidence_level,
                "calibration_score": result.calibration_score,
                "issues": result.issues,
            }
            node.confidence = VERIFY_PASS_CONFIDENCE if passed else VERIFY_FAIL_CONFIDENCE
        chain.verification = result
        run.verification = result

        if not meets_confidence:
            logger.info(f"Confidence {chain.confidence:.2f} below minimum {cfg.min_confidence}")
        if passed:
            return ChainState.AUDITING
        logger.warning(f"Verification failed on iteration {run.iteration} (κ={chain.provenance_coverage:.2f})")
        if not cfg.enable_self_correction:
            return ChainState.AUDITING
        if run.iteration < cfg.max_iterations:
            return ChainState.CRITIQUING
        chain.healing_events.append(
            HealingEvent(
                event=f"Self-correction exhausted after {run.iteration} iterations",
                resolution="Returning last answer without verification",
                timestamp=self._ctx.clock(),
            )
        )
        return ChainState.AUDITING

    def _critique(self, run: _ChainRun) -> ChainState:
        chain = run.chain
        issues = list(run.verification.issues) if run.verification else []
        with self._node(run, NodeKind.CRITIC, {"iteration": run.iteration, "issues": issues}) as node:
            chain.healing_events.append(
                HealingEvent(
                    event=f"Verification failed (κ={chain.provenance_coverage:.2f})",
                    resolution="Re-reasoning with adjusted parameters",
                    timestamp=self._ctx.clock(),
                )
            )
            run.critique = "Previous answer failed verification. " + " ".join(
                f"{issue}." for issue in issues
            ) + " Quote the supporting excerpts directly."
            node.output = {"suggestion": CRITIC_SUGGESTION, "issues": issues, "next_iteration": run.iteration + 1}
            node.confidence = CRITIC_CONFIDENCE
        return ChainState.REASONING

    def _audit(self, run: _ChainRun) -> ChainState:
        chain = run.chain
        with self._node(run, NodeKind.AUDITPACK, {"step_count": len(chain.steps)}) as node:
            preceding = list(chain.steps)
            chain.audit_hash = compute_audit_hash(chain.trace_id, preceding, build_agents(preceding))
            node.output = {"audit_hash": chain.audit_hash, "step_count": len(preceding)}
            node.confidence = AUDIT_CONFIDENCE
        return ChainState.REFLECTING

    def _reflect(self, run: _ChainRun) -> ChainState:
        chain = run.chain
        cfg = run.config
        summary = f"Query: {chain.user_query}\nAnswer: {chain.final_answer}\nConfidence: {chain.confidence:.2f}"
        with self._node(run, NodeKind.REFLECT, {"summary_chars": len(summary)}) as node:
            result = self._ctx.memory_store.store_memory(
                summary,
                tags=REFLECTION_TAGS,
                importance=chain.confidence,
                source=REFLECTION_SOURCE,
                user_id=cfg.user_id,
                session_id=cfg.session_id,
            )
            node.output = {
                "memory_id": result.record.id if result.record else result.existing_id,
                "duplicate": result.duplicate,
            }
            node.confidence = REFLECT_CONFIDENCE
        return ChainState.DONE


__all__ = [
    "CancellationToken",
    "ChainCancelledError",
    "ChainState",
    "OrchestrationEngine",
    "PipelineContext",
    "generate_trace_id",
]
