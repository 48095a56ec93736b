"""Tamper-evident audit hash over a chain trace, and its replay check."""

from __future__ import annotations

import hashlib
import json
from typing import Sequence

from .models import AgentRecord, NodeKind, ReasoningChain, ReasoningStep
from .nodes import build_agents


def compute_audit_hash(trace_id: str, steps: Sequence[ReasoningStep], agents: Sequence[AgentRecord]) -> str:
    payload = {
        "trace_id": trace_id,
        "steps": [s.model_dump(mode="json") for s in steps],
        "agents": [a.model_dump(mode="json") for a in agents],
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def verify_audit(chain: ReasoningChain) -> bool:
    """Recompute the AUDITPACK hash from the recorded trace; False if altered or missing."""
    for index, step in enumerate(chain.steps):
        if step.node_kind != NodeKind.AUDITPACK:
            continue
        recorded = step.output.get("audit_hash")
        if not recorded or recorded != chain.audit_hash:
            return False
        preceding = chain.steps[:index]
        return compute_audit_hash(chain.trace_id, preceding, build_agents(preceding)) == recorded
    return False


__all__ = ["compute_audit_hash", "verify_audit"]
