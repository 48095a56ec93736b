"""
Module: aimcore/runtime/orchestration/nodes.py
Summary: Pure helpers behind the chain nodes (tags, plan, condense, citations, confidence).
Inputs: user query text, ranked MemoryRecords, remaining token budget
Outputs: plain values consumed by OrchestrationEngine node handlers
Related: aimcore/runtime/orchestration/engine.py
Stability: stable
"""

from __future__ import annotations

import json
import string
from typing import Any, Dict, List, Sequence, Tuple

from ..memory.models import MemoryRecord
from .models import AgentRecord, Citation, ReasoningStep

STOP_WORDS = frozenset({"the", "is", "at", "which", "on", "a", "an", "and", "or", "but"})

PLAN_CONFIDENCE = 0.95
RETRIEVE_CONFIDENCE = 0.90
EMPTY_RETRIEVE_CONFIDENCE = 0.50
CONDENSE_CONFIDENCE = 0.85
VERIFY_PASS_CONFIDENCE = 0.95
VERIFY_FAIL_CONFIDENCE = 0.60
CRITIC_CONFIDENCE = 0.80
AUDIT_CONFIDENCE = 1.0
REFLECT_CONFIDENCE = 0.90

CONTEXT_SEPARATOR = "\n\n---\n\n"

AGENT_ROLES = frozenset({"planner", "retriever", "composer", "verifier"})


def extract_tags(text: str, *, max_tags: int = 5, min_length: int = 4) -> List[str]:
    """Lower-cased unique words of at least ``min_length`` chars, stop words dropped."""
    tags: List[str] = []
    for raw in text.lower().split():
        word = raw.strip(string.punctuation)
        if len(word) < min_length or word in STOP_WORDS or word in tags:
            continue
        tags.append(word)
        if len(tags) >= max_tags:
            break
    return tags


def decompose_query(query: str) -> List[str]:
    return [
        f"Understand: {query}",
        f"Retrieve relevant information about: {query}",
        f"Synthesize answer for: {query}",
    ]


def condense(memories: Sequence[MemoryRecord], ceiling: float) -> Tuple[str, int, List[MemoryRecord]]:
    """Greedy pack in rank order; stop at the first memory that would pass ``ceiling``."""
    parts: List[str] = []
    used: List[MemoryRecord] = []
    tokens = 0
    for memory in memories:
        if tokens + memory.token_count > ceiling:
            break
        parts.append(f"[RS={(memory.retrieval_score or 0.0):.3f}] {memory.content}")
        used.append(memory)
        tokens += memory.token_count
    return CONTEXT_SEPARATOR.join(parts), tokens, used


def average_score(memories: Sequence[MemoryRecord]) -> float:
    if not memories:
        return 0.0
    return sum(m.retrieval_score or 0.0 for m in memories) / len(memories)


def build_citations(memories: Sequence[MemoryRecord], count: int, preview_chars: int) -> List[Citation]:
    citations = []
    for memory in memories[:count]:
        quote = memory.content[:preview_chars]
        if len(memory.content) > preview_chars:
            quote += "..."
        citations.append(Citation(citation_id=memory.content_hash, quote=quote, score=memory.retrieval_score or 0.0))
    return citations


def reasoning_confidence(memories: Sequence[MemoryRecord], citations_used: int) -> float:
    """0.6 × mean RS + 0.4 × citations / retrieved, capped at 1."""
    support_ratio = citations_used / len(memories) if memories else 0.0
    return min(0.6 * average_score(memories) + 0.4 * support_ratio, 1.0)


def serialize_output(output: Dict[str, Any]) -> str:
    return json.dumps(output, sort_keys=True, default=str)


def build_agents(steps: Sequence[ReasoningStep]) -> List[AgentRecord]:
    """Roster of agents in first-appearance order with the nodes each ran."""
    roster: Dict[str, AgentRecord] = {}
    for step in steps:
        agent = roster.get(step.agent_id)
        if agent is None:
            agent = AgentRecord(id=step.agent_id, role=step.agent_id if step.agent_id in AGENT_ROLES else "composer")
            roster[step.agent_id] = agent
        if step.node_kind.value not in agent.actions:
            agent.actions.append(step.node_kind.value)
    return list(roster.values())


__all__ = [
    "STOP_WORDS",
    "extract_tags",
    "decompose_query",
    "condense",
    "average_score",
    "build_citations",
    "reasoning_confidence",
    "serialize_output",
    "build_agents",
]
