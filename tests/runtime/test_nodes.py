import pytest

from aimcore.runtime.memory import MemoryRecord
from aimcore.runtime.orchestration.models import NodeKind, ReasoningStep
from aimcore.runtime.orchestration.nodes import (
    build_agents,
    build_citations,
    condense,
    decompose_query,
    extract_tags,
    reasoning_confidence,
)
from aimcore.runtime.orchestration.prompting import compose_reason_prompt


def memory(content: str, score: float, tokens: int) -> MemoryRecord:
    return MemoryRecord(content=content, retrieval_score=score, token_count=tokens)


def test_extract_tags_drops_stop_words_short_words_and_punctuation():
    assert extract_tags("What is the capital of France?") == ["what", "capital", "france"]
    assert extract_tags("Python, python; PYTHON!") == ["python"]
    assert len(extract_tags("alpha bravo charlie delta echoes foxtrot golfing")) == 5


def test_decompose_query_is_templated():
    assert decompose_query("Why?") == [
        "Understand: Why?",
        "Retrieve relevant information about: Why?",
        "Synthesize answer for: Why?",
    ]


def test_condense_stops_at_ceiling():
    records = [memory("first", 0.5, 40), memory("second", 0.4, 40), memory("third", 0.3, 5)]
    context, tokens, used = condense(records, ceiling=60)

    assert tokens == 40
    assert [m.content for m in used] == ["first"]
    assert context == "[RS=0.500] first"


def test_build_citations_truncates_long_quotes():
    records = [memory("a" * 150, 0.5, 38), memory("short", 0.2, 2)]
    citations = build_citations(records, count=3, preview_chars=100)

    assert len(citations) == 2
    assert citations[0].quote == "a" * 100 + "..."
    assert citations[1].quote == "short"
    assert citations[0].citation_id == records[0].content_hash


def test_reasoning_confidence_blend():
    records = [memory("x", 0.5, 1), memory("y", 0.3, 1)]
    assert reasoning_confidence(records, 2) == pytest.approx(0.6 * 0.4 + 0.4)
    assert reasoning_confidence([], 0) == 0.0


def test_build_agents_in_first_appearance_order():
    steps = [
        ReasoningStep(node_kind=NodeKind.PLAN, agent_id="planner"),
        ReasoningStep(node_kind=NodeKind.REASON, agent_id="composer"),
        ReasoningStep(node_kind=NodeKind.REASON, agent_id="composer"),
        ReasoningStep(node_kind=NodeKind.REFLECT, agent_id="composer"),
    ]
    agents = build_agents(steps)
    assert [a.id for a in agents] == ["planner", "composer"]
    assert agents[1].actions == ["REASON", "REFLECT"]


def test_reason_prompt_includes_critique_only_when_given():
    base = compose_reason_prompt(query="Q?", context="", subtasks=["one"])
    assert "(no memories retrieved)" in base
    assert "<critique>" not in base
    assert "1. one" in base

    retry = compose_reason_prompt(query="Q?", context="ctx", critique="Cite more.")
    assert "<critique>\nCite more.\n</critique>" in retry
    assert retry.endswith("Question: Q?\nAnswer:")
