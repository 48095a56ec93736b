"""
Prompt Engineering - REASON node prompt composition

WHAT: Prompt template and composition helper for grounded answering
WHERE: aimcore/runtime/orchestration/prompting.py - prompt generation layer
WHO: REASON node building the completion request
TIME: Prompt assembly <1ms

Boundary Notes:
- The prompt is the only coupling point to the completion provider
- Context size is already bounded by CONDENSE
"""

from __future__ import annotations

from typing import Iterable

REASON_SYSTEM = (
    "You answer questions using only the memory excerpts provided.\n"
    "Quote the excerpts you rely on. If the excerpts do not cover the question,\n"
    "say so instead of guessing.\n"
)

EMPTY_CONTEXT = "(no memories retrieved)"


def format_subtasks(subtasks: Iterable[str]) -> str:
    lines = [f"{i}. {task}" for i, task in enumerate(subtasks, start=1)]
    return "\n".join(lines)


def compose_reason_prompt(
    *,
    query: str,
    context: str,
    subtasks: Iterable[str] = (),
    critique: str | None = None,
) -> str:
    parts = [REASON_SYSTEM, "<plan>", format_subtasks(subtasks), "</plan>", "<context>", context or EMPTY_CONTEXT, "</context>"]
    if critique:
        parts.extend(["<critique>", critique.strip(), "</critique>"])
    parts.extend([f"Question: {query.strip()}", "Answer:"])
    return "\n".join(parts)


__all__ = ["REASON_SYSTEM", "compose_reason_prompt", "format_subtasks"]
