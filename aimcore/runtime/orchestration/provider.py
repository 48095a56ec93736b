"""
Completion Provider - Boundary to the language-model backend

WHAT: Protocol for completion calls plus template and timeout adapters
WHERE: aimcore/runtime/orchestration/provider.py - consumed by the REASON node
WHO: OrchestrationEngine; deployments wire a real model client here
TIME: Provider-bound; the timeout adapter caps wall-clock per call

The engine only ever talks to ``invoke(prompt, context, constraints)``.
Anything a provider raises is surfaced as ProviderError and becomes a
``failed`` REASON step, never an unhandled fault.

Boundary Notes:
- Timeout maps to ProviderTimeoutError instead of an indefinite hang
- The template provider is deterministic and needs no model
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised when a completion call fails."""


class ProviderTimeoutError(ProviderError):
    """Raised when a completion call exceeds its wall-clock budget."""


@dataclass(slots=True)
class Completion:
    text: str
    tokens_used: int = 0
    logprobs: Optional[List[float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class CompletionProvider(Protocol):
    def invoke(self, prompt: str, context: str, constraints: Dict[str, Any]) -> Completion:
        ...


class TemplateCompletionProvider:
    """Deterministic answer template used when no model is wired in."""

    def invoke(self, prompt: str, context: str, constraints: Dict[str, Any]) -> Completion:
        query = str(constraints.get("query", "")).strip()
        memory_count = int(constraints.get("memory_count", 0))
        average_score = float(constraints.get("average_score", 0.0))
        subject = query.lower().replace("?", "").strip()
        text = (
            f"Based on the retrieved context, {subject}. "
            f"This conclusion is drawn from {memory_count} memory entries with an average "
            f"retrieval score of {average_score:.3f}."
        )
        return Completion(text=text, tokens_used=len(prompt) // 4 + len(text) // 4)


class TimeoutCompletionProvider:
    """Runs ``inner.invoke`` on a worker thread and gives up after ``timeout_s``."""

    def __init__(self, inner: CompletionProvider, timeout_s: float) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self.inner = inner
        self.timeout_s = timeout_s

    def invoke(self, prompt: str, context: str, constraints: Dict[str, Any]) -> Completion:
        outcome: Dict[str, Any] = {}

        def worker() -> None:
            try:
                outcome["result"] = self.inner.invoke(prompt, context, constraints)
            except Exception as exc:  # re-raised on the caller thread
                outcome["error"] = exc

        thread = threading.Thread(target=worker, daemon=True)
        thread.start()
        thread.join(self.timeout_s)
        if thread.is_alive():
            logger.warning(f"Completion provider timed out after {self.timeout_s}s")
            raise ProviderTimeoutError(f"completion timed out after {self.timeout_s}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["result"]


def invoke_provider(
    provider: CompletionProvider,
    prompt: str,
    context: str,
    constraints: Dict[str, Any],
) -> Completion:
    """Call ``provider`` and normalize every failure to ProviderError."""
    try:
        completion = provider.invoke(prompt, context, constraints)
    except ProviderError:
        raise
    except Exception as exc:
        raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
    if not isinstance(completion, Completion):
        raise ProviderError(f"provider returned {type(completion).__name__}, expected Completion")
    return completion


__all__ = [
    "Completion",
    "CompletionProvider",
    "ProviderError",
    "ProviderTimeoutError",
    "TemplateCompletionProvider",
    "TimeoutCompletionProvider",
    "invoke_provider",
]
