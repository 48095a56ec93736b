"""
Span Telemetry - Timing and outcome of store operations and chain nodes

WHAT: Span context managers plus pluggable sinks (no-op, logging, custom)
WHERE: aimcore/runtime/telemetry.py - shared by memory and orchestration
WHO: MemoryStore (memory.*) and OrchestrationEngine (chain.*)
TIME: Sinks see one call per closed span; the no-op sink costs nothing

A span carries a name and an attribute dict. On close it gains
``duration_ms``, ``success`` and, when the block raised, ``error`` (the
exception class name). Exceptions are never swallowed by a span.

Boundary Notes:
- One ``chain.execute`` span per chain, one ``chain.node.<kind>`` per node
- ``memory.store`` / ``memory.retrieve`` / ``memory.compress`` wrap the
  repository round trips of each store operation
"""

from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """Open span; attributes may be added until the block exits."""

    def __init__(self, client: "TelemetryClient", name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self._sink = client
        self._started_at = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self._started_at = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        self.attributes["duration_ms"] = (time.perf_counter() - self._started_at) * 1000.0
        self.attributes.setdefault("success", exc is None)
        if exc_type is not None:
            self.attributes.setdefault("error", exc_type.__name__)
        self._sink.emit_span(self.name, self.attributes)
        return False


class TelemetryClient:
    """Span factory; concrete sinks implement ``emit_span``."""

    def span(self, name: str, *, attributes: Optional[Dict[str, Any]] = None) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class NoOpTelemetryClient(TelemetryClient):
    """Default sink; drops every span."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        return None


class LoggingTelemetryClient(TelemetryClient):
    """Writes each closed span as one log record."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self._level = level

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        if not logger.isEnabledFor(self._level):
            return
        ordered = {key: attributes[key] for key in sorted(attributes)}
        logger.log(self._level, f"[telemetry] {name}: {ordered}")


__all__ = [
    "TelemetrySpan",
    "TelemetryClient",
    "NoOpTelemetryClient",
    "LoggingTelemetryClient",
]
