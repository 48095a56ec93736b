"""Chain execution configuration with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, Optional

ENV_PREFIX = "AIMCORE_"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    return value.strip() if value and value.strip() else None


def _env_bool(value: str) -> bool:
    return value.lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True, frozen=True)
class ChainConfig:
    token_budget: int = 8000
    min_confidence: float = 0.70
    min_provenance: float = 0.85
    enable_self_correction: bool = True
    max_iterations: int = 3
    retrieval_limit: int = 20
    condense_ratio: float = 0.60
    citation_count: int = 3
    citation_preview_chars: int = 100
    entropy_samples: int = 1
    temperature_ladder: tuple[float, ...] = field(default=(0.3, 0.7, 1.0))
    provider_timeout_s: Optional[float] = 30.0
    budget_degradation: float = 0.5
    session_id: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.token_budget <= 0:
            raise ValueError("token_budget must be positive")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.retrieval_limit < 1:
            raise ValueError("retrieval_limit must be >= 1")
        if self.entropy_samples < 1:
            raise ValueError("entropy_samples must be >= 1")
        if not self.temperature_ladder:
            raise ValueError("temperature_ladder must not be empty")
        for name in ("min_confidence", "min_provenance", "condense_ratio", "budget_degradation"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.provider_timeout_s is not None and self.provider_timeout_s < 0:
            raise ValueError("provider_timeout_s must be non-negative")

    @classmethod
    def from_env(cls, **overrides: Any) -> "ChainConfig":
        """Defaults, then ``AIMCORE_*`` variables, then explicit overrides."""
        parsers = {
            "TOKEN_BUDGET": ("token_budget", int),
            "MIN_CONFIDENCE": ("min_confidence", float),
            "MIN_PROVENANCE": ("min_provenance", float),
            "SELF_CORRECTION": ("enable_self_correction", _env_bool),
            "MAX_ITERATIONS": ("max_iterations", int),
            "PROVIDER_TIMEOUT_S": ("provider_timeout_s", lambda raw: float(raw) or None),
        }
        values: dict[str, Any] = {}
        for env_name, (field_name, parse) in parsers.items():
            raw = _env(env_name)
            if raw is not None:
                values[field_name] = parse(raw)
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "ChainConfig":
        return replace(self, **overrides)


__all__ = ["ChainConfig", "ENV_PREFIX"]
