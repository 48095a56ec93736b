"""AIM core runtime package: memory ranking, reasoning orchestration, verification."""

__all__ = [
    "database",
    "runtime",
]
