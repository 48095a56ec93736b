"""
Runtime Module

WHAT: Memory ranking, reasoning orchestration and answer verification
WHERE: aimcore/runtime/ - above the document store client
WHO: Applications answering questions from accumulated memories
TIME: Query-time; one chain per question

Subsystems:
- memory: ranked memory store with tiering, decay and compression
- orchestration: plan/retrieve/reason/verify state machine producing chains
- verification: provenance coverage, entropy and calibration gating

Boundary Notes:
- memory depends on nothing above it; verification reads chains through a
  protocol; orchestration wires both together through a PipelineContext
- Every chain ends in a terminal status and is persisted once
"""

__all__ = ["memory", "orchestration", "telemetry", "verification"]
