"""Orchestrator - batch alternation and run coordination."""

from .alternator import (
    TRANSITIONS,
    AlternatorEvent,
    AlternatorState,
    BatchAlternator,
    BatchCursor,
    DispatchOutcome,
    DispatchStatus,
    next_state,
)
from .runner import HarvestRunner, RunReport, RunStats, run_harvest

__all__ = [
    "TRANSITIONS",
    "AlternatorEvent",
    "AlternatorState",
    "BatchAlternator",
    "BatchCursor",
    "DispatchOutcome",
    "DispatchStatus",
    "next_state",
    "HarvestRunner",
    "RunReport",
    "RunStats",
    "run_harvest",
]
