"""Sync engine for QuoteSync - merge, conflict queue and scheduling."""

from .comparator import RecordComparator, SyncAction, SyncDecision
from .conflicts import (
    Conflict,
    ConflictQueue,
    ConflictQueueState,
    ConflictResolver,
    ResolutionOutcome,
    ResolutionReport,
)
from .engine import MergePlan, SyncEngine, run_pass
from .observers import Observer, ObserverHub
from .policy import ConflictPolicy, Resolution
from .result import ActionRecord, SyncPassResult
from .scheduler import SchedulerState, SyncScheduler

__all__ = [
    "SyncEngine",
    "SyncScheduler",
    "SchedulerState",
    "ConflictPolicy",
    "Resolution",
    "RecordComparator",
    "SyncAction",
    "SyncDecision",
    "MergePlan",
    "run_pass",
    "Conflict",
    "ConflictQueue",
    "ConflictQueueState",
    "ConflictResolver",
    "ResolutionOutcome",
    "ResolutionReport",
    "SyncPassResult",
    "ActionRecord",
    "Observer",
    "ObserverHub",
]
