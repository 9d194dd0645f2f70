"""Outcome of a sync pass."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .comparator import SyncAction
from .conflicts import Conflict
from .policy import ConflictPolicy


@dataclass(frozen=True)
class ActionRecord:
    """One executed (or attempted) action of a sync pass."""

    action: SyncAction
    record_id: str
    ok: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "id": self.record_id,
            "ok": self.ok,
            "error": self.error,
        }


@dataclass
class SyncPassResult:
    """Counts, action log and errors of a single sync pass."""

    policy: ConflictPolicy
    started_at: int = 0
    """Epoch milliseconds when the pass started"""

    added: int = 0
    server_wins: int = 0
    local_pushed: int = 0
    conflicts: list[Conflict] = field(default_factory=list)
    """Divergences queued by this pass"""

    new_conflicts: int = 0
    """How many of ``conflicts`` were not already pending before the pass"""

    actions: list[ActionRecord] = field(default_factory=list)
    error: Optional[str] = None
    """Set when the pass was aborted; nothing was written locally"""

    duration: float = 0.0
    dry_run: bool = False

    @property
    def aborted(self) -> bool:
        return self.error is not None

    @property
    def failures(self) -> list[ActionRecord]:
        """Actions that failed and remain eligible for the next pass."""
        return [a for a in self.actions if not a.ok]

    @property
    def ok(self) -> bool:
        return not self.aborted and not self.failures

    @property
    def total_actions(self) -> int:
        return len(self.actions)

    def record(
        self, action: SyncAction, record_id: str, error: Optional[str] = None
    ) -> None:
        """Log an action and update the matching counter."""
        ok = error is None
        self.actions.append(ActionRecord(action, record_id, ok, error))
        if not ok:
            return
        if action == SyncAction.ADDED_LOCAL:
            self.added += 1
        elif action == SyncAction.SERVER_OVERWROTE_LOCAL:
            self.server_wins += 1
        elif action.is_push:
            self.local_pushed += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for JSON output."""
        return {
            "policy": self.policy.value,
            "started_at": self.started_at,
            "added": self.added,
            "server_wins": self.server_wins,
            "local_pushed": self.local_pushed,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "new_conflicts": self.new_conflicts,
            "actions": [a.to_dict() for a in self.actions],
            "error": self.error,
            "duration": round(self.duration, 3),
            "dry_run": self.dry_run,
        }
