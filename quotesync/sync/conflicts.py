"""Pending conflict queue and conflict resolution."""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Optional, Union

from ..exceptions import (
    QuoteSyncConflictNotFoundError,
    QuoteSyncError,
    QuoteSyncStorageError,
)
from ..models import Record
from .policy import Resolution

if TYPE_CHECKING:
    from ..remote import RemoteService
    from ..store import RecordStore
    from .observers import ObserverHub

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conflict:
    """Local and remote versions of a record that diverge."""

    local: Record
    remote: Record

    @property
    def record_id(self) -> str:
        return self.local.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record_id,
            "local": self.local.to_dict(),
            "remote": self.remote.to_dict(),
        }


@dataclass(frozen=True)
class ConflictQueueState:
    """Read-only view of the queue handed to observers."""

    pending: tuple[str, ...] = ()
    """Ids of pending conflicts, in queue order"""

    @property
    def count(self) -> int:
        return len(self.pending)

    def to_dict(self) -> dict[str, Any]:
        return {"pending": list(self.pending), "count": self.count}


class ConflictQueue:
    """Ordered, id-keyed queue of unresolved conflicts.

    An id appears at most once. Enqueueing a conflict for an id that is
    already pending replaces the stored versions and keeps its position.
    """

    def __init__(self) -> None:
        self._items: "OrderedDict[str, Conflict]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._items

    def __iter__(self) -> Iterator[Conflict]:
        return iter(self.snapshot())

    def enqueue(self, conflict: Conflict) -> bool:
        """Add or replace a conflict.

        Returns:
            True if the id was not pending before
        """
        with self._lock:
            is_new = conflict.record_id not in self._items
            self._items[conflict.record_id] = conflict
        return is_new

    def get(self, record_id: str) -> Conflict:
        """Return the pending conflict for an id.

        Raises:
            QuoteSyncConflictNotFoundError: If no conflict is pending for the id
        """
        with self._lock:
            try:
                return self._items[record_id]
            except KeyError:
                raise QuoteSyncConflictNotFoundError(record_id) from None

    def remove(self, record_id: str) -> Conflict:
        """Remove and return the pending conflict for an id.

        Raises:
            QuoteSyncConflictNotFoundError: If no conflict is pending for the id
        """
        with self._lock:
            try:
                return self._items.pop(record_id)
            except KeyError:
                raise QuoteSyncConflictNotFoundError(record_id) from None

    def clear(self) -> int:
        """Discard every pending conflict without resolving it.

        Returns:
            Number of discarded conflicts
        """
        with self._lock:
            count = len(self._items)
            self._items.clear()
        if count:
            logger.debug(f"Discarded {count} pending conflict(s)")
        return count

    def replace_pending(self, conflicts: Iterable[Conflict]) -> int:
        """Make the queue hold exactly the given conflicts.

        Ids no longer diverging are dropped; ids still pending keep their
        position with refreshed versions; new ids are appended in order.

        Returns:
            Number of ids that were not pending before
        """
        fresh: "OrderedDict[str, Conflict]" = OrderedDict(
            (c.record_id, c) for c in conflicts
        )
        with self._lock:
            for record_id in [rid for rid in self._items if rid not in fresh]:
                del self._items[record_id]
                logger.debug(f"Dropped stale conflict for {record_id}")
            new_count = 0
            for record_id, conflict in fresh.items():
                if record_id not in self._items:
                    new_count += 1
                self._items[record_id] = conflict
        return new_count

    def snapshot(self) -> list[Conflict]:
        """Return the pending conflicts in queue order."""
        with self._lock:
            return list(self._items.values())

    def state(self) -> ConflictQueueState:
        with self._lock:
            return ConflictQueueState(pending=tuple(self._items))


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of resolving a single conflict."""

    record_id: str
    choice: Resolution
    ok: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record_id,
            "choice": self.choice.value,
            "ok": self.ok,
            "error": self.error,
        }


@dataclass
class ResolutionReport:
    """Result of resolving every pending conflict with one choice."""

    choice: Resolution
    outcomes: list[ResolutionOutcome] = field(default_factory=list)

    @property
    def resolved(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> list[ResolutionOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "choice": self.choice.value,
            "resolved": self.resolved,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class ConflictResolver:
    """Applies user-chosen resolutions to queued conflicts.

    Keeping the remote version rewrites the local record and persists the
    collection. Keeping the local version pushes it to the remote service;
    the local collection already holds it. A conflict leaves the queue only
    once its resolution has fully completed, so failed resolutions can be
    retried.
    """

    def __init__(
        self,
        queue: ConflictQueue,
        store: "RecordStore",
        remote: "RemoteService",
        lock: Optional[Union[threading.Lock, threading.RLock]] = None,
        observers: Optional["ObserverHub"] = None,
    ):
        """Initialize conflict resolver.

        Args:
            queue: Queue holding the pending conflicts
            store: Local record store
            remote: Remote service
            lock: Lock shared with the sync engine guarding the local collection
            observers: Hub notified after every resolution
        """
        self.queue = queue
        self.store = store
        self.remote = remote
        self.lock = lock if lock is not None else threading.RLock()
        self.observers = observers

    def resolve_one(
        self, record_id: str, choice: Union[Resolution, str]
    ) -> ResolutionOutcome:
        """Resolve the pending conflict for one record.

        Args:
            record_id: Id of the conflicting record
            choice: Which version to keep

        Returns:
            Outcome of the resolution

        Raises:
            QuoteSyncConflictNotFoundError: If no conflict is pending for the id
        """
        choice = Resolution.from_string(choice)
        with self.lock:
            conflict = self.queue.get(record_id)
            (outcome,) = self._apply([conflict], choice)
            state = self.queue.state()

        if self.observers is not None:
            self.observers.notify(outcome, state)
        return outcome

    def resolve_all(self, choice: Union[Resolution, str]) -> ResolutionReport:
        """Resolve every pending conflict, in queue order, with the same choice.

        Each record is resolved independently; a failure for one record does
        not stop the others and leaves only that record's conflict queued.
        """
        choice = Resolution.from_string(choice)
        with self.lock:
            conflicts = self.queue.snapshot()
            outcomes = self._apply(conflicts, choice)
            report = ResolutionReport(choice=choice, outcomes=outcomes)
            state = self.queue.state()

        logger.debug(
            f"Resolved {report.resolved}/{len(conflicts)} conflict(s) "
            f"keeping {choice.value}"
        )
        if self.observers is not None:
            self.observers.notify(report, state)
        return report

    def _apply(
        self, conflicts: list[Conflict], choice: Resolution
    ) -> list[ResolutionOutcome]:
        if not conflicts:
            return []

        if choice == Resolution.KEEP_REMOTE:
            outcomes = self._keep_remote(conflicts)
        else:
            outcomes = [self._keep_local(conflict) for conflict in conflicts]

        for outcome in outcomes:
            if outcome.ok:
                self.queue.remove(outcome.record_id)
            else:
                logger.warning(
                    f"Failed to resolve conflict for {outcome.record_id}: "
                    f"{outcome.error}"
                )
        return outcomes

    def _keep_remote(self, conflicts: list[Conflict]) -> list[ResolutionOutcome]:
        try:
            records = self.store.load()
            for conflict in conflicts:
                records[conflict.record_id] = conflict.remote
            self.store.save(records)
        except QuoteSyncStorageError as e:
            return [
                ResolutionOutcome(c.record_id, Resolution.KEEP_REMOTE, False, str(e))
                for c in conflicts
            ]
        return [
            ResolutionOutcome(c.record_id, Resolution.KEEP_REMOTE) for c in conflicts
        ]

    def _keep_local(self, conflict: Conflict) -> ResolutionOutcome:
        try:
            self.remote.upsert(conflict.local)
        except QuoteSyncError as e:
            return ResolutionOutcome(
                conflict.record_id, Resolution.KEEP_LOCAL, False, str(e)
            )
        return ResolutionOutcome(conflict.record_id, Resolution.KEEP_LOCAL)
