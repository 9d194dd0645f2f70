"""Core sync engine for executing sync passes."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Union, cast

from ..exceptions import QuoteSyncError
from ..models import Record
from ..remote import RemoteService
from ..store import RecordStore
from ..utils import now_ms
from .comparator import RecordComparator, SyncAction, SyncDecision
from .conflicts import Conflict, ConflictQueue, ConflictResolver
from .observers import ObserverHub
from .policy import ConflictPolicy
from .result import SyncPassResult

logger = logging.getLogger(__name__)


@dataclass
class MergePlan:
    """Staged outcome of classifying two replica snapshots."""

    updated_local: dict[str, Record]
    """Local collection with every local-side action applied"""

    conflicts: list[Conflict] = field(default_factory=list)
    """Divergences left for manual resolution"""

    pushes: list[SyncDecision] = field(default_factory=list)
    """Records to push to the remote service"""

    decisions: list[SyncDecision] = field(default_factory=list)
    """Every decision, including skips and conflicts"""

    @property
    def actions(self) -> list[SyncDecision]:
        """Decisions that change either replica."""
        return [
            d
            for d in self.decisions
            if d.action not in (SyncAction.SKIP, SyncAction.CONFLICT)
        ]


def run_pass(
    local: dict[str, Record],
    remote: dict[str, Record],
    policy: ConflictPolicy,
) -> MergePlan:
    """Classify both snapshots and stage the resulting changes.

    Neither input is modified. Local-side changes are applied to a copy of
    the local collection; remote-side changes are returned as pushes.

    Args:
        local: Local collection keyed by id
        remote: Remote collection keyed by id
        policy: Conflict policy for diverging records

    Returns:
        MergePlan describing the new local collection, pushes and conflicts
    """
    decisions = RecordComparator(policy).compare_records(local, remote)
    plan = MergePlan(updated_local=dict(local), decisions=decisions)

    for decision in decisions:
        if decision.action in (
            SyncAction.ADDED_LOCAL,
            SyncAction.SERVER_OVERWROTE_LOCAL,
        ):
            plan.updated_local[decision.record_id] = cast(Record, decision.remote)
        elif decision.action.is_push:
            plan.pushes.append(decision)
        elif decision.action == SyncAction.CONFLICT:
            plan.conflicts.append(
                Conflict(
                    local=cast(Record, decision.local),
                    remote=cast(Record, decision.remote),
                )
            )
        logger.debug(
            f"{decision.record_id}: {decision.action.value} ({decision.reason})"
        )

    return plan


class SyncEngine:
    """Runs sync passes between a local record store and a remote service.

    The engine owns the conflict queue and the lock guarding the local
    collection. Sync passes and conflict resolutions both take that lock, so
    they never interleave their reads and writes.
    """

    def __init__(
        self,
        store: RecordStore,
        remote: RemoteService,
        observers: Optional[ObserverHub] = None,
    ):
        """Initialize sync engine.

        Args:
            store: Local record store
            remote: Remote service
            observers: Hub notified after every pass and resolution
        """
        self.store = store
        self.remote = remote
        self.observers = observers or ObserverHub()
        self.lock = threading.RLock()
        self.queue = ConflictQueue()
        self.resolver = ConflictResolver(
            self.queue, store, remote, lock=self.lock, observers=self.observers
        )

    def sync_once(
        self,
        policy: Union[ConflictPolicy, str] = ConflictPolicy.AUTO_REMOTE_WINS,
        dry_run: bool = False,
    ) -> SyncPassResult:
        """Run a single sync pass.

        Remote and storage failures never escape this method: a failure to
        read either replica or to save the local collection aborts the pass
        and sets ``result.error``; a failed push is recorded on its action
        and retried naturally by the next pass.

        Args:
            policy: Conflict policy for diverging records
            dry_run: If True, classify only; write nothing and push nothing

        Returns:
            SyncPassResult with counts, action log and errors

        Examples:
            >>> engine = SyncEngine(JsonRecordStore(path), SimulatedServer())
            >>> result = engine.sync_once(ConflictPolicy.MANUAL)
            >>> print(f"{len(result.conflicts)} conflict(s) pending")
        """
        policy = ConflictPolicy.from_string(policy)
        result = SyncPassResult(policy=policy, started_at=now_ms(), dry_run=dry_run)
        start_time = time.time()

        with self.lock:
            try:
                self._run(result, dry_run)
            except QuoteSyncError as e:
                result.error = str(e)
                logger.warning(f"Sync pass aborted: {e}")
            queue_state = self.queue.state()

        result.duration = time.time() - start_time
        logger.debug(
            f"Sync pass finished in {result.duration:.2f}s: "
            f"{result.added} added, {result.server_wins} server wins, "
            f"{result.local_pushed} pushed, {len(result.conflicts)} conflict(s), "
            f"{len(result.failures)} failure(s)"
        )

        if not dry_run:
            self.observers.notify(result, queue_state)
        return result

    def _run(self, result: SyncPassResult, dry_run: bool) -> None:
        # Step 1: Read both snapshots; either failure aborts before any write
        remote_records = self.remote.fetch_all()
        local_records = self.store.load()
        remote_map: dict[str, Record] = {}
        for record in remote_records:
            remote_map[record.id] = record
        logger.debug(
            f"Comparing {len(local_records)} local and {len(remote_map)} "
            f"remote record(s)"
        )

        # Step 2: Classify
        plan = run_pass(local_records, remote_map, result.policy)

        if dry_run:
            result.conflicts = plan.conflicts
            for decision in plan.actions:
                result.record(decision.action, decision.record_id)
            result.new_conflicts = sum(
                1 for c in plan.conflicts if c.record_id not in self.queue
            )
            return

        # Step 3: Commit local changes in one write
        local_actions = [d for d in plan.actions if not d.action.is_push]
        if local_actions:
            self.store.save(plan.updated_local)
        for decision in local_actions:
            result.record(decision.action, decision.record_id)

        # Step 4: Push; failures stay eligible for the next pass
        for decision in plan.pushes:
            try:
                self.remote.upsert(cast(Record, decision.local))
            except QuoteSyncError as e:
                logger.warning(f"Failed to push {decision.record_id}: {e}")
                result.record(decision.action, decision.record_id, error=str(e))
            else:
                result.record(decision.action, decision.record_id)

        # Step 5: Hand divergences to the conflict queue
        result.new_conflicts = self.queue.replace_pending(plan.conflicts)
        result.conflicts = plan.conflicts

    def resolve_one(self, record_id, choice):
        """Shortcut for ``self.resolver.resolve_one``."""
        return self.resolver.resolve_one(record_id, choice)

    def resolve_all(self, choice):
        """Shortcut for ``self.resolver.resolve_all``."""
        return self.resolver.resolve_all(choice)
