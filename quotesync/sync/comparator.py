"""Record comparison logic for sync passes."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import Record
from .policy import ConflictPolicy


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    ADDED_LOCAL = "added_local"
    """Insert a remote-only record into the local collection"""

    PUSHED_TO_SERVER = "pushed_to_server"
    """Push a local-only record to the remote service"""

    SERVER_OVERWROTE_LOCAL = "server_overwrote_local"
    """Replace the local version with the newer remote version"""

    LOCAL_PUSHED_TO_SERVER = "local_pushed_to_server"
    """Push the newer local version over a stale remote version"""

    CONFLICT = "conflict"
    """Divergence queued for manual resolution"""

    SKIP = "skip"
    """Nothing to do"""

    @property
    def is_push(self) -> bool:
        return self in (SyncAction.PUSHED_TO_SERVER, SyncAction.LOCAL_PUSHED_TO_SERVER)


@dataclass(frozen=True)
class SyncDecision:
    """Represents a decision about how to sync a record."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    record_id: str
    """Id shared by both versions"""

    local: Optional[Record]
    """Local version (if exists)"""

    remote: Optional[Record]
    """Remote version (if exists)"""


class RecordComparator:
    """Classifies every record id present in either replica.

    Recency is decided by ``updated_at`` alone. When both versions carry the
    same timestamp but different content the remote version wins, so the
    outcome never depends on which replica happens to be compared first.
    """

    def __init__(self, policy: ConflictPolicy):
        """Initialize record comparator.

        Args:
            policy: Conflict policy to apply to diverging records
        """
        self.policy = policy

    def compare_records(
        self,
        local_records: dict[str, Record],
        remote_records: dict[str, Record],
    ) -> list[SyncDecision]:
        """Compare both replicas and determine sync actions.

        Remote ids come first in remote order, followed by local-only ids in
        local order.

        Args:
            local_records: Local collection keyed by id
            remote_records: Remote collection keyed by id

        Returns:
            One SyncDecision per distinct id
        """
        decisions: list[SyncDecision] = []

        for record_id, remote in remote_records.items():
            decisions.append(
                self._compare_single(record_id, local_records.get(record_id), remote)
            )

        for record_id, local in local_records.items():
            if record_id not in remote_records:
                decisions.append(self._compare_single(record_id, local, None))

        return decisions

    def _compare_single(
        self,
        record_id: str,
        local: Optional[Record],
        remote: Optional[Record],
    ) -> SyncDecision:
        if local is not None and remote is not None:
            return self._compare_existing(record_id, local, remote)

        if remote is not None:
            return SyncDecision(
                action=SyncAction.ADDED_LOCAL,
                reason="New remote record",
                record_id=record_id,
                local=None,
                remote=remote,
            )

        if local is not None:
            return SyncDecision(
                action=SyncAction.PUSHED_TO_SERVER,
                reason="New local record",
                record_id=record_id,
                local=local,
                remote=None,
            )

        # Should never happen
        return SyncDecision(
            action=SyncAction.SKIP,
            reason="No record found",
            record_id=record_id,
            local=None,
            remote=None,
        )

    def _compare_existing(
        self, record_id: str, local: Record, remote: Record
    ) -> SyncDecision:
        """Compare records that exist in both replicas."""
        if not local.content_differs(remote):
            return SyncDecision(
                action=SyncAction.SKIP,
                reason="Content is identical",
                record_id=record_id,
                local=local,
                remote=remote,
            )

        if local.updated_at > remote.updated_at:
            action = SyncAction.LOCAL_PUSHED_TO_SERVER
            reason = "Local record is newer"
        else:
            # Equal timestamps with different content fall through here
            action = SyncAction.SERVER_OVERWROTE_LOCAL
            if local.updated_at == remote.updated_at:
                reason = "Same timestamp but different content, remote wins ties"
            else:
                reason = "Remote record is newer"

        if not self.policy.resolves_automatically:
            return SyncDecision(
                action=SyncAction.CONFLICT,
                reason=f"{reason} (manual resolution required)",
                record_id=record_id,
                local=local,
                remote=remote,
            )

        return SyncDecision(
            action=action,
            reason=reason,
            record_id=record_id,
            local=local,
            remote=remote,
        )
