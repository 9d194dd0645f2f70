"""Remote service interface and an in-memory simulated server."""

import logging
import random
import threading
import time
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from .exceptions import QuoteSyncUnavailableError
from .models import Record
from .utils import now_ms

logger = logging.getLogger(__name__)


class RemoteService(Protocol):
    """Authoritative remote collection of records."""

    def fetch_all(self) -> list[Record]:
        """Fetch every remote record.

        Raises:
            QuoteSyncUnavailableError: On transport failure
        """
        ...

    def upsert(self, record: Record) -> Any:
        """Insert or replace a record by id. Idempotent.

        Raises:
            QuoteSyncUnavailableError: On transport failure
        """
        ...


def default_server_records() -> list[Record]:
    """Records the simulated server starts with."""
    stamp = now_ms() - 60000
    return [
        Record(
            id="s-1",
            text="Server: Be the change you want to see.",
            category="Inspiration",
            updated_at=stamp,
        ),
        Record(
            id="s-2",
            text="Server: Simplicity is the soul of efficiency.",
            category="Design",
            updated_at=stamp,
        ),
    ]


class SimulatedServer:
    """In-memory stand-in for the remote quote service.

    Writes are stamped with the server's clock, like a real service that
    owns ``updated_at`` on its side. Latency and outages can be simulated.
    """

    def __init__(
        self,
        initial: Optional[Iterable[Record]] = None,
        delay: tuple[float, float] = (0.0, 0.0),
        stamp_writes: bool = True,
    ):
        """Initialize simulated server.

        Args:
            initial: Starting records (defaults to two seeded quotes)
            delay: (min, max) seconds of random latency per call
            stamp_writes: If True, upserts overwrite ``updated_at`` with now
        """
        records = default_server_records() if initial is None else list(initial)
        self._records: dict[str, Record] = {r.id: r for r in records}
        self._lock = threading.Lock()
        self.delay = delay
        self.stamp_writes = stamp_writes
        self.available = True
        self.upserts: list[Record] = []
        """Every record received by :meth:`upsert`, in call order"""

    def _simulate_latency(self) -> None:
        low, high = self.delay
        if high > 0:
            time.sleep(random.uniform(low, high))
        if not self.available:
            raise QuoteSyncUnavailableError("Simulated server is unavailable")

    def set_available(self, available: bool) -> None:
        """Switch simulated outages on or off."""
        self.available = available

    def fetch_all(self) -> list[Record]:
        self._simulate_latency()
        with self._lock:
            return list(self._records.values())

    def upsert(self, record: Record) -> dict[str, Any]:
        self._simulate_latency()
        with self._lock:
            self.upserts.append(record)
            if self.stamp_writes:
                record = record.replace(updated_at=now_ms())
            self._records[record.id] = record
        logger.debug(f"Simulated server stored {record.id}")
        return {"success": True}

    def get(self, record_id: str) -> Optional[Record]:
        """Return the stored version of a record, if any."""
        with self._lock:
            return self._records.get(record_id)

    def put_external(self, record: Record) -> None:
        """Write a record as another client would, bypassing fault injection."""
        with self._lock:
            self._records[record.id] = record

    def simulate_external_change(self) -> Optional[Record]:
        """Edit a random record as if another client had changed it.

        Returns:
            The edited record, or None if the server is empty
        """
        with self._lock:
            if not self._records:
                return None
            record_id = random.choice(list(self._records))
            current = self._records[record_id]
            stamp = datetime.now().strftime("%H:%M:%S")
            edited = current.replace(
                text=f"{current.text} [server edit @{stamp}]",
                updated_at=now_ms(),
            )
            self._records[record_id] = edited
        logger.debug(f"Simulated external change to {record_id}")
        return edited
