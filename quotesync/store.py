"""Local record persistence.

The local replica is stored as a flat JSON list of records. Ordering is
irrelevant; records are keyed by id when loaded.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Protocol

from .exceptions import QuoteSyncStorageError
from .models import Record
from .utils import now_ms

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Persistence interface for the local replica."""

    def load(self) -> dict[str, Record]:
        """Load the full collection keyed by id."""
        ...

    def save(self, records: dict[str, Record]) -> None:
        """Replace the persisted collection."""
        ...


def records_to_map(records: Iterable[Record]) -> dict[str, Record]:
    """Key records by id. Later duplicates replace earlier ones."""
    mapping: dict[str, Record] = {}
    for record in records:
        if record.id in mapping:
            logger.warning(f"Duplicate record id {record.id!r}, keeping last entry")
        mapping[record.id] = record
    return mapping


def default_local_records() -> list[Record]:
    """Records a brand new local replica starts with."""
    return [
        Record(
            id="l-1",
            text="Local: Start small, think big.",
            category="Motivation",
            updated_at=now_ms() - 120000,
        )
    ]


class JsonRecordStore:
    """Record store backed by a JSON file."""

    def __init__(self, path: Path, seed: bool = False):
        """Initialize JSON record store.

        Args:
            path: File holding the serialized collection
            seed: If True, a missing file loads as the default local records
        """
        self.path = Path(path)
        self.seed = seed

    def load(self) -> dict[str, Record]:
        """Load records from the JSON file.

        Returns:
            Records keyed by id (empty or seeded if the file does not exist)

        Raises:
            QuoteSyncStorageError: If the file cannot be read or parsed
        """
        if not self.path.exists():
            logger.debug(f"No record file at {self.path}")
            return records_to_map(default_local_records() if self.seed else [])

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise QuoteSyncStorageError(
                f"Failed to read records from {self.path}: {e}"
            ) from e

        if not isinstance(data, list):
            raise QuoteSyncStorageError(
                f"Expected a list of records in {self.path}, got {type(data).__name__}"
            )

        try:
            records = [Record.from_dict(item) for item in data]
        except (TypeError, ValueError, AttributeError) as e:
            raise QuoteSyncStorageError(f"Invalid record in {self.path}: {e}") from e

        logger.debug(f"Loaded {len(records)} record(s) from {self.path}")
        return records_to_map(records)

    def save(self, records: dict[str, Record]) -> None:
        """Write records to the JSON file atomically.

        Raises:
            QuoteSyncStorageError: If the file cannot be written
        """
        payload = [record.to_dict() for record in records.values()]
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise QuoteSyncStorageError(
                f"Failed to write records to {self.path}: {e}"
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug(f"Saved {len(payload)} record(s) to {self.path}")


class MemoryRecordStore:
    """In-process record store, mainly for tests and simulations."""

    def __init__(self, records: Optional[Iterable[Record]] = None):
        self._records = records_to_map(records or [])
        self._fail_next_load = False
        self._fail_next_save = False
        self.save_count = 0

    def load(self) -> dict[str, Record]:
        if self._fail_next_load:
            self._fail_next_load = False
            raise QuoteSyncStorageError("Simulated load failure")
        return dict(self._records)

    def save(self, records: dict[str, Record]) -> None:
        if self._fail_next_save:
            self._fail_next_save = False
            raise QuoteSyncStorageError("Simulated save failure")
        self._records = dict(records)
        self.save_count += 1

    def fail_next_load(self) -> None:
        """Make the next load raise QuoteSyncStorageError."""
        self._fail_next_load = True

    def fail_next_save(self) -> None:
        """Make the next save raise QuoteSyncStorageError."""
        self._fail_next_save = True
