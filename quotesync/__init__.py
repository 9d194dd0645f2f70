"""QuoteSync - keep a local quote collection in sync with a remote service."""

from .api import QuoteServerClient
from .exceptions import (
    QuoteSyncBusyError,
    QuoteSyncConfigError,
    QuoteSyncConflictNotFoundError,
    QuoteSyncError,
    QuoteSyncInvalidResponseError,
    QuoteSyncStorageError,
    QuoteSyncUnavailableError,
)
from .models import Record
from .remote import RemoteService, SimulatedServer
from .store import JsonRecordStore, MemoryRecordStore, RecordStore

__version__ = "0.1.0"

__all__ = [
    "QuoteServerClient",
    "QuoteSyncBusyError",
    "QuoteSyncConfigError",
    "QuoteSyncConflictNotFoundError",
    "QuoteSyncError",
    "QuoteSyncInvalidResponseError",
    "QuoteSyncStorageError",
    "QuoteSyncUnavailableError",
    "Record",
    "RemoteService",
    "SimulatedServer",
    "JsonRecordStore",
    "MemoryRecordStore",
    "RecordStore",
]
