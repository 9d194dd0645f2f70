"""Custom exceptions for QuoteSync."""


class QuoteSyncError(Exception):
    """Base exception for all QuoteSync errors."""


class QuoteSyncConfigError(QuoteSyncError):
    """Raised when configuration is missing or invalid."""


class QuoteSyncUnavailableError(QuoteSyncError):
    """Raised when the remote service cannot be reached.

    Transport failures, timeouts and server errors all map to this error.
    It is always safe to retry the failed operation later.
    """


class QuoteSyncInvalidResponseError(QuoteSyncUnavailableError):
    """Raised when the remote service returns an unusable payload."""


class QuoteSyncStorageError(QuoteSyncError):
    """Raised when the local record store cannot be read or written."""


class QuoteSyncBusyError(QuoteSyncError):
    """Raised when a sync pass is requested while another one is running.

    This is not a fault: callers should simply try again later.
    """

    def __init__(self, message: str = "A sync pass is already running"):
        super().__init__(message)


class QuoteSyncConflictNotFoundError(QuoteSyncError, KeyError):
    """Raised when resolving a conflict that is not pending."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"No pending conflict for record '{record_id}'")

    def __str__(self) -> str:
        return str(self.args[0])
