"""Utility functions for QuoteSync."""

import random
import string
import time
from datetime import datetime, timezone
from typing import Optional, Union

# =============================================================================
# Constants for sync operations
# =============================================================================

# Polling interval for automatic sync (seconds)
DEFAULT_SYNC_INTERVAL: float = 10.0

# Retry configuration for transient remote errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Request timeout for the remote service (seconds)
DEFAULT_TIMEOUT: float = 30.0

# Category assigned to records created without one
DEFAULT_CATEGORY: str = "Uncategorized"

# Prefix of ids for records created on this replica
LOCAL_ID_PREFIX: str = "l-"


# =============================================================================
# Timestamp utilities
# =============================================================================


def now_ms() -> int:
    """Return the current time in epoch milliseconds."""
    return int(time.time() * 1000)


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[int]:
    """Parse an ISO format timestamp into epoch milliseconds.

    Args:
        timestamp_str: ISO format timestamp string (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Epoch milliseconds or None if parsing fails. Naive timestamps are
        interpreted as UTC.
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"

        dt = datetime.fromisoformat(timestamp_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    except (ValueError, AttributeError):
        return None


def coerce_timestamp(value: Union[int, float, str, None]) -> int:
    """Convert a wire timestamp into epoch milliseconds.

    Accepts integer/float milliseconds, numeric strings (including float and
    exponent forms) and ISO strings.
    Missing or unparseable values become 0 so that such records always
    compare as the oldest version.

    Examples:
        >>> coerce_timestamp(1700000000000)
        1700000000000
        >>> coerce_timestamp("1700000000000")
        1700000000000
        >>> coerce_timestamp("1.7e12")
        1700000000000
        >>> coerce_timestamp(None)
        0
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    value = value.strip()
    if value.lstrip("-").isdigit():
        return int(value)
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        pass
    parsed = parse_iso_timestamp(value)
    return parsed if parsed is not None else 0


def format_timestamp(timestamp_ms: int) -> str:
    """Format epoch milliseconds as a local time string.

    Args:
        timestamp_ms: Epoch milliseconds

    Returns:
        Formatted string (e.g., "2025-01-15 10:30:00"), or "-" for 0
    """
    if not timestamp_ms:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# Identifier utilities
# =============================================================================


def generate_record_id(timestamp_ms: Optional[int] = None) -> str:
    """Generate a fresh id for a locally created record.

    The id combines the creation time with four random base36 characters,
    e.g. ``l-1700000000000-a9x2``.

    Args:
        timestamp_ms: Creation time (defaults to now)

    Returns:
        New record id
    """
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(random.choice(alphabet) for _ in range(4))
    return f"{LOCAL_ID_PREFIX}{timestamp_ms}-{suffix}"


def truncate(text: str, width: int = 60) -> str:
    """Shorten text for single-line display.

    Examples:
        >>> truncate("short")
        'short'
        >>> truncate("a" * 10, width=6)
        'aaa...'
    """
    if len(text) <= width:
        return text
    return text[: max(width - 3, 0)] + "..."
