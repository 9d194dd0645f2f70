"""Data models for QuoteSync records."""

from dataclasses import asdict, dataclass, replace
from typing import Any

from .utils import DEFAULT_CATEGORY, coerce_timestamp, generate_record_id, now_ms


@dataclass(frozen=True)
class Record:
    """A single synchronized quote.

    Records are immutable value snapshots: any change produces a new
    record via :meth:`replace`.
    """

    id: str
    """Opaque identifier, unique within a replica and never reassigned"""

    text: str
    """Quote text"""

    category: str = DEFAULT_CATEGORY
    """Display category"""

    updated_at: int = 0
    """Last write time in epoch milliseconds"""

    CONTENT_FIELDS = ("text",)
    """User-visible fields compared when deciding whether two versions diverge"""

    @classmethod
    def create(cls, text: str, category: str = "") -> "Record":
        """Create a new local record stamped with the current time."""
        created = now_ms()
        return cls(
            id=generate_record_id(created),
            text=text,
            category=category or DEFAULT_CATEGORY,
            updated_at=created,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        """Create a Record from its serialized form.

        Accepts both ``updatedAt`` and ``updated_at``.

        Raises:
            ValueError: If the record has no id
        """
        record_id = data.get("id")
        if record_id is None or record_id == "":
            raise ValueError(f"Record without id: {data!r}")

        timestamp = data.get("updatedAt", data.get("updated_at"))
        return cls(
            id=str(record_id),
            text=str(data.get("text", "")),
            category=str(data.get("category") or DEFAULT_CATEGORY),
            updated_at=coerce_timestamp(timestamp),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert record to dictionary for JSON serialization."""
        data = asdict(self)
        data["updatedAt"] = data.pop("updated_at")
        return data

    def replace(self, **changes: Any) -> "Record":
        """Return a copy of this record with the given fields changed."""
        return replace(self, **changes)

    def content_differs(self, other: "Record") -> bool:
        """Check whether two versions disagree in user-visible content.

        Timestamp-only differences are not content differences.
        """
        return any(
            getattr(self, name) != getattr(other, name) for name in self.CONTENT_FIELDS
        )
