"""Conflict policies and resolution choices."""

from enum import Enum


class ConflictPolicy(str, Enum):
    """How a sync pass treats records that diverge between replicas."""

    AUTO_REMOTE_WINS = "autoRemoteWins"
    """Apply last-writer-wins automatically (remote wins ties)"""

    MANUAL = "manual"
    """Queue every divergence as a conflict for the user to resolve"""

    @classmethod
    def from_string(cls, value: str) -> "ConflictPolicy":
        """Parse a policy from its name or abbreviation.

        Args:
            value: ``autoRemoteWins``/``auto``/``arw`` or ``manual``/``m``

        Raises:
            ValueError: If the value is not a known policy
        """
        if isinstance(value, ConflictPolicy):
            return value
        normalized = value.strip().lower()
        aliases = {
            "autoremotewins": cls.AUTO_REMOTE_WINS,
            "auto": cls.AUTO_REMOTE_WINS,
            "arw": cls.AUTO_REMOTE_WINS,
            "manual": cls.MANUAL,
            "m": cls.MANUAL,
        }
        if normalized not in aliases:
            raise ValueError(
                f"Unknown conflict policy: {value}. "
                f"Valid policies: autoRemoteWins (auto), manual (m)"
            )
        return aliases[normalized]

    @property
    def resolves_automatically(self) -> bool:
        return self == ConflictPolicy.AUTO_REMOTE_WINS


class Resolution(str, Enum):
    """Choice applied to a pending conflict."""

    KEEP_LOCAL = "local"
    """Keep the local version and push it to the remote service"""

    KEEP_REMOTE = "remote"
    """Overwrite the local version with the remote one"""

    @classmethod
    def from_string(cls, value: str) -> "Resolution":
        """Parse a resolution choice (``local``/``l`` or ``remote``/``r``)."""
        if isinstance(value, Resolution):
            return value
        normalized = value.strip().lower()
        if normalized in ("local", "l", "keeplocal"):
            return cls.KEEP_LOCAL
        if normalized in ("remote", "r", "server", "keepremote"):
            return cls.KEEP_REMOTE
        raise ValueError(f"Unknown resolution: {value}. Use 'local' or 'remote'")
