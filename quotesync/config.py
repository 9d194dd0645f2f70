"""Configuration management for QuoteSync.

Settings are resolved from environment variables first, then from a JSON
config file in the user's config directory, then from built-in defaults.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import QuoteSyncConfigError
from .utils import DEFAULT_SYNC_INTERVAL

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
DATA_FILE_NAME = "quotes.json"
DEFAULT_POLICY = "autoRemoteWins"

_KEYS = ("server_url", "data_file", "sync_interval", "default_policy")


class Config:
    """Reads and writes QuoteSync settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                ``$QUOTESYNC_CONFIG_DIR`` or ~/.config/quotesync/
        """
        if config_dir is None:
            env_dir = os.environ.get("QUOTESYNC_CONFIG_DIR")
            config_dir = (
                Path(env_dir) if env_dir else Path.home() / ".config" / "quotesync"
            )
        self.config_dir = config_dir
        self._values: Optional[dict[str, Any]] = None

    def get_config_path(self) -> Path:
        """Get the path of the config file."""
        return self.config_dir / CONFIG_FILE_NAME

    def _load(self) -> dict[str, Any]:
        if self._values is None:
            path = self.get_config_path()
            self._values = {}
            if path.exists():
                try:
                    with open(path, encoding="utf-8") as f:
                        data = json.load(f)
                    if isinstance(data, dict):
                        self._values = data
                    else:
                        logger.warning(f"Ignoring malformed config file {path}")
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Failed to read config file {path}: {e}")
        return self._values

    def _get(self, key: str) -> Any:
        env_value = os.environ.get(f"QUOTESYNC_{key.upper()}")
        if env_value:
            return env_value
        return self._load().get(key)

    @property
    def server_url(self) -> Optional[str]:
        """Base URL of the remote quote service."""
        value = self._get("server_url")
        return str(value).rstrip("/") if value else None

    @property
    def data_file(self) -> Path:
        """Path of the local record file."""
        value = self._get("data_file")
        return Path(value).expanduser() if value else self.config_dir / DATA_FILE_NAME

    @property
    def sync_interval(self) -> float:
        """Seconds between automatic sync passes."""
        value = self._get("sync_interval")
        if value is None:
            return DEFAULT_SYNC_INTERVAL
        try:
            interval = float(value)
        except (TypeError, ValueError) as e:
            raise QuoteSyncConfigError(f"Invalid sync interval: {value!r}") from e
        if interval <= 0:
            raise QuoteSyncConfigError(f"Sync interval must be positive: {value!r}")
        return interval

    @property
    def default_policy(self) -> str:
        """Conflict policy used when none is given."""
        return str(self._get("default_policy") or DEFAULT_POLICY)

    def is_configured(self) -> bool:
        """Check whether a remote server has been configured."""
        return self.server_url is not None

    def save(self, **values: Any) -> None:
        """Persist settings to the config file.

        Args:
            **values: Settings to store; ``None`` removes a setting

        Raises:
            QuoteSyncConfigError: If an unknown key is given or the file
                cannot be written
        """
        unknown = set(values) - set(_KEYS)
        if unknown:
            raise QuoteSyncConfigError(
                f"Unknown config key(s): {', '.join(sorted(unknown))}"
            )

        data = dict(self._load())
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = str(value) if isinstance(value, Path) else value

        path = self.get_config_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise QuoteSyncConfigError(f"Failed to write config file: {e}") from e

        self._values = data
        logger.debug(f"Saved configuration to {path}")


config = Config()
