"""On-disk settings, sync state and API credentials of the sync client.

Layout of the configuration directory:

- ``config.yaml``: user settings (API URL, timeout, device type).
- ``state.json``: sync bookkeeping (last sync, download watermark, last
  error, device id).
- ``tokens.json``: API keys, readable by the owner only.
- ``entries.db``: the local entry store.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

LAST_SYNC_KEY = "last_sync_date"
LAST_DOWNLOAD_KEY = "last_download_date"
LAST_ERROR_KEY = "last_error"


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path) as f:
        return json.load(f)


class StorageManager:
    """Reads and writes the files in the configuration directory."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize storage manager.

        Args:
            config_dir: Directory to store configuration. Defaults to ~/.lifelog-sync/
        """
        self.config_dir = config_dir or Path.home() / ".lifelog-sync"
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.settings_file = self.config_dir / "config.yaml"
        self.state_file = self.config_dir / "state.json"
        self.tokens_file = self.config_dir / "tokens.json"
        self.database_file = self.config_dir / "entries.db"

    def load_settings(self) -> dict[str, Any]:
        """Load user settings, or an empty dict before the first configure."""
        if not self.settings_file.exists():
            return {}
        with open(self.settings_file) as f:
            return yaml.safe_load(f) or {}

    def save_settings(self, settings: dict[str, Any]) -> None:
        with open(self.settings_file, "w") as f:
            yaml.dump(settings, f, default_flow_style=False, sort_keys=False)

    def load_state(self) -> dict[str, Any]:
        return _read_json(self.state_file)

    def save_state(self, state: dict[str, Any]) -> None:
        with open(self.state_file, "w") as f:
            json.dump(state, f, indent=2)

    def _update_state(self, key: str, value: Any) -> None:
        """Set one state key, removing it when ``value`` is None."""
        state = self.load_state()
        if value is None:
            state.pop(key, None)
        else:
            state[key] = value
        self.save_state(state)

    def _state_date(self, key: str) -> datetime | None:
        value = self.load_state().get(key)
        return datetime.fromisoformat(value) if value else None

    def get_last_sync_date(self) -> datetime | None:
        """Get the start time of the last successful sync operation."""
        return self._state_date(LAST_SYNC_KEY)

    def set_last_sync_date(self, date: datetime) -> None:
        self._update_state(LAST_SYNC_KEY, date.isoformat())

    def get_last_download_date(self) -> datetime | None:
        """Get the download watermark.

        This is the start time of the last complete, uncategorized download;
        the next download asks only for entries that occurred after it.
        """
        return self._state_date(LAST_DOWNLOAD_KEY)

    def set_last_download_date(self, date: datetime) -> None:
        self._update_state(LAST_DOWNLOAD_KEY, date.isoformat())

    def get_last_error(self) -> str | None:
        """Get the message of the most recent sync failure, if any."""
        return self.load_state().get(LAST_ERROR_KEY)

    def set_last_error(self, message: str | None) -> None:
        """Record the most recent sync failure; None clears it."""
        self._update_state(LAST_ERROR_KEY, message)

    def load_tokens(self) -> dict[str, str]:
        return _read_json(self.tokens_file)

    def save_tokens(self, tokens: dict[str, str]) -> None:
        """Write API keys to a file only the owner can read.

        Args:
            tokens: Service name to API key.
        """
        self.tokens_file.touch(mode=0o600, exist_ok=True)
        self.tokens_file.chmod(0o600)
        with open(self.tokens_file, "w") as f:
            json.dump(tokens, f)

    def get_token(self, service: str) -> str | None:
        """Get the stored API key for a service (e.g. "lifelog")."""
        return self.load_tokens().get(service)

    def set_token(self, service: str, token: str) -> None:
        tokens = self.load_tokens()
        tokens[service] = token
        self.save_tokens(tokens)
