"""Configuration management for the LifeLog sync client."""

import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

from lifelog_sync.errors import InvalidURLError
from lifelog_sync.utils.storage import StorageManager

TOKEN_SERVICE = "lifelog"
DEFAULT_TIMEOUT = 30.0
# Client key override; LIFELOG_API_KEY belongs to the server
API_KEY_ENV = "LIFELOG_CLIENT_API_KEY"


class APIConfiguration:
    """Connection settings for the LifeLog API."""

    def __init__(self, base_url: str, api_key: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize API configuration.

        Args:
            base_url: Base URL of the API (e.g. "https://me-lifelog.web.val.run").
            api_key: Bearer token.
            timeout: Per-request timeout in seconds.

        Raises:
            InvalidURLError: If the URL has no http(s) scheme or no host.
        """
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidURLError(base_url)

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, APIConfiguration):
            return NotImplemented
        return (self.base_url, self.api_key, self.timeout) == (
            other.base_url,
            other.api_key,
            other.timeout,
        )

    def __repr__(self) -> str:
        return f"APIConfiguration(base_url={self.base_url!r}, timeout={self.timeout})"


class Config:
    """Application configuration, passed explicitly to the sync engine."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize configuration.

        Args:
            config_dir: Directory for storing configuration.
        """
        self.storage = StorageManager(config_dir)
        self._settings = self.storage.load_settings()

    def get_settings(self) -> dict[str, Any]:
        """Get the stored client settings."""
        return self._settings

    def update_settings(self, **values: Any) -> None:
        """Update and persist client settings.

        Args:
            **values: Settings to set; None values remove the key.
        """
        for key, value in values.items():
            if value is None:
                self._settings.pop(key, None)
            else:
                self._settings[key] = value
        self.storage.save_settings(self._settings)

    @property
    def base_url(self) -> str | None:
        return os.environ.get("LIFELOG_API_URL") or self._settings.get("base_url")

    @property
    def api_key(self) -> str | None:
        return os.environ.get(API_KEY_ENV) or self.storage.get_token(TOKEN_SERVICE)

    def set_api_key(self, api_key: str) -> None:
        self.storage.set_token(TOKEN_SERVICE, api_key)

    @property
    def timeout(self) -> float:
        return float(self._settings.get("timeout", DEFAULT_TIMEOUT))

    @property
    def source(self) -> str:
        return self._settings.get("source", "cli")

    @property
    def database_path(self) -> Path:
        path = self._settings.get("database_path")
        return Path(path) if path else self.storage.database_file

    @property
    def device_id(self) -> str:
        """Stable identifier for this device, generated on first use."""
        state = self.storage.load_state()
        device_id = state.get("device_id")
        if not device_id:
            device_id = f"{self.source}-{uuid4()}"
            state["device_id"] = device_id
            self.storage.save_state(state)
        return device_id

    def is_configured(self) -> bool:
        """Check whether both an API URL and an API key are available."""
        return bool(self.base_url and self.api_key)

    def api_configuration(self) -> APIConfiguration | None:
        """Build the API configuration.

        Returns:
            API configuration, or None when no URL or key is configured.

        Raises:
            InvalidURLError: If the configured URL is malformed.
        """
        if not self.is_configured():
            return None
        return APIConfiguration(self.base_url, self.api_key, timeout=self.timeout)
