"""Server configuration loaded from environment variables (or a .env file).

Environment variables:
- ``LIFELOG_API_KEY``: bearer token clients must present. When unset, every
  authenticated request fails with 500 instead of being let through.
- ``LIFELOG_DB_PATH``: SQLite database file (``:memory:`` for tests).
- ``LIFELOG_DEFAULT_LIMIT`` / ``LIFELOG_MAX_LIMIT``: list paging bounds.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Typed settings for the entries API."""

    model_config = SettingsConfigDict(
        env_prefix="LIFELOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: str | None = None
    db_path: str = "lifelog.db"
    default_limit: int = 100
    max_limit: int = 1000
