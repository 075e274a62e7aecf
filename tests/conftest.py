"""Pytest configuration and fixtures."""

import logging
import tempfile
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from lifelog_sync.api import LifeLogClient, LogData, LogEntry, Metric
from lifelog_sync.config import APIConfiguration, Config
from lifelog_sync.server import EntryRepository, ServerSettings, create_app
from lifelog_sync.store import LocalStore
from lifelog_sync.utils import StorageManager

API_URL = "https://lifelog.example.com"
API_KEY = "test-api-key"
BASE_TIME = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep credentials from the developer's environment out of the tests."""
    for name in ("LIFELOG_API_URL", "LIFELOG_CLIENT_API_KEY", "LIFELOG_API_KEY", "LIFELOG_DB_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def isolate_root_logger() -> Iterator[None]:
    """Drop logging handlers a test installed so they don't outlive its temp dir."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def temp_config_dir() -> Iterator[Path]:
    """Create a temporary configuration directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage_manager(temp_config_dir: Path) -> StorageManager:
    """Create a storage manager with temporary directory."""
    return StorageManager(temp_config_dir)


@pytest.fixture
def config(temp_config_dir: Path) -> Config:
    """Create an unconfigured config instance with temporary directory."""
    return Config(temp_config_dir)


@pytest.fixture
def configured_config(config: Config) -> Config:
    """Create a config with an API URL and key."""
    config.update_settings(base_url=API_URL, source="iphone")
    config.set_api_key(API_KEY)
    return config


@pytest.fixture
def api_configuration() -> APIConfiguration:
    """Create API connection settings."""
    return APIConfiguration(API_URL, API_KEY, timeout=5.0)


@pytest.fixture
def store() -> Iterator[LocalStore]:
    """Create an in-memory local store."""
    with LocalStore(":memory:") as local_store:
        yield local_store


@pytest.fixture
def make_entry() -> Callable[..., LogEntry]:
    """Factory for entries at increasing times after BASE_TIME."""
    counter = {"n": 0}

    def factory(
        category: str | None = "mood",
        text: str | None = None,
        value: float | None = 7,
        minutes: int | None = None,
        source: str = "iphone",
        device_id: str = "iphone-test",
    ) -> LogEntry:
        counter["n"] += 1
        offset = counter["n"] if minutes is None else minutes
        metric = None
        if value is not None:
            metric = Metric(name=category or "value", value=value, scale_min=1, scale_max=10)
        return LogEntry.create(
            source=source,
            device_id=device_id,
            data=LogData(text=text, metric=metric),
            category=category,
            occurred_at=BASE_TIME + timedelta(minutes=offset),
        )

    return factory


@pytest.fixture
def sample_entry(make_entry: Callable[..., LogEntry]) -> LogEntry:
    """Create a sample mood entry."""
    return make_entry(text="Feeling good")


@pytest.fixture
def server_settings() -> ServerSettings:
    """Create server settings with an in-memory database."""
    return ServerSettings(api_key=API_KEY, db_path=":memory:")


@pytest.fixture
def repository() -> Iterator[EntryRepository]:
    """Create an in-memory server repository."""
    repo = EntryRepository(":memory:")
    yield repo
    repo.close()


@pytest.fixture
def test_client(server_settings: ServerSettings, repository: EntryRepository) -> Iterator[TestClient]:
    """Create a test client for the API server."""
    app = create_app(settings=server_settings, repository=repository)
    with TestClient(app, base_url=API_URL) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization headers accepted by the test server."""
    return {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def make_client(api_configuration: APIConfiguration) -> Callable[[Callable[[httpx.Request], httpx.Response]], LifeLogClient]:
    """Factory for LifeLog clients backed by a mock transport."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> LifeLogClient:
        http_client = httpx.Client(base_url=API_URL, transport=httpx.MockTransport(handler))
        return LifeLogClient(api_configuration, http_client=http_client)

    return factory
