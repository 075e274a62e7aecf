"""Tests for the entries API server."""

from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from lifelog_sync.api import LogEntry
from lifelog_sync.server import EntryRepository, ServerSettings, create_app


def post(client: TestClient, headers: dict[str, str], *entries: LogEntry):
    return client.post("/api/entries", json=[e.to_api_dict() for e in entries], headers=headers)


class TestAuthentication:
    """Test bearer token checks."""

    def test_missing_header(self, test_client: TestClient) -> None:
        """Test a request without credentials."""
        response = test_client.get("/api/entries")

        assert response.status_code == 401
        assert "error" in response.json()

    def test_non_bearer_header(self, test_client: TestClient) -> None:
        """Test a request with the wrong scheme."""
        response = test_client.get("/api/entries", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401

    def test_wrong_key(self, test_client: TestClient) -> None:
        """Test a request with an invalid key."""
        response = test_client.get("/api/entries", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized - invalid API key"}

    def test_server_without_key(self, repository: EntryRepository, auth_headers: dict[str, str]) -> None:
        """Test that a server with no key configured refuses to serve."""
        app = create_app(settings=ServerSettings(api_key=None, db_path=":memory:"), repository=repository)
        with TestClient(app) as client:
            response = client.get("/api/entries", headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"error": "Server configuration error"}

    def test_health_is_public(self, test_client: TestClient) -> None:
        """Test that health and root need no credentials."""
        assert test_client.get("/health").json()["status"] == "ok"
        assert test_client.get("/").json()["name"] == "LifeLog API"


class TestCreateEntries:
    """Test POST /api/entries."""

    def test_create_batch(
        self,
        test_client: TestClient,
        auth_headers: dict[str, str],
        repository: EntryRepository,
        make_entry: Callable[..., LogEntry],
    ) -> None:
        """Test creating several entries."""
        response = post(test_client, auth_headers, make_entry(), make_entry())

        assert response.status_code == 200
        assert response.json() == {"created": 2}
        assert repository.count() == 2

    def test_single_object_accepted(
        self,
        test_client: TestClient,
        auth_headers: dict[str, str],
        sample_entry: LogEntry,
    ) -> None:
        """Test that a bare entry object is accepted."""
        response = test_client.post("/api/entries", json=sample_entry.to_api_dict(), headers=auth_headers)

        assert response.json() == {"created": 1}

    def test_upsert_is_idempotent(
        self,
        test_client: TestClient,
        auth_headers: dict[str, str],
        repository: EntryRepository,
        sample_entry: LogEntry,
    ) -> None:
        """Test that resubmitting an id overwrites instead of duplicating."""
        post(test_client, auth_headers, sample_entry)
        edited = sample_entry.model_copy(update={"category": "energy"})
        post(test_client, auth_headers, edited)

        assert repository.count() == 1
        stored = test_client.get(f"/api/entries/{sample_entry.id}", headers=auth_headers).json()
        assert stored["category"] == "energy"

    @pytest.mark.parametrize("field", ["id", "timestamp", "recorded_at", "source", "device_id", "data"])
    def test_missing_required_field(
        self,
        test_client: TestClient,
        auth_headers: dict[str, str],
        repository: EntryRepository,
        sample_entry: LogEntry,
        field: str,
    ) -> None:
        """Test that each required field is enforced."""
        payload = sample_entry.to_api_dict()
        del payload[field]

        response = test_client.post("/api/entries", json=[payload], headers=auth_headers)

        assert response.status_code == 400
        assert field in response.json()["error"]
        assert repository.count() == 0

    def test_invalid_value(
        self,
        test_client: TestClient,
        auth_headers: dict[str, str],
        sample_entry: LogEntry,
    ) -> None:
        """Test that a malformed field is rejected."""
        payload = sample_entry.to_api_dict()
        payload["timestamp"] = "yesterday"

        response = test_client.post("/api/entries", json=[payload], headers=auth_headers)

        assert response.status_code == 400
        assert "timestamp" in response.json()["error"]


class TestListEntries:
    """Test GET /api/entries."""

    @pytest.fixture
    def seeded(
        self,
        test_client: TestClient,
        auth_headers: dict[str, str],
        make_entry: Callable[..., LogEntry],
    ) -> list[LogEntry]:
        entries = [
            make_entry(category="mood", minutes=10),
            make_entry(category="note", value=None, text="hello", minutes=20, source="mac", device_id="mac-1"),
            make_entry(category="mood", minutes=30),
        ]
        post(test_client, auth_headers, *entries)
        return entries

    def test_newest_first(
        self, test_client: TestClient, auth_headers: dict[str, str], seeded: list[LogEntry]
    ) -> None:
        """Test ordering by occurrence time."""
        body = test_client.get("/api/entries", headers=auth_headers).json()

        assert [item["id"] for item in body] == [str(seeded[2].id), str(seeded[1].id), str(seeded[0].id)]
        assert [LogEntry.from_api_dict(item) for item in body] == list(reversed(seeded))

    def test_filters(
        self, test_client: TestClient, auth_headers: dict[str, str], seeded: list[LogEntry]
    ) -> None:
        """Test category, source and time filters."""

        def ids(**params) -> list[str]:
            return [item["id"] for item in test_client.get("/api/entries", params=params, headers=auth_headers).json()]

        assert ids(category="mood") == [str(seeded[2].id), str(seeded[0].id)]
        assert ids(source="mac") == [str(seeded[1].id)]
        assert ids(since="2024-03-01T08:20:00Z") == [str(seeded[2].id), str(seeded[1].id)]
        assert ids(until="2024-03-01T08:20:00Z") == [str(seeded[1].id), str(seeded[0].id)]
        assert ids(limit=1, offset=1) == [str(seeded[1].id)]

    def test_limit_clamped(
        self,
        repository: EntryRepository,
        auth_headers: dict[str, str],
        seeded: list[LogEntry],
    ) -> None:
        """Test limit defaults and the upper bound."""
        settings = ServerSettings(api_key="test-api-key", db_path=":memory:", default_limit=2, max_limit=1)
        with TestClient(create_app(settings=settings, repository=repository)) as client:
            assert len(client.get("/api/entries", headers=auth_headers).json()) == 1
            assert len(client.get("/api/entries", params={"limit": 500}, headers=auth_headers).json()) == 1

    def test_zero_limit_uses_default(
        self, test_client: TestClient, auth_headers: dict[str, str], seeded: list[LogEntry]
    ) -> None:
        """Test that a non-positive limit falls back to the default."""
        body = test_client.get("/api/entries", params={"limit": 0}, headers=auth_headers).json()

        assert len(body) == 3

    def test_bad_since(self, test_client: TestClient, auth_headers: dict[str, str]) -> None:
        """Test that an unparseable date is a 400."""
        response = test_client.get("/api/entries", params={"since": "soon"}, headers=auth_headers)

        assert response.status_code == 400
        assert "error" in response.json()


class TestGetEntry:
    """Test GET /api/entries/{id}."""

    def test_found(
        self, test_client: TestClient, auth_headers: dict[str, str], sample_entry: LogEntry
    ) -> None:
        """Test fetching a stored entry."""
        post(test_client, auth_headers, sample_entry)

        response = test_client.get(f"/api/entries/{sample_entry.id}", headers=auth_headers)

        assert response.status_code == 200
        assert LogEntry.from_api_dict(response.json()) == sample_entry

    def test_not_found(self, test_client: TestClient, auth_headers: dict[str, str]) -> None:
        """Test an unknown id."""
        response = test_client.get(
            "/api/entries/00000000-0000-4000-8000-000000000000", headers=auth_headers
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Entry not found"}
