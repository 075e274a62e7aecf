"""LifeLog API client."""

import logging
import threading
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx
from pydantic import ValidationError

from lifelog_sync.api.models import CreateEntriesResponse, EntryFilter, LogEntry
from lifelog_sync.config import APIConfiguration
from lifelog_sync.errors import (
    InvalidRequestError,
    MalformedResponseError,
    NetworkUnavailableError,
    NotFoundError,
    RequestTimeoutError,
    ServerError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

ENTRIES_PATH = "/api/entries"


class LifeLogClient:
    """Client for the LifeLog entries API.

    Requests are serialized through a lock, so one client instance never
    has two requests in flight on the same connection state.
    """

    MAX_BATCH_SIZE = 50
    MAX_PAGE_SIZE = 1000

    def __init__(
        self,
        configuration: APIConfiguration,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize LifeLog client.

        Args:
            configuration: API URL, key and timeout.
            http_client: Pre-built httpx client (e.g. with a mock transport).
                Relative request paths are resolved against its base URL.
        """
        self.configuration = configuration
        self.client = http_client or httpx.Client(
            base_url=configuration.base_url,
            headers={"Accept": "application/json"},
            timeout=configuration.timeout,
        )
        self._lock = threading.Lock()

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.configuration.api_key}"}

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to LifeLog errors.

        Raises:
            RequestTimeoutError: If the request exceeded the timeout.
            NetworkUnavailableError: If the server could not be reached.
            MalformedResponseError: If the response could not be read,
                e.g. a body that does not match its Content-Encoding.
        """
        with self._lock:
            try:
                return self.client.request(method, path, headers=self._auth_headers(), **kwargs)
            except httpx.TimeoutException as e:
                logger.warning(f"{method} {path} timed out: {e}")
                raise RequestTimeoutError() from e
            except httpx.TransportError as e:
                logger.warning(f"{method} {path} failed: {e}")
                raise NetworkUnavailableError() from e
            except httpx.HTTPError as e:
                logger.error(f"{method} {path} returned an unreadable response: {e}")
                raise MalformedResponseError(0, "", str(e)) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            message = body.get("error") or body.get("detail")
            if isinstance(message, str):
                return message
        return None

    def _check_status(self, response: httpx.Response, missing_is_not_found: bool = False) -> None:
        """Raise the matching LifeLog error for a non-2xx response.

        Raises:
            UnauthorizedError: On 401.
            NotFoundError: On 404 when ``missing_is_not_found`` is set.
            ServerError: On any other non-success status.
        """
        if response.is_success:
            return

        message = self._error_message(response)
        logger.error(
            f"{response.request.method} {response.request.url.path} "
            f"returned {response.status_code}: {message or response.text[:200]}"
        )
        if response.status_code == 401:
            raise UnauthorizedError()
        if response.status_code == 404 and missing_is_not_found:
            raise NotFoundError(message)
        raise ServerError(response.status_code, message)

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"Undecodable response ({response.status_code}) "
                f"from {response.request.url.path}: {response.text!r}"
            )
            raise MalformedResponseError(response.status_code, response.text, str(e)) from e

    def create_entries(self, entries: Sequence[LogEntry]) -> CreateEntriesResponse:
        """Upload a batch of entries; the server upserts each one by id.

        Args:
            entries: Non-empty batch of at most MAX_BATCH_SIZE entries.

        Returns:
            Server acknowledgement.

        Raises:
            InvalidRequestError: If the batch is empty, too large, or holds
                something other than entries. Nothing is sent in that case.
            LifeLogError: If the request fails.
        """
        if not entries:
            raise InvalidRequestError("No entries provided")
        if len(entries) > self.MAX_BATCH_SIZE:
            raise InvalidRequestError(
                f"Batch of {len(entries)} entries exceeds the limit of {self.MAX_BATCH_SIZE}"
            )
        for entry in entries:
            if not isinstance(entry, LogEntry):
                raise InvalidRequestError(f"Not a log entry: {type(entry).__name__}")

        payload = [entry.to_api_dict() for entry in entries]
        response = self._request("POST", ENTRIES_PATH, json=payload)
        self._check_status(response)

        try:
            result = CreateEntriesResponse.model_validate(self._decode_json(response))
        except ValidationError as e:
            logger.error(f"Unexpected create response ({response.status_code}): {response.text!r}")
            raise MalformedResponseError(response.status_code, response.text, str(e)) from e

        if result.created != len(entries):
            logger.warning(f"Server acknowledged {result.created} of {len(entries)} entries")
        return result

    def fetch_entries(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        category: str | None = None,
        source: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[LogEntry]:
        """Fetch entries matching the given filters.

        Args:
            since: Only entries that occurred at or after this time.
            until: Only entries that occurred at or before this time.
            category: Filter by category.
            source: Filter by source device.
            limit: Maximum entries to return (the server caps this at MAX_PAGE_SIZE).
            offset: Pagination offset.

        Returns:
            Entries, newest first.

        Raises:
            LifeLogError: If the request fails or the body cannot be decoded.
        """
        try:
            query = EntryFilter(
                since=since,
                until=until,
                category=category,
                source=source,
                limit=limit,
                offset=offset,
            )
        except ValidationError as e:
            raise InvalidRequestError(str(e)) from e

        response = self._request("GET", ENTRIES_PATH, params=query.to_params())
        self._check_status(response)

        body = self._decode_json(response)
        if not isinstance(body, list):
            logger.error(f"Expected a list of entries, got: {response.text!r}")
            raise MalformedResponseError(response.status_code, response.text, "expected a JSON array")
        try:
            return [LogEntry.from_api_dict(item) for item in body]
        except ValidationError as e:
            logger.error(f"Entries failed validation ({response.status_code}): {response.text!r}")
            raise MalformedResponseError(response.status_code, response.text, str(e)) from e

    def fetch_entry(self, entry_id: UUID | str) -> LogEntry:
        """Fetch a single entry.

        Args:
            entry_id: Entry ID.

        Returns:
            The entry.

        Raises:
            NotFoundError: If the server has no entry with this id.
            LifeLogError: If the request fails.
        """
        response = self._request("GET", f"{ENTRIES_PATH}/{entry_id}")
        self._check_status(response, missing_is_not_found=True)
        try:
            return LogEntry.from_api_dict(self._decode_json(response))
        except ValidationError as e:
            logger.error(f"Entry {entry_id} failed validation: {response.text!r}")
            raise MalformedResponseError(response.status_code, response.text, str(e)) from e

    def health(self) -> dict[str, Any]:
        """Check that the API is reachable.

        Returns:
            Health payload from the server.
        """
        response = self._request("GET", "/health")
        self._check_status(response)
        return self._decode_json(response)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> "LifeLogClient":
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
