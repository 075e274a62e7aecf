"""Sync engine reconciling the local store with the LifeLog API."""

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from datetime import datetime
from enum import Enum
from typing import TypeVar
from uuid import UUID

import httpx

from lifelog_sync.api import LifeLogClient, LogEntry
from lifelog_sync.config import Config
from lifelog_sync.errors import LifeLogError
from lifelog_sync.store import LocalStore
from lifelog_sync.store.local import MergeOutcome
from lifelog_sync.utils.timestamps import ensure_utc, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

SKIPPED_IN_PROGRESS = "in_progress"
SKIPPED_NOT_CONFIGURED = "not_configured"


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Split a sequence into consecutive chunks of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class SyncPhase(str, Enum):
    """What the engine is currently doing."""

    IDLE = "idle"
    UPLOADING = "uploading"
    DOWNLOADING = "downloading"


class SyncResult:
    """Results from a sync operation."""

    def __init__(self) -> None:
        """Initialize sync result."""
        self.uploaded = 0
        self.batches = 0
        self.downloaded = 0
        self.inserted = 0
        self.updated = 0
        self.skipped = 0
        self.skipped_reason: str | None = None

    @property
    def performed(self) -> bool:
        """Whether the operation ran (rather than being skipped)."""
        return self.skipped_reason is None

    def add_batch(self, size: int) -> None:
        """Record an acknowledged upload batch."""
        self.batches += 1
        self.uploaded += size

    def add_merge(self, outcome: MergeOutcome) -> None:
        """Record the merge of one downloaded entry."""
        self.downloaded += 1
        if outcome == "inserted":
            self.inserted += 1
        elif outcome == "updated":
            self.updated += 1
        else:
            self.skipped += 1

    def __str__(self) -> str:
        """String representation of results."""
        if self.skipped_reason:
            return f"Skipped ({self.skipped_reason})"
        return (
            f"Uploaded: {self.uploaded} in {self.batches} batches, "
            f"Downloaded: {self.downloaded} "
            f"(new: {self.inserted}, updated: {self.updated}, skipped: {self.skipped})"
        )


class SyncEngine:
    """Two-way synchronization between the local store and the API.

    One cycle runs at a time per engine; a request made while a cycle is in
    flight returns immediately with ``skipped_reason == "in_progress"``.
    Without credentials (no client) every request is skipped with
    ``"not_configured"``. Errors are never retried here: they are recorded
    in ``last_error`` and re-raised for the caller to decide.
    """

    BATCH_SIZE = 50
    PAGE_SIZE = 100

    def __init__(
        self,
        config: Config,
        store: LocalStore,
        client: LifeLogClient | None,
        batch_size: int = BATCH_SIZE,
        page_size: int = PAGE_SIZE,
    ) -> None:
        """Initialize sync engine.

        Args:
            config: Application configuration.
            store: Local entry store.
            client: LifeLog API client, or None when no credentials exist.
            batch_size: Entries per upload request.
            page_size: Entries per download request, capped at the
                server's maximum page of LifeLogClient.MAX_PAGE_SIZE.
        """
        if page_size > LifeLogClient.MAX_PAGE_SIZE:
            logger.warning(
                f"Page size {page_size} exceeds the server maximum, "
                f"using {LifeLogClient.MAX_PAGE_SIZE}"
            )
            page_size = LifeLogClient.MAX_PAGE_SIZE

        self.config = config
        self.storage = config.storage
        self.store = store
        self.client = client
        self.batch_size = batch_size
        self.page_size = page_size
        self.phase = SyncPhase.IDLE
        self.last_error: LifeLogError | None = None
        self._guard = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: LocalStore,
        http_client: httpx.Client | None = None,
    ) -> "SyncEngine":
        """Create an engine, with a client only if credentials are configured.

        Args:
            config: Application configuration.
            store: Local entry store.
            http_client: Optional pre-built httpx client for the API client.
        """
        api_config = config.api_configuration()
        client = LifeLogClient(api_config, http_client=http_client) if api_config else None
        return cls(config=config, store=store, client=client)

    @property
    def is_syncing(self) -> bool:
        """Whether a sync operation is currently running on this engine."""
        return self._guard.locked()

    @property
    def last_sync_date(self) -> datetime | None:
        """Start time of the last successful sync operation, if any."""
        return self.storage.get_last_sync_date()

    def upload_unsynced(self) -> SyncResult:
        """Upload every unsynced entry.

        Returns:
            Sync results.

        Raises:
            LifeLogError: If a batch fails; earlier batches stay synced.
        """
        return self._run(self._upload_phase)

    def download_entries(
        self,
        since: datetime | None = None,
        category: str | None = None,
        everything: bool = False,
    ) -> SyncResult:
        """Download entries from the API and merge them into the store.

        The watermark only advances when the download covered everything
        after it: no category filter and no lower bound later than the
        current watermark.

        Args:
            since: Lower bound on occurrence time. Defaults to the last
                completed download.
            category: Only download this category.
            everything: Ignore any lower bound and fetch all entries.

        Returns:
            Sync results.

        Raises:
            LifeLogError: If the download fails.
        """
        watermark = self.storage.get_last_download_date()
        if since is not None:
            since = ensure_utc(since)
        lower_bound = None if everything else since or watermark
        complete = category is None and (
            lower_bound is None or (watermark is not None and lower_bound <= watermark)
        )

        def download(result: SyncResult) -> None:
            self._download_phase(result, lower_bound, category)

        return self._run(download, advance_watermark=complete)

    def full_sync(self) -> SyncResult:
        """Upload unsynced entries, then download remote ones.

        The download is bounded by the last completed download, read before
        the upload starts. If the upload fails, the download is not attempted.

        Returns:
            Sync results.

        Raises:
            LifeLogError: If either phase fails.
        """

        def cycle(result: SyncResult) -> None:
            since = self.storage.get_last_download_date()
            self._upload_phase(result)
            self._download_phase(result, since, None)

        return self._run(cycle, advance_watermark=True)

    def _run(self, operation: Callable[[SyncResult], None], advance_watermark: bool = False) -> SyncResult:
        result = SyncResult()

        if self.client is None:
            logger.info("No API credentials configured, skipping sync")
            result.skipped_reason = SKIPPED_NOT_CONFIGURED
            return result

        if not self._guard.acquire(blocking=False):
            logger.warning("Sync already in progress")
            result.skipped_reason = SKIPPED_IN_PROGRESS
            return result

        started_at = utcnow()
        try:
            operation(result)
            self.last_error = None
            self.storage.set_last_error(None)
            self.storage.set_last_sync_date(started_at)
            if advance_watermark:
                self.storage.set_last_download_date(started_at)
        except LifeLogError as e:
            self.last_error = e
            self.storage.set_last_error(str(e))
            logger.error(f"Sync failed: {e}")
            raise
        finally:
            self.phase = SyncPhase.IDLE
            self._guard.release()

        logger.info(f"Sync complete: {result}")
        return result

    def _upload_phase(self, result: SyncResult) -> None:
        self.phase = SyncPhase.UPLOADING
        pending = self.store.query_unsynced()

        if not pending:
            logger.info("No entries to upload")
            return

        total_batches = (len(pending) + self.batch_size - 1) // self.batch_size
        logger.info(f"Uploading {len(pending)} entries in {total_batches} batches")

        for number, batch in enumerate(chunked(pending, self.batch_size), start=1):
            try:
                self.client.create_entries(batch)
            except LifeLogError as e:
                logger.error(
                    f"Batch {number}/{total_batches} failed, "
                    f"{result.uploaded} entries already uploaded: {e}"
                )
                raise
            # Mark before the next request so a later failure keeps this progress
            self.store.mark_synced(entry.id for entry in batch)
            result.add_batch(len(batch))
            logger.debug(f"Batch {number}/{total_batches} acknowledged ({len(batch)} entries)")

        logger.info(f"Uploaded {result.uploaded} entries")

    def _download_phase(
        self,
        result: SyncResult,
        since: datetime | None,
        category: str | None,
    ) -> None:
        self.phase = SyncPhase.DOWNLOADING
        logger.info(f"Downloading entries since {since.isoformat() if since else 'the beginning'}")

        seen: set[UUID] = set()
        offset = 0
        while True:
            page: list[LogEntry] = self.client.fetch_entries(
                since=since,
                category=category,
                limit=self.page_size,
                offset=offset,
            )
            new_ids = {entry.id for entry in page} - seen
            for entry in page:
                if entry.id in seen:
                    continue
                seen.add(entry.id)
                result.add_merge(self.store.upsert_from_remote(entry))

            if len(page) < self.page_size or not new_ids:
                break
            offset += len(page)

        if result.downloaded:
            logger.info(
                f"Added {result.inserted} new entries, updated {result.updated}, "
                f"skipped {result.skipped} deleted locally"
            )
        else:
            logger.info("No new entries from API")
