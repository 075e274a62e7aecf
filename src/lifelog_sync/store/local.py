"""SQLite-backed local store of entries and their sync state.

Every entry is kept with a ``synced`` flag and lifecycle timestamps. Entries
are created unsynced by the user, flipped to synced once the server has
acknowledged them, and overwritten by server copies during download. A
local deletion leaves a tombstone so that a later download does not bring
the entry back.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Literal
from uuid import UUID

from lifelog_sync.api.models import LogEntry
from lifelog_sync.errors import StorageError
from lifelog_sync.utils.timestamps import format_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

MergeOutcome = Literal["inserted", "updated", "skipped"]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    source TEXT NOT NULL,
    device_id TEXT NOT NULL,
    category TEXT,
    body TEXT NOT NULL,
    synced INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    synced_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_entries_sync ON entries(synced, timestamp);
CREATE INDEX IF NOT EXISTS idx_entries_category ON entries(category) WHERE category IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_entries_source ON entries(source);
CREATE TABLE IF NOT EXISTS deleted_entries (
    id TEXT PRIMARY KEY,
    deleted_at TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class StoredEntry:
    """An entry together with its local bookkeeping."""

    entry: LogEntry
    synced: bool
    created_at: datetime
    updated_at: datetime
    synced_at: datetime | None = None


class LocalStore:
    """Per-device store of entries with sync-state bookkeeping.

    A single connection is shared and guarded by a lock, so the store can be
    used from the sync engine and the UI thread alike.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        """Initialize the local store.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
        """
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        with self._transaction() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block under the lock in a single transaction.

        Raises:
            StorageError: If SQLite reports an error; the transaction is rolled back.
        """
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                logger.error(f"Local store error: {e}")
                raise StorageError(str(e)) from e

    @staticmethod
    def _entry_params(entry: LogEntry) -> dict[str, Any]:
        return {
            "id": str(entry.id),
            "timestamp": format_timestamp(entry.occurred_at),
            "recorded_at": format_timestamp(entry.recorded_at),
            "source": entry.source.value,
            "device_id": entry.device_id,
            "category": entry.category,
            "body": json.dumps(entry.to_api_dict()),
            "now": format_timestamp(utcnow()),
        }

    @staticmethod
    def _to_entry(row: sqlite3.Row) -> LogEntry:
        return LogEntry.model_validate_json(row["body"])

    @classmethod
    def _to_stored(cls, row: sqlite3.Row) -> StoredEntry:
        return StoredEntry(
            entry=cls._to_entry(row),
            synced=bool(row["synced"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            synced_at=parse_timestamp(row["synced_at"]) if row["synced_at"] else None,
        )

    def add(self, entry: LogEntry) -> None:
        """Store a locally created entry as unsynced.

        Re-adding an existing id overwrites it and marks it unsynced again,
        so the edit is uploaded on the next sync.

        Args:
            entry: Entry to store.
        """
        params = self._entry_params(entry)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO entries (
                    id, timestamp, recorded_at, source, device_id, category, body,
                    synced, created_at, updated_at, synced_at
                ) VALUES (
                    :id, :timestamp, :recorded_at, :source, :device_id, :category, :body,
                    0, :now, :now, NULL
                )
                ON CONFLICT(id) DO UPDATE SET
                    timestamp = excluded.timestamp,
                    recorded_at = excluded.recorded_at,
                    source = excluded.source,
                    device_id = excluded.device_id,
                    category = excluded.category,
                    body = excluded.body,
                    synced = 0,
                    updated_at = excluded.updated_at,
                    synced_at = NULL
                """,
                params,
            )
            conn.execute("DELETE FROM deleted_entries WHERE id = ?", (params["id"],))

    def query_unsynced(self) -> list[LogEntry]:
        """Get all unsynced entries, oldest occurrence first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT body FROM entries WHERE synced = 0 "
                "ORDER BY timestamp ASC, recorded_at ASC, rowid ASC"
            ).fetchall()
        return [self._to_entry(row) for row in rows]

    def mark_synced(self, ids: Iterable[UUID]) -> int:
        """Mark exactly the given entries as synced.

        Idempotent; unknown ids are ignored.

        Args:
            ids: Entry ids acknowledged by the server.

        Returns:
            Number of entries that changed from unsynced to synced.
        """
        now = format_timestamp(utcnow())
        changed = 0
        with self._transaction() as conn:
            for entry_id in ids:
                cursor = conn.execute(
                    "UPDATE entries SET synced = 1, synced_at = ? WHERE id = ? AND synced = 0",
                    (now, str(entry_id)),
                )
                changed += cursor.rowcount
        return changed

    def all_ids(self) -> set[UUID]:
        """Get the ids of every stored entry."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT id FROM entries").fetchall()
        return {UUID(row["id"]) for row in rows}

    def upsert_from_remote(self, entry: LogEntry) -> MergeOutcome:
        """Merge a server copy into the store.

        The server copy always wins: a known entry has every field
        overwritten, an unknown one is inserted. Either way it ends up
        synced. Entries deleted locally are left deleted.

        Args:
            entry: Entry downloaded from the server.

        Returns:
            "inserted", "updated" or "skipped".
        """
        params = self._entry_params(entry)
        with self._transaction() as conn:
            if conn.execute(
                "SELECT 1 FROM deleted_entries WHERE id = ?", (params["id"],)
            ).fetchone():
                return "skipped"

            cursor = conn.execute(
                """
                UPDATE entries SET
                    timestamp = :timestamp,
                    recorded_at = :recorded_at,
                    source = :source,
                    device_id = :device_id,
                    category = :category,
                    body = :body,
                    synced = 1,
                    updated_at = :now,
                    synced_at = :now
                WHERE id = :id
                """,
                params,
            )
            if cursor.rowcount:
                return "updated"

            conn.execute(
                """
                INSERT INTO entries (
                    id, timestamp, recorded_at, source, device_id, category, body,
                    synced, created_at, updated_at, synced_at
                ) VALUES (
                    :id, :timestamp, :recorded_at, :source, :device_id, :category, :body,
                    1, :now, :now, :now
                )
                """,
                params,
            )
            return "inserted"

    def get(self, entry_id: UUID) -> LogEntry | None:
        """Get an entry by id."""
        record = self.get_record(entry_id)
        return record.entry if record else None

    def get_record(self, entry_id: UUID) -> StoredEntry | None:
        """Get an entry with its bookkeeping fields."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM entries WHERE id = ?", (str(entry_id),)).fetchone()
        return self._to_stored(row) if row else None

    def is_synced(self, entry_id: UUID) -> bool | None:
        """Get the synced flag of an entry, or None if it is unknown."""
        record = self.get_record(entry_id)
        return record.synced if record else None

    def query(
        self,
        synced: bool | None = None,
        category: str | None = None,
        source: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[StoredEntry]:
        """Query entries, newest occurrence first.

        Args:
            synced: Filter by sync state.
            category: Filter by category.
            source: Filter by source device.
            since: Only entries that occurred at or after this time.
            until: Only entries that occurred at or before this time.
            limit: Maximum number of entries.

        Returns:
            Matching entries with bookkeeping.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if synced is not None:
            conditions.append("synced = ?")
            params.append(1 if synced else 0)
        if category:
            conditions.append("category = ?")
            params.append(category)
        if source:
            conditions.append("source = ?")
            params.append(source)
        if since:
            conditions.append("timestamp >= ?")
            params.append(format_timestamp(since))
        if until:
            conditions.append("timestamp <= ?")
            params.append(format_timestamp(until))

        sql = "SELECT * FROM entries"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY timestamp DESC, rowid DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._to_stored(row) for row in rows]

    def count(self) -> int:
        """Get the total number of stored entries."""
        with self._transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]

    def count_unsynced(self) -> int:
        """Get the number of entries waiting for upload."""
        with self._transaction() as conn:
            return conn.execute("SELECT COUNT(*) FROM entries WHERE synced = 0").fetchone()[0]

    def delete(self, entry_id: UUID) -> bool:
        """Delete an entry locally.

        There is no remote deletion; the tombstone only keeps downloads
        from re-inserting the entry on this device.

        Args:
            entry_id: Entry to delete.

        Returns:
            True if the entry existed.
        """
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM entries WHERE id = ?", (str(entry_id),))
            conn.execute(
                "INSERT OR REPLACE INTO deleted_entries (id, deleted_at) VALUES (?, ?)",
                (str(entry_id), format_timestamp(utcnow())),
            )
        return cursor.rowcount > 0

    def deleted_ids(self) -> set[UUID]:
        """Get the ids of locally deleted entries."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT id FROM deleted_entries").fetchall()
        return {UUID(row["id"]) for row in rows}

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
