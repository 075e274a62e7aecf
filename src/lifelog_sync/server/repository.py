"""Repository: SQL operations for the server-side ``entries`` table.

DB access only. Entries are keyed by id and written with an upsert, so
submitting the same id twice overwrites the row with the later copy.
"""

import json
import sqlite3
import threading
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from lifelog_sync.api.models import LogEntry
from lifelog_sync.utils.timestamps import format_timestamp

_SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    source TEXT NOT NULL,
    device_id TEXT NOT NULL,
    category TEXT,
    data TEXT NOT NULL,
    created_at TEXT DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_timestamp ON entries(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_category ON entries(category) WHERE category IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_source ON entries(source);
"""

_UPSERT = """
INSERT INTO entries (id, timestamp, recorded_at, source, device_id, category, data)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    timestamp = excluded.timestamp,
    recorded_at = excluded.recorded_at,
    source = excluded.source,
    device_id = excluded.device_id,
    category = excluded.category,
    data = excluded.data
"""


class EntryRepository:
    """SQLite access for entries."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.executescript(_SCHEMA)

    @staticmethod
    def _to_wire(row: sqlite3.Row) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "id": row["id"],
            "timestamp": row["timestamp"],
            "recorded_at": row["recorded_at"],
            "source": row["source"],
            "device_id": row["device_id"],
            "data": json.loads(row["data"]),
        }
        if row["category"]:
            entry["category"] = row["category"]
        return entry

    def upsert_entries(self, entries: Sequence[LogEntry]) -> int:
        """Insert or overwrite entries by id in one transaction.

        Returns the number of entries written (not the number of new rows).
        """
        rows = [
            (
                str(e.id),
                format_timestamp(e.occurred_at),
                format_timestamp(e.recorded_at),
                e.source.value,
                e.device_id,
                e.category,
                json.dumps(e.data.model_dump(mode="json", exclude_none=True)),
            )
            for e in entries
        ]
        with self._lock, self._conn:
            self._conn.executemany(_UPSERT, rows)
        return len(rows)

    def list_entries(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        category: str | None = None,
        source: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Fetch entries newest first; ``since`` and ``until`` are inclusive."""
        conditions = ["1=1"]
        params: list[Any] = []

        if since:
            conditions.append("timestamp >= ?")
            params.append(format_timestamp(since))
        if until:
            conditions.append("timestamp <= ?")
            params.append(format_timestamp(until))
        if category:
            conditions.append("category = ?")
            params.append(category)
        if source:
            conditions.append("source = ?")
            params.append(source)

        sql = (
            f"SELECT * FROM entries WHERE {' AND '.join(conditions)} "
            "ORDER BY timestamp DESC, id ASC LIMIT ? OFFSET ?"
        )
        params.extend([limit, offset])

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._to_wire(row) for row in rows]

    def get_entry(self, entry_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM entries WHERE id = ?", (entry_id,)).fetchone()
        return self._to_wire(row) if row else None

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]

    def ping(self) -> None:
        """Lightweight DB health check. Raises on error."""
        with self._lock:
            self._conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        self._conn.close()
