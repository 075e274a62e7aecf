"""Tests for the local entry store."""

from datetime import timedelta
from pathlib import Path
from uuid import uuid4

import pytest

from lifelog_sync.api import LogData, LogEntry
from lifelog_sync.errors import StorageError
from lifelog_sync.store import LocalStore

from conftest import BASE_TIME


class TestAddAndQuery:
    """Test storing locally created entries."""

    def test_new_entries_are_unsynced(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test that a fresh entry waits for upload."""
        store.add(sample_entry)

        assert store.is_synced(sample_entry.id) is False
        assert store.query_unsynced() == [sample_entry]
        assert store.count_unsynced() == 1

    def test_get(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test fetching an entry by id."""
        store.add(sample_entry)

        assert store.get(sample_entry.id) == sample_entry
        assert store.get(uuid4()) is None
        assert store.is_synced(uuid4()) is None

    def test_unsynced_oldest_first(self, store: LocalStore, make_entry) -> None:
        """Test that uploads go out in occurrence order."""
        late = make_entry(minutes=30)
        early = make_entry(minutes=5)
        store.add(late)
        store.add(early)

        assert store.query_unsynced() == [early, late]

    def test_query_newest_first_with_filters(self, store: LocalStore, make_entry) -> None:
        """Test querying with category and time filters."""
        mood_early = make_entry(category="mood", minutes=1)
        note = make_entry(category="note", value=None, text="hi", minutes=2)
        mood_late = make_entry(category="mood", minutes=3)
        for entry in (mood_early, note, mood_late):
            store.add(entry)

        assert [r.entry for r in store.query()] == [mood_late, note, mood_early]
        assert [r.entry for r in store.query(category="mood")] == [mood_late, mood_early]
        assert [r.entry for r in store.query(since=BASE_TIME + timedelta(minutes=2))] == [
            mood_late,
            note,
        ]
        assert [r.entry for r in store.query(until=BASE_TIME + timedelta(minutes=2))] == [
            note,
            mood_early,
        ]
        assert [r.entry for r in store.query(limit=1)] == [mood_late]

    def test_query_by_sync_state(self, store: LocalStore, make_entry) -> None:
        """Test filtering on the synced flag."""
        first, second = make_entry(), make_entry()
        store.add(first)
        store.add(second)
        store.mark_synced([first.id])

        assert [r.entry for r in store.query(synced=True)] == [first]
        assert [r.entry for r in store.query(synced=False)] == [second]

    def test_re_adding_marks_unsynced(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test that a local edit is uploaded again."""
        store.add(sample_entry)
        store.mark_synced([sample_entry.id])
        edited = sample_entry.model_copy(update={"category": "energy"})

        store.add(edited)

        assert store.get(sample_entry.id).category == "energy"
        assert store.is_synced(sample_entry.id) is False
        assert store.count() == 1


class TestMarkSynced:
    """Test marking entries as synced."""

    def test_marks_exactly_the_given_ids(self, store: LocalStore, make_entry) -> None:
        """Test that other entries keep their state."""
        entries = [make_entry() for _ in range(3)]
        for entry in entries:
            store.add(entry)

        changed = store.mark_synced([entries[0].id, entries[2].id])

        assert changed == 2
        assert store.query_unsynced() == [entries[1]]
        record = store.get_record(entries[0].id)
        assert record.synced is True
        assert record.synced_at is not None

    def test_idempotent(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test that marking twice changes nothing the second time."""
        store.add(sample_entry)

        assert store.mark_synced([sample_entry.id]) == 1
        assert store.mark_synced([sample_entry.id]) == 0
        assert store.mark_synced([uuid4()]) == 0
        assert store.is_synced(sample_entry.id) is True


class TestUpsertFromRemote:
    """Test merging downloaded entries."""

    def test_insert_unknown_as_synced(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test that a new remote entry is stored as synced."""
        assert store.upsert_from_remote(sample_entry) == "inserted"
        assert store.is_synced(sample_entry.id) is True
        assert store.count_unsynced() == 0

    def test_remote_copy_wins(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test that the server copy overwrites every field."""
        store.add(sample_entry)
        remote = sample_entry.model_copy(
            update={
                "category": "energy",
                "data": LogData(text="from the server"),
                "occurred_at": BASE_TIME - timedelta(days=1),
            }
        )

        assert store.upsert_from_remote(remote) == "updated"
        assert store.get(sample_entry.id) == remote
        assert store.is_synced(sample_entry.id) is True
        assert store.count() == 1

    def test_deleted_entry_is_not_restored(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test that a local deletion survives a later download."""
        store.add(sample_entry)
        store.delete(sample_entry.id)

        assert store.upsert_from_remote(sample_entry) == "skipped"
        assert store.get(sample_entry.id) is None


class TestDelete:
    """Test local deletion."""

    def test_delete(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test deleting an existing entry."""
        store.add(sample_entry)

        assert store.delete(sample_entry.id) is True
        assert store.count() == 0
        assert store.deleted_ids() == {sample_entry.id}

    def test_delete_unknown(self, store: LocalStore) -> None:
        """Test deleting an id that was never stored."""
        assert store.delete(uuid4()) is False

    def test_re_adding_clears_tombstone(self, store: LocalStore, sample_entry: LogEntry) -> None:
        """Test that explicitly adding a deleted entry brings it back."""
        store.add(sample_entry)
        store.delete(sample_entry.id)
        store.add(sample_entry)

        assert store.deleted_ids() == set()
        assert store.upsert_from_remote(sample_entry) == "updated"


class TestPersistence:
    """Test the on-disk database."""

    def test_survives_reopen(self, temp_config_dir: Path, sample_entry: LogEntry) -> None:
        """Test that entries and sync state persist."""
        path = temp_config_dir / "entries.db"
        with LocalStore(path) as first:
            first.add(sample_entry)
            first.mark_synced([sample_entry.id])

        with LocalStore(path) as second:
            assert second.get(sample_entry.id) == sample_entry
            assert second.is_synced(sample_entry.id) is True
            assert second.all_ids() == {sample_entry.id}

    def test_unopenable_database(self, temp_config_dir: Path) -> None:
        """Test that an unusable path raises StorageError."""
        with pytest.raises(StorageError):
            LocalStore(temp_config_dir / "missing" / "entries.db")
