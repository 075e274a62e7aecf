"""Local persistence of entries and their sync state."""

from lifelog_sync.store.local import LocalStore, StoredEntry

__all__ = ["LocalStore", "StoredEntry"]
