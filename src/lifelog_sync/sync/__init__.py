"""Synchronization of local entries with the LifeLog API."""

from lifelog_sync.sync.engine import SyncEngine, SyncPhase, SyncResult
from lifelog_sync.sync.relay import EntryRelay, StoreRelay

__all__ = ["SyncEngine", "SyncPhase", "SyncResult", "EntryRelay", "StoreRelay"]
