"""Reference implementation of the LifeLog entries API."""

from lifelog_sync.server.app import create_app
from lifelog_sync.server.repository import EntryRepository
from lifelog_sync.server.settings import ServerSettings

__all__ = ["create_app", "EntryRepository", "ServerSettings"]
