"""LifeLog API integration."""

from lifelog_sync.api.client import LifeLogClient
from lifelog_sync.api.models import (
    CreateEntriesResponse,
    EntryFilter,
    Location,
    LogData,
    LogEntry,
    Metric,
    Source,
)

__all__ = [
    "LifeLogClient",
    "CreateEntriesResponse",
    "EntryFilter",
    "Location",
    "LogData",
    "LogEntry",
    "Metric",
    "Source",
]
