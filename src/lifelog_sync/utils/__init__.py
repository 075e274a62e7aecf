"""Utility modules for the LifeLog sync client."""

from lifelog_sync.utils.logging import get_logger, setup_logging
from lifelog_sync.utils.storage import StorageManager

__all__ = ["get_logger", "setup_logging", "StorageManager"]
