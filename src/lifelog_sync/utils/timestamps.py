"""Timestamp helpers shared by the local store, the client and the server."""

from datetime import datetime, timezone

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as fixed-width UTC ISO 8601.

    Fixed width keeps string comparison in SQLite consistent with
    chronological order.
    """
    return ensure_utc(value).strftime(STORAGE_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
