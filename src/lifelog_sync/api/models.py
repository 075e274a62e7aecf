"""Pydantic models for LifeLog entries and API payloads."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from lifelog_sync.utils.timestamps import ensure_utc, utcnow


class Source(str, Enum):
    """Device or client an entry originated from."""

    WATCH = "watch"
    IPHONE = "iphone"
    IPAD = "ipad"
    MAC = "mac"
    DRAFTS = "drafts"
    CLI = "cli"
    UNKNOWN = "unknown"


class Metric(BaseModel):
    """A single named measurement, e.g. a mood rating on a 1-10 scale."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    value: float
    unit: str | None = None
    scale_min: float | None = None
    scale_max: float | None = None

    @model_validator(mode="after")
    def _check_scale(self) -> "Metric":
        if (
            self.scale_min is not None
            and self.scale_max is not None
            and self.scale_min > self.scale_max
        ):
            raise ValueError("scale_min must not be greater than scale_max")
        return self

    @property
    def normalized(self) -> float | None:
        """Value mapped onto 0..1 when both scale bounds are known."""
        if self.scale_min is None or self.scale_max is None:
            return None
        span = self.scale_max - self.scale_min
        if span == 0:
            return None
        return (self.value - self.scale_min) / span


class Location(BaseModel):
    """Geographic point with optional accuracy and place name."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = None
    altitude: float | None = None
    place_name: str | None = None


class LogData(BaseModel):
    """Payload of an entry: text, one metric, a location and tags, all optional."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    text: str | None = None
    metric: Metric | None = None
    location: Location | None = None
    tags: list[str] | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.text is None
            and self.metric is None
            and self.location is None
            and not self.tags
        )


class LogEntry(BaseModel):
    """One logged event.

    ``id`` is the identity and the upsert key on both sides. The local
    ``synced`` flag lives in the local store only and is never part of
    this model or its wire form.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: UUID
    occurred_at: datetime = Field(alias="timestamp")
    recorded_at: datetime
    source: Source
    device_id: str = Field(min_length=1)
    category: str | None = None
    data: LogData = Field(default_factory=LogData)

    @field_validator("occurred_at", "recorded_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def create(
        cls,
        source: Source | str,
        device_id: str,
        data: LogData | None = None,
        category: str | None = None,
        occurred_at: datetime | None = None,
    ) -> "LogEntry":
        """Create a new entry with a fresh id, recorded now.

        Args:
            source: Originating device type.
            device_id: Stable identifier of the recording device.
            data: Entry payload.
            category: Optional category (e.g. "mood", "note").
            occurred_at: When the event happened; defaults to now. Set it
                in the past for retroactive entries.

        Returns:
            New entry.
        """
        now = utcnow()
        return cls(
            id=uuid4(),
            occurred_at=occurred_at or now,
            recorded_at=now,
            source=Source(source),
            device_id=device_id,
            category=category,
            data=data or LogData(),
        )

    def to_api_dict(self) -> dict[str, Any]:
        """Convert to the JSON wire representation.

        Returns:
            Dictionary using wire field names, with unset fields omitted.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_api_dict(cls, data: dict[str, Any]) -> "LogEntry":
        """Parse an entry from its wire representation."""
        return cls.model_validate(data)


class CreateEntriesResponse(BaseModel):
    """Response body of ``POST /api/entries``."""

    created: int


class EntryFilter(BaseModel):
    """Query filters for listing entries."""

    since: datetime | None = None
    until: datetime | None = None
    category: str | None = None
    source: str | None = None
    limit: int = Field(default=100, ge=1)
    offset: int = Field(default=0, ge=0)

    def to_params(self) -> dict[str, str]:
        """Convert to query parameters.

        Returns:
            Query parameters; limit and offset are always present.
        """
        params: dict[str, str] = {}
        if self.since is not None:
            params["since"] = ensure_utc(self.since).isoformat().replace("+00:00", "Z")
        if self.until is not None:
            params["until"] = ensure_utc(self.until).isoformat().replace("+00:00", "Z")
        if self.category:
            params["category"] = self.category
        if self.source:
            params["source"] = self.source
        params["limit"] = str(self.limit)
        params["offset"] = str(self.offset)
        return params
