"""Data models for normalized calendar events."""

from datetime import date as date_type
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import Field, model_validator

from flohub.sources.models import CamelModel


class EventCategory(str, Enum):
    """Coarse category a source's events are filed under."""

    PERSONAL = "personal"
    WORK = "work"


class EventTime(CamelModel):
    """Start or end of an event: an ISO-8601 instant or an all-day date, never both."""

    date_time: Optional[str] = None
    date: Optional[str] = None
    time_zone: Optional[str] = None

    @model_validator(mode="after")
    def check_exclusive(self) -> "EventTime":
        if (self.date_time is None) == (self.date is None):
            raise ValueError("EventTime needs exactly one of dateTime or date")
        return self

    @property
    def is_all_day(self) -> bool:
        return self.date is not None

    def as_datetime(self) -> datetime:
        """Timed values as an aware datetime (naive strings are read as UTC)."""
        if self.date_time is None:
            raise ValueError("All-day EventTime has no instant")
        value = date_parser.isoparse(self.date_time)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def as_date(self) -> date_type:
        """All-day values as a calendar date, no timezone conversion."""
        if self.date is None:
            raise ValueError("Timed EventTime has no date")
        return date_type.fromisoformat(self.date)

    def local_date(self, tz: tzinfo) -> date_type:
        """Calendar day this value falls on as seen in ``tz``."""
        if self.is_all_day:
            return self.as_date()
        return self.as_datetime().astimezone(tz).date()

    def local_start(self, tz: tzinfo) -> datetime:
        """Aware datetime in ``tz``; all-day values map to local midnight."""
        if self.is_all_day:
            day = self.as_date()
            return datetime(day.year, day.month, day.day, tzinfo=tz)
        return self.as_datetime().astimezone(tz)


class MeetingMetadata(CamelModel):
    """Online-meeting details pulled out of an HTML description."""

    provider: Optional[str] = None
    join_url: Optional[str] = None
    meeting_id: Optional[str] = None
    passcode: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.join_url or self.meeting_id or self.passcode)


class CalendarEvent(CamelModel):
    """One event in the unified shape every provider is normalized into."""

    id: str
    summary: str
    start: EventTime
    end: Optional[EventTime] = None
    description: Optional[str] = None
    raw_description: Optional[str] = None
    location: Optional[str] = None
    meeting: Optional[MeetingMetadata] = None
    calendar_id: str
    calendar_name: Optional[str] = None
    source: EventCategory = EventCategory.PERSONAL
    tags: list[str] = Field(default_factory=list)

    @property
    def is_all_day(self) -> bool:
        return self.start.is_all_day

    def end_datetime(self) -> Optional[datetime]:
        """Exclusive end instant for timed events."""
        if self.end is None:
            return None
        if self.end.is_all_day:
            day = self.end.as_date()
            return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        return self.end.as_datetime()

    def sort_key(self, tz: tzinfo = timezone.utc) -> tuple[datetime, str]:
        return (self.start.local_start(tz), self.summary)

    def all_day_span(self) -> tuple[date_type, date_type]:
        """First day and exclusive last day of an all-day event."""
        first = self.start.as_date()
        if self.end is not None and self.end.is_all_day:
            last = self.end.as_date()
            if last > first:
                return first, last
        return first, first + timedelta(days=1)

    def to_api_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SourceErrorInfo(CamelModel):
    """A source that failed during one aggregation cycle."""

    source_id: str
    source_name: str
    source_type: str
    error: str
    error_type: str
    status_code: Optional[int] = None
    reconnect_required: bool = False


class AggregationResult(CamelModel):
    """Merged events plus the per-source failures of one aggregation cycle."""

    events: list[CalendarEvent] = Field(default_factory=list)
    source_errors: list[SourceErrorInfo] = Field(default_factory=list)
    total_sources: int = 0
    synced_sources: int = 0
    dropped_events: int = 0

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "events": [event.to_api_dict() for event in self.events],
            "sourceErrors": [
                error.model_dump(mode="json", by_alias=True) for error in self.source_errors
            ],
            "totalSources": self.total_sources,
            "syncedSources": self.synced_sources,
            "droppedEvents": self.dropped_events,
        }
