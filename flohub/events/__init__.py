"""Event normalization, aggregation and time-window filtering."""

from .aggregator import CalendarAggregator, categorize_source, stamp_event
from .models import (
    AggregationResult,
    CalendarEvent,
    EventCategory,
    EventTime,
    MeetingMetadata,
    SourceErrorInfo,
)
from .normalizer import EventNormalizer, clean_description, extract_meeting_metadata
from .window import bucket_by_date, clip_to_range, filter_for_window, filter_today, sort_events

__all__ = [
    "AggregationResult",
    "CalendarAggregator",
    "CalendarEvent",
    "EventCategory",
    "EventNormalizer",
    "EventTime",
    "MeetingMetadata",
    "SourceErrorInfo",
    "bucket_by_date",
    "categorize_source",
    "clean_description",
    "clip_to_range",
    "extract_meeting_metadata",
    "filter_for_window",
    "filter_today",
    "sort_events",
    "stamp_event",
]
