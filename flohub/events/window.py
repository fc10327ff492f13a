"""Timezone-aware windowing and day bucketing of normalized events.

All day arithmetic happens in the viewer's IANA timezone: a timed event
belongs to the local calendar day of its start, while all-day events keep
their date as-is regardless of timezone.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union

from .models import CalendarEvent
from .timezones import get_zone, resolve_timezone_name

logger = logging.getLogger(__name__)

TimezoneLike = Union[str, tzinfo]


def as_tzinfo(tz: TimezoneLike) -> tzinfo:
    """Accept an IANA/Windows name or a tzinfo.

    Raises:
        ValueError: If a name cannot be resolved
    """
    if isinstance(tz, tzinfo):
        return tz
    resolved = resolve_timezone_name(tz)
    if resolved is None:
        raise ValueError(f"Unknown timezone: {tz}")
    return get_zone(resolved)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Start of ``day`` and start of the next day, both in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def _window_days(window_start: datetime, window_end: datetime, tz: tzinfo) -> tuple[date, date]:
    first = _aware(window_start).astimezone(tz).date()
    end = _aware(window_end)
    if end <= _aware(window_start):
        return first, first
    last = (end - timedelta(microseconds=1)).astimezone(tz).date()
    return first, last


def _start_day(event: CalendarEvent, tz: tzinfo) -> Optional[date]:
    try:
        return event.start.local_date(tz)
    except ValueError:
        logger.debug("Event %s has no resolvable start date", event.id)
        return None


def filter_for_window(
    events: Iterable[CalendarEvent],
    window_start: datetime,
    window_end: datetime,
    tz: TimezoneLike,
    now: Optional[datetime] = None,
) -> list[CalendarEvent]:
    """Events still worth showing for the local days the window covers.

    Timed events qualify when their local start day lies within the window's
    days and they have not ended yet. All-day events qualify when any of
    their days lies within the window's days.

    Args:
        events: Normalized events
        window_start: Inclusive window start
        window_end: Exclusive window end
        tz: Viewer's timezone
        now: Current instant (defaults to the wall clock)

    Returns:
        Matching events, ordered by local start
    """
    zone = as_tzinfo(tz)
    current = _aware(now or datetime.now(timezone.utc))
    first_day, last_day = _window_days(window_start, window_end, zone)

    selected: list[CalendarEvent] = []
    for event in events:
        try:
            if event.is_all_day:
                span_start, span_end = event.all_day_span()
                if span_start <= last_day and span_end > first_day:
                    selected.append(event)
                continue

            start_day = event.start.local_date(zone)
            if not first_day <= start_day <= last_day:
                continue
            end = event.end_datetime()
            if end is None or end > current:
                selected.append(event)
        except ValueError:
            logger.debug("Skipping event %s with unparseable times", event.id)

    return sort_events(selected, zone)


def filter_today(
    events: Iterable[CalendarEvent], tz: TimezoneLike, now: Optional[datetime] = None
) -> list[CalendarEvent]:
    """Upcoming view: today's events in ``tz`` that have not finished yet."""
    zone = as_tzinfo(tz)
    current = _aware(now or datetime.now(timezone.utc))
    day_start, day_end = local_day_bounds(current.astimezone(zone).date(), zone)
    return filter_for_window(events, day_start, day_end, zone, now=current)


def bucket_by_date(
    events: Iterable[CalendarEvent], tz: TimezoneLike
) -> dict[str, list[CalendarEvent]]:
    """Group events under ``YYYY-MM-DD`` keys of their local start day.

    Buckets are ordered by date and each bucket by start time. Events whose
    date cannot be resolved are left out.
    """
    zone = as_tzinfo(tz)
    buckets: dict[date, list[CalendarEvent]] = {}

    for event in events:
        day = _start_day(event, zone)
        if day is None:
            continue
        buckets.setdefault(day, []).append(event)

    return {
        day.isoformat(): sort_events(day_events, zone) for day, day_events in sorted(buckets.items())
    }


def clip_to_range(
    events: Iterable[CalendarEvent],
    time_min: datetime,
    time_max: datetime,
    tz: TimezoneLike = "UTC",
) -> list[CalendarEvent]:
    """Keep events overlapping ``[time_min, time_max)``.

    All-day events cover local midnight to local midnight in ``tz``.
    """
    zone = as_tzinfo(tz)
    lower, upper = _aware(time_min), _aware(time_max)

    kept: list[CalendarEvent] = []
    for event in events:
        try:
            if event.is_all_day:
                first, last = event.all_day_span()
                start = local_day_bounds(first, zone)[0]
                end = local_day_bounds(last, zone)[0]
            else:
                start = event.start.as_datetime()
                end = event.end_datetime() or start
        except ValueError:
            logger.debug("Dropping event %s with unparseable times while clipping", event.id)
            continue

        # Zero-length events count when their instant lies inside the range
        if start < upper and (end > lower or (end == start and start >= lower)):
            kept.append(event)

    return kept


def sort_events(events: Iterable[CalendarEvent], tz: TimezoneLike = "UTC") -> list[CalendarEvent]:
    """Order events by local start, then summary."""
    zone = as_tzinfo(tz)

    def _key(event: CalendarEvent) -> tuple[datetime, str]:
        try:
            return event.sort_key(zone)
        except ValueError:
            return (datetime.max.replace(tzinfo=timezone.utc), event.summary)

    return sorted(events, key=_key)
