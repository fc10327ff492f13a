"""Adapter for iCal feeds and other plain URL sources."""

import logging
from datetime import date, datetime
from typing import Any

import httpx
from icalendar import Calendar

from flohub.sources.exceptions import SourceFetchError
from flohub.sources.models import CalendarSource, SourceType

from .base import RawEvent
from .http import parse_json_body
from .webhook import WebhookAdapter

logger = logging.getLogger(__name__)


def _format_ical_time(value: Any) -> dict[str, str]:
    # datetime is a subclass of date, so test it first
    if isinstance(value, datetime):
        return {"dateTime": value.isoformat()}
    if isinstance(value, date):
        return {"date": value.isoformat()}
    return {}


def parse_ical_events(content: str) -> list[RawEvent]:
    """Convert VEVENTs into raw event dicts shaped like Google's.

    Recurrence rules are not expanded; each VEVENT yields one event.

    Raises:
        ValueError: If the content is not valid iCalendar data
    """
    calendar = Calendar.from_ical(content)
    events: list[RawEvent] = []

    for component in calendar.walk("VEVENT"):
        raw: RawEvent = {}
        if component.get("UID"):
            raw["id"] = str(component.get("UID"))
        for key in ("SUMMARY", "DESCRIPTION", "LOCATION"):
            if component.get(key) is not None:
                raw[key.lower()] = str(component.get(key))

        dtstart = component.get("DTSTART")
        if dtstart is not None:
            raw["start"] = _format_ical_time(dtstart.dt)
        dtend = component.get("DTEND")
        if dtend is not None:
            raw["end"] = _format_ical_time(dtend.dt)

        events.append(raw)

    return events


class ICalAdapter(WebhookAdapter):
    """Plain URL fetch: an iCalendar body is parsed, a bare JSON list is passed through."""

    name = "ical"
    accept_header = "text/calendar, application/json;q=0.9"

    def accepts(self, source: CalendarSource) -> bool:
        return source.type in (SourceType.ICAL, SourceType.OTHER)

    def request_url(self, url: str, time_min: datetime, time_max: datetime) -> str:
        return url

    def extract_events(self, response: httpx.Response, source: CalendarSource) -> list[RawEvent]:
        content_type = response.headers.get("content-type", "").lower()
        text = response.text

        if "text/calendar" in content_type or text.lstrip().startswith("BEGIN:VCALENDAR"):
            try:
                return parse_ical_events(text)
            except ValueError as e:
                raise SourceFetchError(
                    f"Invalid iCalendar data: {e}", source_id=source.id
                ) from e

        body = parse_json_body(response, source.id)
        if isinstance(body, list):
            return [event for event in body if isinstance(event, dict)]
        logger.debug("iCal source %s returned a non-list JSON body", source.id)
        return []
