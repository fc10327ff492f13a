"""Normalization of raw provider events into ``CalendarEvent``.

Each field is resolved through a fallback chain of the keys the supported
providers use (Google, Microsoft Graph, Power Automate flows, iCal). HTML
descriptions are reduced to plain text, with online-meeting details pulled
out into a short readable block.
"""

import hashlib
import html
import logging
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

from flohub.sources.exceptions import NormalizationWarning
from flohub.sources.models import CalendarSource

from .models import CalendarEvent, EventTime, MeetingMetadata
from .timezones import zone_or_default

logger = logging.getLogger(__name__)

UNTITLED_EVENT = "Untitled Event"
DEFAULT_EVENT_DURATION = timedelta(hours=1)

TITLE_KEYS = ("summary", "subject", "title", "name")
ID_KEYS = ("id", "iCalUId", "uid")

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HTML_MARKER = re.compile(r"<(?:div|span)\b", re.IGNORECASE)
_BLOCK_BREAK = re.compile(r"<\s*(?:br\s*/?|/p|/div|/li|/tr|/h\d)\s*>", re.IGNORECASE)
_SCRIPT_STYLE = re.compile(r"<(script|style)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_HREF = re.compile(r"""href\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_BARE_URL = re.compile(r"https?://[^\s<>\"']+")
_MEETING_ID = re.compile(r"Meeting\s*ID\s*:?\s*(\d[\d ]*\d|\d)", re.IGNORECASE)
_PASSCODE = re.compile(r"(?:Passcode|Password|Pass\s+code)\s*:?\s*([A-Za-z0-9]+)", re.IGNORECASE)

# Host suffix -> heading used in the rendered meeting block
MEETING_PROVIDERS: tuple[tuple[str, str], ...] = (
    ("teams.microsoft.com", "Microsoft Teams Meeting"),
    ("teams.live.com", "Microsoft Teams Meeting"),
    ("zoom.us", "Zoom Meeting"),
    ("meet.google.com", "Google Meet"),
    ("webex.com", "Webex Meeting"),
)


def is_html(text: Optional[str]) -> bool:
    return bool(text) and bool(_HTML_MARKER.search(text))


def html_to_text(content: str) -> str:
    """Strip markup, keeping line breaks at block boundaries."""
    text = _SCRIPT_STYLE.sub("", content)
    text = _BLOCK_BREAK.sub("\n", text)
    text = _TAG.sub(" ", text)
    text = html.unescape(text).replace("\xa0", " ")

    lines = [" ".join(line.split()) for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def _meeting_provider(url: str) -> Optional[str]:
    host = url.split("://", 1)[-1].split("/", 1)[0].lower()
    for suffix, heading in MEETING_PROVIDERS:
        if host == suffix or host.endswith("." + suffix):
            return heading
    return None


def extract_meeting_metadata(content: str) -> MeetingMetadata:
    """Pull join link, meeting id and passcode out of an HTML description."""
    text = html_to_text(content)
    metadata = MeetingMetadata()

    candidates = [html.unescape(url) for url in _HREF.findall(content)]
    candidates.extend(_BARE_URL.findall(text))
    for url in candidates:
        provider = _meeting_provider(url)
        if provider:
            metadata.join_url = url
            metadata.provider = provider
            break

    meeting_id = _MEETING_ID.search(text)
    if meeting_id:
        metadata.meeting_id = meeting_id.group(1).strip()

    passcode = _PASSCODE.search(text)
    if passcode:
        metadata.passcode = passcode.group(1)

    if metadata.provider is None and not metadata.is_empty:
        metadata.provider = (
            "Microsoft Teams Meeting" if "microsoft teams" in text.lower() else "Online Meeting"
        )

    return metadata


def render_meeting_block(metadata: MeetingMetadata) -> str:
    lines = [metadata.provider or "Online Meeting"]
    if metadata.join_url:
        lines.append(f"Join link: {metadata.join_url}")
    if metadata.meeting_id:
        lines.append(f"Meeting ID: {metadata.meeting_id}")
    if metadata.passcode:
        lines.append(f"Passcode: {metadata.passcode}")
    return "\n".join(lines)


def clean_description(
    description: Optional[str],
) -> tuple[Optional[str], Optional[MeetingMetadata]]:
    """Turn a provider description into display text.

    Non-HTML text passes through unmodified. HTML with meeting details
    becomes the rendered meeting block; other HTML becomes plain text.

    Returns:
        Tuple of (display text, extracted meeting metadata or None)
    """
    if not description or not is_html(description):
        return description, None

    metadata = extract_meeting_metadata(description)
    if not metadata.is_empty:
        return render_meeting_block(metadata), metadata

    return html_to_text(description) or None, None


def _first_text(raw: dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return None


def _raw_description(raw: dict[str, Any]) -> Optional[str]:
    if raw.get("description"):
        return str(raw["description"])
    body = raw.get("body")
    if isinstance(body, dict) and body.get("content"):
        return str(body["content"])
    if isinstance(body, str) and body:
        return body
    if raw.get("bodyPreview"):
        return str(raw["bodyPreview"])
    return None


def _location(raw: dict[str, Any]) -> Optional[str]:
    location = raw.get("location")
    if isinstance(location, dict):
        location = location.get("displayName")
    if location and str(location).strip():
        return str(location).strip()
    return None


def coerce_event_time(
    value: Any, time_zone: Optional[str] = None, all_day: bool = False
) -> EventTime:
    """Convert a provider time value to an ``EventTime``.

    Date-only strings become all-day values. Naive date-times are read in
    ``time_zone`` (IANA or Windows name) when given, otherwise UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return EventTime(date=value.isoformat())
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("empty time value")
        if _DATE_ONLY.match(text):
            return EventTime(date=text)
        try:
            parsed = date_parser.isoparse(text)
        except ValueError:
            parsed = date_parser.parse(text)

    if all_day:
        return EventTime(date=parsed.date().isoformat())

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone_or_default(time_zone))
    return EventTime(date_time=parsed.isoformat(), time_zone=time_zone)


def _resolve_time(raw: dict[str, Any], kind: str) -> Optional[EventTime]:
    """Resolve ``start``/``end`` through the provider fallback chain."""
    nested = raw.get(kind)
    all_day = bool(raw.get("isAllDay"))

    if isinstance(nested, dict):
        if nested.get("dateTime"):
            return coerce_event_time(nested["dateTime"], nested.get("timeZone"), all_day)
        if nested.get("date"):
            return coerce_event_time(nested["date"], all_day=True)

    for key in (f"{kind}Time", f"{kind}DateTime", f"{kind}Date"):
        if raw.get(key):
            return coerce_event_time(raw[key], raw.get("timeZone"), all_day)

    if isinstance(nested, (str, datetime, date)) and nested:
        return coerce_event_time(nested, raw.get("timeZone"), all_day)

    return None


def _default_end(start: EventTime) -> EventTime:
    if start.is_all_day:
        return EventTime(date=(start.as_date() + timedelta(days=1)).isoformat())
    end = start.as_datetime() + DEFAULT_EVENT_DURATION
    return EventTime(date_time=end.isoformat(), time_zone=start.time_zone)


def _event_tags(raw: dict[str, Any]) -> list[str]:
    tags: list[str] = []
    categories = raw.get("categories")
    if isinstance(categories, list):
        tags.extend(str(c) for c in categories if c)
    if raw.get("colorId"):
        tags.append(f"color-{raw['colorId']}")
    return tags


def synthesize_event_id(source: CalendarSource, title: str, start: EventTime) -> str:
    """Stable id for events whose provider supplied none."""
    stamp = start.date_time or start.date or ""
    digest = hashlib.sha1(f"{title}|{stamp}".encode()).hexdigest()[:12]
    return f"{source.id}-{digest}"


class EventNormalizer:
    """Maps raw provider events onto ``CalendarEvent``.

    Events without a resolvable start are dropped with a logged
    ``NormalizationWarning`` unless ``default_missing_start_to_now`` is set,
    in which case they are given the current instant.
    """

    def __init__(
        self,
        default_missing_start_to_now: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.default_missing_start_to_now = default_missing_start_to_now
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def normalize(self, raw: Any, source: CalendarSource) -> CalendarEvent:
        """Normalize one raw event.

        Raises:
            NormalizationWarning: If the event has to be dropped
        """
        if not isinstance(raw, dict):
            raise NormalizationWarning(
                f"Raw event is a {type(raw).__name__}, not an object", source_id=source.id
            )

        title = _first_text(raw, TITLE_KEYS) or UNTITLED_EVENT

        try:
            start = _resolve_time(raw, "start")
        except (ValueError, OverflowError) as e:
            raise NormalizationWarning(
                f"Unparseable start for '{title}': {e}", source_id=source.id
            ) from e
        if start is None:
            if not self.default_missing_start_to_now:
                raise NormalizationWarning(f"No start time for '{title}'", source_id=source.id)
            start = EventTime(date_time=self.clock().isoformat())

        try:
            end = _resolve_time(raw, "end")
        except (ValueError, OverflowError):
            logger.debug("Unparseable end for '%s', using default duration", title)
            end = None

        raw_description = _raw_description(raw)
        description, meeting = clean_description(raw_description)

        event_id = _first_text(raw, ID_KEYS) or synthesize_event_id(source, title, start)

        return CalendarEvent(
            id=event_id,
            summary=title,
            start=start,
            end=end or _default_end(start),
            description=description,
            raw_description=raw_description if raw_description != description else None,
            location=_location(raw),
            meeting=meeting,
            calendar_id=source.id,
            tags=_event_tags(raw),
        )

    def normalize_all(
        self, raw_events: Iterable[Any], source: CalendarSource
    ) -> tuple[list[CalendarEvent], list[NormalizationWarning]]:
        """Normalize a batch, collecting the warnings of dropped events."""
        events: list[CalendarEvent] = []
        warnings: list[NormalizationWarning] = []

        for raw in raw_events:
            try:
                events.append(self.normalize(raw, source))
            except NormalizationWarning as warning:
                logger.warning("Dropped event from source %s: %s", source.id, warning.message)
                warnings.append(warning)

        return events, warnings
