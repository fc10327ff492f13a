"""Unit tests for flohub.providers.ical."""

from collections.abc import Callable
from datetime import datetime

import httpx
import pytest

from flohub.providers.base import FetchContext
from flohub.providers.ical import ICalAdapter, parse_ical_events
from flohub.sources.models import CalendarSource, SourceType

pytestmark = [pytest.mark.unit, pytest.mark.fast]

ICS = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//FloHub Tests//EN",
        "BEGIN:VEVENT",
        "UID:evt-1",
        "SUMMARY:Dentist",
        "LOCATION:Main St",
        "DTSTART:20250602T140000Z",
        "DTEND:20250602T150000Z",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:evt-2",
        "SUMMARY:Holiday",
        "DTSTART;VALUE=DATE:20250602",
        "DTEND;VALUE=DATE:20250603",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


@pytest.fixture
def ical_source() -> CalendarSource:
    return CalendarSource(
        id="ical-feed",
        name="Feed",
        type=SourceType.ICAL,
        source_id="https://calendar.example.com/basic.ics",
    )


def test_parse_ical_events_when_timed_and_all_day_then_google_shaped() -> None:
    events = parse_ical_events(ICS)

    assert events[0]["id"] == "evt-1"
    assert events[0]["summary"] == "Dentist"
    assert events[0]["location"] == "Main St"
    assert events[0]["start"] == {"dateTime": "2025-06-02T14:00:00+00:00"}
    assert events[1]["start"] == {"date": "2025-06-02"}
    assert events[1]["end"] == {"date": "2025-06-03"}


@pytest.mark.asyncio
async def test_fetch_when_calendar_body_then_parsed_and_url_untouched(
    ical_source: CalendarSource,
    window: tuple[datetime, datetime],
    fetch_context: FetchContext,
    make_client: Callable[..., httpx.AsyncClient],
) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text=ICS, headers={"Content-Type": "text/calendar"})

    async with make_client(handler) as client:
        result = await ICalAdapter(client, max_retries=0).fetch(ical_source, *window, fetch_context)

    assert [raw["summary"] for raw in result.raw_events] == ["Dentist", "Holiday"]
    assert str(requests[0].url) == "https://calendar.example.com/basic.ics"


@pytest.mark.asyncio
async def test_fetch_when_json_list_then_passed_through(
    ical_source: CalendarSource,
    window: tuple[datetime, datetime],
    fetch_context: FetchContext,
    make_client: Callable[..., httpx.AsyncClient],
) -> None:
    body = [{"title": "Yoga", "start": "2025-06-02T07:00:00Z"}, "junk"]

    async with make_client(lambda request: httpx.Response(200, json=body)) as client:
        result = await ICalAdapter(client, max_retries=0).fetch(ical_source, *window, fetch_context)

    assert result.raw_events == [{"title": "Yoga", "start": "2025-06-02T07:00:00Z"}]


@pytest.mark.asyncio
async def test_fetch_when_json_object_then_no_events(
    ical_source: CalendarSource,
    window: tuple[datetime, datetime],
    fetch_context: FetchContext,
    make_client: Callable[..., httpx.AsyncClient],
) -> None:
    async with make_client(lambda request: httpx.Response(200, json={"value": []})) as client:
        result = await ICalAdapter(client, max_retries=0).fetch(ical_source, *window, fetch_context)

    assert result.success
    assert result.raw_events == []
