"""Unit tests for flohub.providers.microsoft."""

from collections.abc import Callable
from datetime import datetime, timezone

import httpx
import pytest

from flohub.providers.base import FetchContext
from flohub.providers.microsoft import MicrosoftGraphAdapter, calendar_view_url
from flohub.providers.oauth import OAuthClientConfig, TokenRefresher
from flohub.sources.models import CalendarSource, OAuthCredentials, SourceType

pytestmark = [pytest.mark.unit, pytest.mark.fast]

NEXT_LINK = "https://graph.microsoft.com/v1.0/me/calendarView?$skiptoken=page2"


@pytest.fixture
def graph_source() -> CalendarSource:
    return CalendarSource(
        id="o365-graph",
        name="Work",
        type=SourceType.O365,
        source_id="o365",
        connection_data="oauth:me@contoso.com",
        credentials=OAuthCredentials(
            access_token="graph-access",
            refresh_token="graph-refresh",
            expires_at=datetime(2099, 1, 1, tzinfo=timezone.utc),
        ),
    )


def _adapter(client: httpx.AsyncClient) -> MicrosoftGraphAdapter:
    refresher = TokenRefresher(
        client,
        OAuthClientConfig(
            provider="Microsoft",
            token_url="https://login.example.com/token",
            client_id="cid",
            client_secret="secret",
        ),
        max_retries=0,
    )
    return MicrosoftGraphAdapter(client, refresher, max_retries=0)


def test_calendar_view_url_when_default_ids_then_me_calendar_view() -> None:
    for calendar_id in ("", "primary", "o365", "default"):
        assert calendar_view_url(calendar_id) == "https://graph.microsoft.com/v1.0/me/calendarView"


def test_calendar_view_url_when_named_calendar_then_calendar_path() -> None:
    assert calendar_view_url("AAMk=") == (
        "https://graph.microsoft.com/v1.0/me/calendars/AAMk%3D/calendarView"
    )


def test_accepts_when_o365_without_oauth_then_declined() -> None:
    source = CalendarSource(
        id="o", name="O", type=SourceType.O365, source_id="https://flows.example.com/x"
    )
    adapter = MicrosoftGraphAdapter(client=None, refresher=None)  # type: ignore[arg-type]

    assert adapter.accepts(source) is False


@pytest.mark.asyncio
async def test_fetch_when_next_link_then_followed(
    graph_source: CalendarSource,
    window: tuple[datetime, datetime],
    fetch_context: FetchContext,
    make_client: Callable[..., httpx.AsyncClient],
) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "$skiptoken" in request.url.params:
            return httpx.Response(200, json={"value": [{"id": "2", "subject": "Second"}]})
        return httpx.Response(
            200, json={"value": [{"id": "1", "subject": "First"}], "@odata.nextLink": NEXT_LINK}
        )

    async with make_client(handler) as client:
        result = await _adapter(client).fetch(graph_source, *window, fetch_context)

    assert [raw["id"] for raw in result.raw_events] == ["1", "2"]
    first = requests[0]
    assert first.url.path == "/v1.0/me/calendarView"
    assert first.url.params["startDateTime"] == "2025-06-02T00:00:00Z"
    assert first.url.params["endDateTime"] == "2025-06-03T00:00:00Z"
    assert first.headers["Prefer"] == 'outlook.timezone="UTC"'
    assert first.headers["Authorization"] == "Bearer graph-access"
    assert "startDateTime" not in requests[1].url.params
