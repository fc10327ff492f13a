"""Tests for the FloHub HTTP API using an in-process aiohttp server."""

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest
from aiohttp.test_utils import TestClient, TestServer

from flohub.config.settings import FloHubSettings
from flohub.web.routes import SOURCE_ERRORS_HEADER
from flohub.web.server import create_app

pytestmark = [pytest.mark.unit]

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)
HEADERS = {"X-User-Id": "user@example.com"}
WINDOW = {"timeMin": "2025-06-02T00:00:00Z", "timeMax": "2025-06-03T00:00:00Z"}
WORK_SOURCE = {
    "name": "Work",
    "type": "o365",
    "sourceId": "o365",
    "connectionData": "https://flows.example.com/api/calendar?sig=abc",
    "tags": ["work"],
}


def _provider(request: httpx.Request) -> httpx.Response:
    if request.url.host == "flows.example.com":
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "subject": "Standup",
                        "startTime": "2025-06-02T09:00:00Z",
                        "endTime": "2025-06-02T09:30:00Z",
                    },
                    {
                        "subject": "Planning",
                        "startTime": "2025-06-02T15:00:00Z",
                        "endTime": "2025-06-02T16:00:00Z",
                    },
                ]
            },
        )
    return httpx.Response(500)


async def _api_client(
    settings: FloHubSettings,
    make_client: Callable[..., httpx.AsyncClient],
    provider: Callable[[httpx.Request], httpx.Response] = _provider,
) -> AsyncIterator[TestClient]:
    http_client = make_client(provider)
    app = create_app(settings, http_client=http_client, clock=lambda: NOW)
    async with TestClient(TestServer(app)) as client:
        yield client
    await http_client.aclose()


@pytest.fixture
async def api(
    test_settings: FloHubSettings, make_client: Callable[..., httpx.AsyncClient]
) -> AsyncIterator[TestClient]:
    async for client in _api_client(test_settings, make_client):
        yield client


async def _create(api: TestClient, payload: dict[str, Any]) -> dict[str, Any]:
    response = await api.post("/calendar/sources", json=payload, headers=HEADERS)
    assert response.status == 201
    return await response.json()


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_health_when_no_user_then_ok(self, api: TestClient) -> None:
        response = await api.get("/health")

        assert response.status == 200
        body = await response.json()
        assert body["status"] == "ok"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_events_when_no_user_header_then_unauthorized(self, api: TestClient) -> None:
        response = await api.get("/calendar/events", params=WINDOW)

        assert response.status == 401

    @pytest.mark.asyncio
    async def test_request_when_api_token_configured_then_bearer_required(
        self, test_settings: FloHubSettings, make_client: Callable[..., httpx.AsyncClient]
    ) -> None:
        test_settings.api_token = "s3cret"

        async for client in _api_client(test_settings, make_client):
            rejected = await client.get("/calendar/sources", headers=HEADERS)
            accepted = await client.get(
                "/calendar/sources", headers={**HEADERS, "Authorization": "Bearer s3cret"}
            )

        assert rejected.status == 401
        assert accepted.status == 200


class TestEventEndpoints:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [
            {"timeMax": "2025-06-03T00:00:00Z"},
            {"timeMin": "yesterday", "timeMax": "2025-06-03T00:00:00Z"},
            {"timeMin": "2025-06-03T00:00:00Z", "timeMax": "2025-06-02T00:00:00Z"},
            {**WINDOW, "timezone": "Nowhere/Special"},
            {**WINDOW, "view": "weekly"},
        ],
        ids=["missing", "unparseable", "reversed", "timezone", "view"],
    )
    async def test_events_when_query_invalid_then_bad_request(
        self, api: TestClient, params: dict[str, str]
    ) -> None:
        response = await api.get("/calendar/events", params=params, headers=HEADERS)

        assert response.status == 400
        assert "error" in await response.json()

    @pytest.mark.asyncio
    async def test_events_when_source_configured_then_array_returned(self, api: TestClient) -> None:
        await _create(api, WORK_SOURCE)

        response = await api.get("/calendar/events", params=WINDOW, headers=HEADERS)

        assert response.status == 200
        assert response.headers[SOURCE_ERRORS_HEADER] == "0"
        events = await response.json()
        assert [event["summary"] for event in events] == ["Standup", "Planning"]
        assert events[0]["calendarName"] == "Work"
        assert events[0]["source"] == "work"
        assert events[0]["start"] == {"dateTime": "2025-06-02T09:00:00+00:00"}

    @pytest.mark.asyncio
    async def test_events_when_upcoming_view_then_finished_events_hidden(
        self, api: TestClient
    ) -> None:
        await _create(api, WORK_SOURCE)

        response = await api.get(
            "/calendar/events", params={**WINDOW, "view": "upcoming"}, headers=HEADERS
        )

        assert [event["summary"] for event in await response.json()] == ["Planning"]

    @pytest.mark.asyncio
    async def test_aggregate_when_one_source_fails_then_errors_reported(
        self, api: TestClient
    ) -> None:
        await _create(api, WORK_SOURCE)
        broken = await _create(
            api, {"name": "Broken", "type": "url", "sourceId": "https://broken.example.com/feed"}
        )

        events_response = await api.get("/calendar/events", params=WINDOW, headers=HEADERS)
        aggregate_response = await api.get("/calendar/aggregate", params=WINDOW, headers=HEADERS)

        assert events_response.headers[SOURCE_ERRORS_HEADER] == "1"
        body = await aggregate_response.json()
        assert len(body["events"]) == 2
        assert body["totalSources"] == 2
        assert body["sourceErrors"][0]["sourceId"] == broken["id"]
        assert body["sourceErrors"][0]["statusCode"] == 500

        listing = await (await api.get("/calendar/sources", headers=HEADERS)).json()
        statuses = {source["name"]: source["status"] for source in listing}
        assert statuses == {"Work": "ok", "Broken": "error"}

    @pytest.mark.asyncio
    async def test_aggregate_when_previous_sync_failed_then_provider_called_again(
        self, test_settings: FloHubSettings, make_client: Callable[..., httpx.AsyncClient]
    ) -> None:
        calls: list[httpx.Request] = []

        def flaky(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(500)
            return _provider(request)

        async for client in _api_client(test_settings, make_client, flaky):
            await _create(client, WORK_SOURCE)
            first = await (
                await client.get("/calendar/aggregate", params=WINDOW, headers=HEADERS)
            ).json()
            second = await (
                await client.get("/calendar/aggregate", params=WINDOW, headers=HEADERS)
            ).json()
            third = await (
                await client.get("/calendar/aggregate", params=WINDOW, headers=HEADERS)
            ).json()

        assert len(first["sourceErrors"]) == 1
        assert second["sourceErrors"] == []
        assert len(second["events"]) == 2
        assert third == second
        assert len(calls) == 2


    @pytest.mark.asyncio
    async def test_events_by_date_when_new_york_then_grouped_by_local_day(
        self, api: TestClient
    ) -> None:
        await _create(api, WORK_SOURCE)

        response = await api.get(
            "/calendar/events/by-date",
            params={**WINDOW, "timezone": "America/New_York"},
            headers=HEADERS,
        )

        body = await response.json()
        assert list(body) == ["2025-06-02"]
        assert len(body["2025-06-02"]) == 2

    @pytest.mark.asyncio
    async def test_events_when_legacy_query_mode_then_webhook_fetched(
        self, api: TestClient
    ) -> None:
        response = await api.get(
            "/calendar/events",
            params={
                **WINDOW,
                "useCalendarSources": "false",
                "o365Url": "https://flows.example.com/legacy",
                "calendarId": "primary",
            },
            headers=HEADERS,
        )

        assert response.status == 200
        events = await response.json()
        assert {event["calendarName"] for event in events} == {"Work Calendar (O365)"}
        # The primary Google calendar has no connected account
        assert response.headers[SOURCE_ERRORS_HEADER] == "1"


class TestSourceEndpoints:
    @pytest.mark.asyncio
    async def test_source_crud_when_round_trip_then_status_codes_match(
        self, api: TestClient
    ) -> None:
        created = await _create(api, WORK_SOURCE)
        source_url = f"/calendar/sources/{created['id']}"

        fetched = await api.get(source_url, headers=HEADERS)
        updated = await api.put(
            source_url, json={"name": "Office", "isEnabled": False}, headers=HEADERS
        )
        deleted = await api.delete(source_url, headers=HEADERS)
        missing = await api.get(source_url, headers=HEADERS)

        assert fetched.status == 200
        assert (await fetched.json())["url"] == WORK_SOURCE["connectionData"]
        assert updated.status == 200
        updated_body = await updated.json()
        assert updated_body["name"] == "Office"
        assert updated_body["isEnabled"] is False
        assert deleted.status == 200
        assert await deleted.json() == {"success": True, "id": created["id"]}
        assert missing.status == 404

    @pytest.mark.asyncio
    async def test_create_when_url_missing_then_validation_error(self, api: TestClient) -> None:
        response = await api.post(
            "/calendar/sources",
            json={"name": "Feed", "type": "url", "sourceId": "feed"},
            headers=HEADERS,
        )

        assert response.status == 400
        assert (await response.json())["field"] == "connectionData"

    @pytest.mark.asyncio
    async def test_create_when_body_not_json_then_bad_request(self, api: TestClient) -> None:
        response = await api.post("/calendar/sources", data="nope", headers=HEADERS)

        assert response.status == 400

    @pytest.mark.asyncio
    async def test_delete_when_unknown_id_then_not_found(self, api: TestClient) -> None:
        response = await api.delete("/calendar/sources/does-not-exist", headers=HEADERS)

        assert response.status == 404

    @pytest.mark.asyncio
    async def test_list_when_oauth_source_then_credentials_hidden(self, api: TestClient) -> None:
        await _create(
            api,
            {
                "name": "Personal",
                "type": "google",
                "sourceId": "primary",
                "connectionData": "oauth:me@gmail.com",
                "credentials": {"accessToken": "secret-token"},
            },
        )

        listing = await (await api.get("/calendar/sources", headers=HEADERS)).json()

        assert "credentials" not in listing[0]
        assert "secret-token" not in str(listing)

    @pytest.mark.asyncio
    async def test_migrate_when_called_twice_then_same_sources(self, api: TestClient) -> None:
        payload = {
            "selectedCals": ["primary"],
            "powerAutomateUrl": "https://flows.example.com/legacy",
        }

        first = await (
            await api.post("/calendar/sources/migrate", json=payload, headers=HEADERS)
        ).json()
        second = await (
            await api.post("/calendar/sources/migrate", json=payload, headers=HEADERS)
        ).json()

        assert [source["id"] for source in first] == ["google-primary", "o365-legacy"]
        assert second == first

    @pytest.mark.asyncio
    async def test_migrate_when_selected_cals_not_list_then_bad_request(
        self, api: TestClient
    ) -> None:
        response = await api.post(
            "/calendar/sources/migrate", json={"selectedCals": "primary"}, headers=HEADERS
        )

        assert response.status == 400
