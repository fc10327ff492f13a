"""HTTP routes for calendar events and source management."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from aiohttp import web
from dateutil import parser as date_parser

from flohub.cache import time_of_day_bucket
from flohub.events.window import as_tzinfo, bucket_by_date, filter_for_window
from flohub.sources.exceptions import SourceNotFoundError

logger = logging.getLogger(__name__)

SOURCE_ERRORS_HEADER = "X-FloHub-Source-Errors"


class QueryError(ValueError):
    """Malformed query parameter; rendered as HTTP 400."""


def _bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


def _parse_instant(name: str, value: str | None) -> datetime:
    if not value:
        raise QueryError(f"{name} is required")
    try:
        parsed = date_parser.isoparse(value)
    except ValueError as e:
        raise QueryError(f"{name} is not a valid ISO-8601 timestamp") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_event_query(request: web.Request) -> dict[str, Any]:
    """Validate the query of the event endpoints.

    Raises:
        QueryError: If a parameter is missing or malformed
    """
    query = request.query
    time_min = _parse_instant("timeMin", query.get("timeMin"))
    time_max = _parse_instant("timeMax", query.get("timeMax"))
    if time_max <= time_min:
        raise QueryError("timeMax must be after timeMin")

    tz_name = query.get("timezone") or request.app["settings"].default_timezone
    try:
        zone = as_tzinfo(tz_name)
    except ValueError as e:
        raise QueryError(f"Unknown timezone: {tz_name}") from e

    view = query.get("view", "all")
    if view not in ("all", "upcoming"):
        raise QueryError("view must be 'all' or 'upcoming'")

    return {
        "time_min": time_min,
        "time_max": time_max,
        "tz_name": tz_name,
        "zone": zone,
        "view": view,
        "use_calendar_sources": query.get("useCalendarSources", "true").lower() != "false",
        "calendar_ids": query.getall("calendarId", []),
        "o365_url": query.get("o365Url"),
    }


async def _aggregate(request: web.Request, params: dict[str, Any]):  # type: ignore[no-untyped-def]
    """Run (or reuse) the aggregation for this request."""
    app = request.app
    user_id = request["user_id"]
    cache = app["event_cache"]
    now = app["clock"]()

    cache_key = cache.generate_key(
        user_id,
        {
            "timeMin": params["time_min"].isoformat(),
            "timeMax": params["time_max"].isoformat(),
            "timezone": params["tz_name"],
            "useCalendarSources": params["use_calendar_sources"],
            "calendarIds": params["calendar_ids"],
            "o365Url": params["o365_url"],
        },
        time_of_day_bucket(now, params["zone"]),
    )
    result = cache.get(cache_key)
    if result is None:
        result = await app["aggregator"].aggregate(
            user_id,
            params["time_min"],
            params["time_max"],
            use_calendar_sources=params["use_calendar_sources"],
            calendar_ids=params["calendar_ids"],
            o365_url=params["o365_url"],
            tz=params["zone"],
        )
        # Failed sources must be retried on the next request
        if not result.source_errors:
            cache.set(cache_key, result)

    events = result.events
    if params["view"] == "upcoming":
        events = filter_for_window(
            events, params["time_min"], params["time_max"], params["zone"], now=now
        )
    return result, events


def register_calendar_routes(app: web.Application) -> None:
    """Register event, source and health routes."""

    async def health_check(request: web.Request) -> web.Response:
        """Liveness endpoint, exempt from authentication."""
        started_at = request.app["started_at"]
        return web.json_response(
            {
                "status": "ok",
                "uptime_s": round(time.monotonic() - started_at, 1),
                "cache": request.app["event_cache"].get_stats(),
            }
        )

    async def get_events(request: web.Request) -> web.Response:
        """Merged events as a JSON array."""
        try:
            params = parse_event_query(request)
        except QueryError as e:
            return _bad_request(str(e))

        result, events = await _aggregate(request, params)
        response = web.json_response([event.to_api_dict() for event in events])
        response.headers[SOURCE_ERRORS_HEADER] = str(len(result.source_errors))
        return response

    async def get_aggregate(request: web.Request) -> web.Response:
        """Merged events together with per-source errors."""
        try:
            params = parse_event_query(request)
        except QueryError as e:
            return _bad_request(str(e))

        result, events = await _aggregate(request, params)
        body = result.to_api_dict()
        body["events"] = [event.to_api_dict() for event in events]
        return web.json_response(body)

    async def get_events_by_date(request: web.Request) -> web.Response:
        """Events grouped by local start day."""
        try:
            params = parse_event_query(request)
        except QueryError as e:
            return _bad_request(str(e))

        _, events = await _aggregate(request, params)
        buckets = bucket_by_date(events, params["zone"])
        return web.json_response(
            {day: [event.to_api_dict() for event in day_events] for day, day_events in buckets.items()}
        )

    async def _read_json(request: web.Request) -> Any:
        if not request.can_read_body:
            return {}
        try:
            return await request.json()
        except ValueError as e:
            raise web.HTTPBadRequest(
                text='{"error": "Request body must be JSON"}', content_type="application/json"
            ) from e

    def _changed(request: web.Request) -> None:
        request.app["event_cache"].invalidate_user(request["user_id"])

    async def list_sources(request: web.Request) -> web.Response:
        sources = request.app["registry"].list(request["user_id"])
        return web.json_response([source.to_api_dict() for source in sources])

    async def create_source(request: web.Request) -> web.Response:
        payload = await _read_json(request)
        if not isinstance(payload, dict):
            return _bad_request("Request body must be a JSON object")
        source = request.app["registry"].create(request["user_id"], payload)
        _changed(request)
        return web.json_response(source.to_api_dict(), status=201)

    async def get_source(request: web.Request) -> web.Response:
        source = request.app["registry"].get(request["user_id"], request.match_info["source_id"])
        return web.json_response(source.to_api_dict())

    async def update_source(request: web.Request) -> web.Response:
        payload = await _read_json(request)
        if not isinstance(payload, dict):
            return _bad_request("Request body must be a JSON object")
        source = request.app["registry"].update(
            request["user_id"], request.match_info["source_id"], payload
        )
        _changed(request)
        return web.json_response(source.to_api_dict())

    async def delete_source(request: web.Request) -> web.Response:
        source_id = request.match_info["source_id"]
        if not request.app["registry"].delete(request["user_id"], source_id):
            raise SourceNotFoundError(f"Source not found: {source_id}", source_id=source_id)
        _changed(request)
        return web.json_response({"success": True, "id": source_id})

    async def migrate_sources(request: web.Request) -> web.Response:
        payload = await _read_json(request)
        if not isinstance(payload, dict):
            return _bad_request("Request body must be a JSON object")
        selected_cals = payload.get("selectedCals")
        if selected_cals is not None and not isinstance(selected_cals, list):
            return _bad_request("selectedCals must be a list of calendar ids")
        calendars = payload.get("calendars")
        if calendars is not None and not isinstance(calendars, list):
            return _bad_request("calendars must be a list")
        power_automate_url = payload.get("powerAutomateUrl")
        if power_automate_url is not None and not isinstance(power_automate_url, str):
            return _bad_request("powerAutomateUrl must be a string")
        sources = request.app["registry"].migrate_legacy(
            request["user_id"],
            selected_cals=[str(cal) for cal in selected_cals] if selected_cals is not None else None,
            power_automate_url=power_automate_url,
            calendars=calendars,
        )
        _changed(request)
        return web.json_response([source.to_api_dict() for source in sources])

    app.router.add_get("/health", health_check)
    app.router.add_get("/calendar/events", get_events)
    app.router.add_get("/calendar/events/by-date", get_events_by_date)
    app.router.add_get("/calendar/aggregate", get_aggregate)
    app.router.add_get("/calendar/sources", list_sources)
    app.router.add_post("/calendar/sources", create_source)
    app.router.add_post("/calendar/sources/migrate", migrate_sources)
    app.router.add_get("/calendar/sources/{source_id}", get_source)
    app.router.add_put("/calendar/sources/{source_id}", update_source)
    app.router.add_delete("/calendar/sources/{source_id}", delete_source)
    logger.debug("Calendar routes registered")
