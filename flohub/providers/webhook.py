"""Webhook / Power Automate adapter.

A webhook source is any HTTP endpoint that answers a GET carrying ``timeMin``
and ``timeMax`` query parameters with JSON events. Different flows wrap the
event list differently, so the body is unwrapped by an ordered list of shape
matchers.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from flohub.sources.exceptions import SourceFetchError
from flohub.sources.models import CalendarSource, SourceType
from flohub.utils.logging import mask_url

from .base import FetchContext, ProviderAdapter, RawEvent
from .http import (
    format_timestamp,
    is_url_allowed,
    parse_json_body,
    raise_for_status,
    request_with_retry,
)

logger = logging.getLogger(__name__)

ShapeMatcher = Callable[[Any], Optional[list]]


def _bare_list(body: Any) -> Optional[list]:
    return body if isinstance(body, list) else None


def _keyed_list(key: str) -> ShapeMatcher:
    def match(body: Any) -> Optional[list]:
        if isinstance(body, dict) and isinstance(body.get(key), list):
            return body[key]
        return None

    match.__name__ = f"_{key}_list"
    return match


# Order matters: first match wins
SHAPE_MATCHERS: tuple[ShapeMatcher, ...] = (
    _bare_list,
    _keyed_list("value"),
    _keyed_list("items"),
    _keyed_list("events"),
)


def unwrap_events(body: Any, matchers: tuple[ShapeMatcher, ...] = SHAPE_MATCHERS) -> list[RawEvent]:
    """Pull the event list out of a webhook response body.

    Unrecognised shapes produce no events rather than an error.
    """
    for matcher in matchers:
        events = matcher(body)
        if events is not None:
            return [event for event in events if isinstance(event, dict)]
    logger.debug("Webhook body of type %s has no recognised event list", type(body).__name__)
    return []


def build_webhook_url(url: str, time_min: datetime, time_max: datetime) -> str:
    """Append the time window, joining with ``&`` when the URL already has a query."""
    query = urlencode({"timeMin": format_timestamp(time_min), "timeMax": format_timestamp(time_max)})
    if url.endswith(("?", "&")):
        return f"{url}{query}"
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


class WebhookAdapter(ProviderAdapter):
    """Fetches events from a user-supplied webhook URL."""

    name = "webhook"
    accept_header = "application/json"

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = 1,
        backoff_factor: float = 1.5,
        allow_private_urls: bool = False,
    ) -> None:
        self.client = client
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.allow_private_urls = allow_private_urls

    def accepts(self, source: CalendarSource) -> bool:
        if source.type == SourceType.URL:
            return True
        return source.type == SourceType.O365 and not source.is_oauth

    def request_url(self, url: str, time_min: datetime, time_max: datetime) -> str:
        return build_webhook_url(url, time_min, time_max)

    def extract_events(self, response: httpx.Response, source: CalendarSource) -> list[RawEvent]:
        return unwrap_events(parse_json_body(response, source.id))

    async def fetch_events(
        self,
        source: CalendarSource,
        time_min: datetime,
        time_max: datetime,
        context: FetchContext,
    ) -> list[RawEvent]:
        url = source.webhook_url
        if not url:
            raise SourceFetchError(f"Source '{source.name}' has no webhook URL", source_id=source.id)
        if not is_url_allowed(url, self.allow_private_urls):
            logger.error("URL blocked for security reasons: %s", mask_url(url))
            raise SourceFetchError("URL blocked for security reasons", source_id=source.id)

        response = await request_with_retry(
            self.client,
            "GET",
            self.request_url(url, time_min, time_max),
            headers={"Accept": self.accept_header},
            max_retries=self.max_retries,
            backoff_factor=self.backoff_factor,
            source_id=source.id,
        )
        raise_for_status(response, source.id)
        return self.extract_events(response, source)
