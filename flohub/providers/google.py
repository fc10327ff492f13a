"""Google Calendar v3 adapter."""

import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from flohub.sources.models import CalendarSource, OAuthCredentials, SourceType

from .base import FetchContext, RawEvent
from .http import format_timestamp
from .oauth import OAuthProviderAdapter

logger = logging.getLogger(__name__)

GOOGLE_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"
MAX_PAGES = 20


class GoogleCalendarAdapter(OAuthProviderAdapter):
    """Lists events of one Google calendar, expanding recurring events server-side."""

    name = "google"

    def accepts(self, source: CalendarSource) -> bool:
        return source.type == SourceType.GOOGLE

    def resolve_credentials(
        self, source: CalendarSource, context: FetchContext
    ) -> Optional[OAuthCredentials]:
        # Legacy calendars ride on the account the user signed in with
        return source.credentials or context.account_credentials

    async def fetch_events(
        self,
        source: CalendarSource,
        time_min: datetime,
        time_max: datetime,
        context: FetchContext,
    ) -> list[RawEvent]:
        url = GOOGLE_EVENTS_URL.format(calendar_id=quote(source.source_id, safe=""))
        params = {
            "timeMin": format_timestamp(time_min),
            "timeMax": format_timestamp(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": "250",
        }

        items: list[RawEvent] = []
        for _ in range(MAX_PAGES):
            body = await self.get_json(url, source, context, params=params)
            if not isinstance(body, dict):
                break
            items.extend(item for item in body.get("items") or [] if isinstance(item, dict))
            page_token = body.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}
        else:
            logger.warning("Stopped paging Google calendar %s after %s pages", source.id, MAX_PAGES)

        return items
