"""Concurrent aggregation of every source a user has enabled."""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from functools import partial
from typing import Optional

from flohub.providers.base import FetchContext, FetchResult
from flohub.providers.factory import AdapterRegistry
from flohub.sources.exceptions import (
    AuthExpiredError,
    SourceError,
    SourceFetchError,
    SourceTimeoutError,
)
from flohub.sources.models import CalendarSource, SourceType
from flohub.sources.registry import SourceRegistry, build_legacy_sources

from .models import AggregationResult, CalendarEvent, EventCategory, SourceErrorInfo
from .normalizer import EventNormalizer
from .window import TimezoneLike, as_tzinfo, clip_to_range

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TIMEOUT = 20.0


def categorize_source(source: CalendarSource) -> EventCategory:
    """File a source's events under work or personal.

    Explicit tags win; untagged Office 365 sources count as work.
    """
    tags = {tag.lower() for tag in source.tags}
    if "work" in tags:
        return EventCategory.WORK
    if "personal" in tags:
        return EventCategory.PERSONAL
    if source.type == SourceType.O365:
        return EventCategory.WORK
    return EventCategory.PERSONAL


def stamp_event(event: CalendarEvent, source: CalendarSource) -> CalendarEvent:
    """Attach source-derived fields: display name, category and tags."""
    event.calendar_id = source.id
    event.calendar_name = source.name
    event.source = categorize_source(source)
    merged: list[str] = []
    for tag in [*source.tags, *event.tags]:
        if tag not in merged:
            merged.append(tag)
    event.tags = merged
    return event


def _error_info(source: CalendarSource, error: SourceError) -> SourceErrorInfo:
    return SourceErrorInfo(
        source_id=source.id,
        source_name=source.name,
        source_type=source.type.value,
        error=error.message,
        error_type=type(error).__name__,
        status_code=getattr(error, "status_code", None),
        reconnect_required=isinstance(error, AuthExpiredError),
    )


class CalendarAggregator:
    """Fans out to every enabled source and merges the normalized results.

    Sources are fetched concurrently with all-settled semantics: a failing or
    slow source only contributes an entry to ``source_errors``. No single
    source can fail the whole request.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        adapters: AdapterRegistry,
        normalizer: Optional[EventNormalizer] = None,
        source_timeout: float = DEFAULT_SOURCE_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.adapters = adapters
        self.normalizer = normalizer or EventNormalizer()
        self.source_timeout = source_timeout

    def resolve_sources(
        self,
        user_id: str,
        use_calendar_sources: bool = True,
        calendar_ids: Optional[Sequence[str]] = None,
        o365_url: Optional[str] = None,
    ) -> tuple[list[CalendarSource], bool]:
        """Pick the sources one aggregation should fetch.

        Returns:
            Tuple of (sources, whether they are registered sources)
        """
        if not use_calendar_sources:
            return build_legacy_sources(calendar_ids or ["primary"], o365_url), False

        registered = self.registry.list(user_id, migrate=False)
        if registered:
            enabled = [source for source in registered if source.is_enabled]
            if not enabled:
                logger.info("All %d registered sources are disabled", len(registered))
            return enabled, True

        legacy = self.registry.legacy_sources(user_id)
        if legacy:
            logger.info("No registered sources, falling back to %d legacy calendar(s)", len(legacy))
        return legacy, False

    async def aggregate(
        self,
        user_id: str,
        time_min: datetime,
        time_max: datetime,
        *,
        use_calendar_sources: bool = True,
        calendar_ids: Optional[Sequence[str]] = None,
        o365_url: Optional[str] = None,
        tz: TimezoneLike = "UTC",
    ) -> AggregationResult:
        """Fetch, normalize and merge events from the user's sources.

        Args:
            user_id: Owner of the sources
            time_min: Inclusive window start
            time_max: Exclusive window end
            use_calendar_sources: False selects the legacy query-parameter mode
            calendar_ids: Google calendar ids for the legacy mode
            o365_url: Power Automate URL for the legacy mode
            tz: Timezone used to place all-day events when clipping to the window

        Returns:
            Events concatenated in source order, each source's own order kept,
            plus per-source errors
        """
        zone = as_tzinfo(tz)
        sources, registered = self.resolve_sources(
            user_id, use_calendar_sources, calendar_ids, o365_url
        )
        result = AggregationResult(total_sources=len(sources))
        if not sources:
            logger.info("No calendar sources to aggregate")
            return result

        context = FetchContext(
            user_id=user_id,
            account_credentials=self.registry.account_credentials(user_id),
            save_credentials=partial(self.registry.save_credentials, user_id),
        )

        tasks = [
            asyncio.create_task(self._fetch_source(source, time_min, time_max, context))
            for source in sources
        ]
        fetch_results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: dict[str, Optional[Exception]] = {}
        events: list[CalendarEvent] = []

        for source, fetch_result in zip(sources, fetch_results):
            if isinstance(fetch_result, Exception):
                logger.error(
                    "Source %s raised unexpectedly: %r",
                    source.id,
                    fetch_result,
                    exc_info=fetch_result,
                )
                fetch_result = FetchResult(
                    source=source,
                    error=SourceFetchError(f"Unexpected error: {fetch_result}", source_id=source.id),
                )
            elif isinstance(fetch_result, BaseException):
                raise fetch_result

            if fetch_result.error is not None:
                result.source_errors.append(_error_info(source, fetch_result.error))
                outcomes[source.id] = fetch_result.error
                continue

            normalized, warnings = self.normalizer.normalize_all(fetch_result.raw_events, source)
            result.dropped_events += len(warnings)
            events.extend(stamp_event(event, source) for event in normalized)
            outcomes[source.id] = None
            result.synced_sources += 1

        result.events = clip_to_range(events, time_min, time_max, zone)

        if registered:
            self.registry.record_sync_results(user_id, outcomes)

        logger.info(
            "Aggregated %d events from %d/%d sources (%d failed)",
            len(result.events),
            result.synced_sources,
            result.total_sources,
            len(result.source_errors),
        )
        return result

    async def _fetch_source(
        self,
        source: CalendarSource,
        time_min: datetime,
        time_max: datetime,
        context: FetchContext,
    ) -> FetchResult:
        try:
            adapter = self.adapters.resolve(source)
        except SourceError as e:
            logger.warning(e.message)
            return FetchResult(source=source, error=e)

        try:
            return await asyncio.wait_for(
                adapter.fetch(source, time_min, time_max, context), timeout=self.source_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Source '%s' (%s) timed out", source.name, source.id)
            return FetchResult(
                source=source,
                error=SourceTimeoutError(
                    f"No response within {self.source_timeout:g}s", source_id=source.id
                ),
            )
