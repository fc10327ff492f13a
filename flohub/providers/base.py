"""Provider adapter interface shared by every calendar backend."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Optional

from flohub.sources.exceptions import SourceError, SourceFetchError
from flohub.sources.models import CalendarSource, OAuthCredentials

logger = logging.getLogger(__name__)

RawEvent = dict[str, Any]
CredentialSaver = Callable[[CalendarSource, OAuthCredentials], None]


@dataclass
class FetchContext:
    """Per-aggregation collaborators an adapter may need.

    Attributes:
        user_id: Owner of the sources being fetched
        account_credentials: Tokens of the account the user signed in with,
            used by Google sources that carry none of their own
        save_credentials: Called after a successful token refresh so the new
            tokens outlive the request
    """

    user_id: str
    account_credentials: Optional[OAuthCredentials] = None
    save_credentials: Optional[CredentialSaver] = None


@dataclass
class FetchResult:
    """Outcome of fetching one source: exactly one of ``events`` or ``error``."""

    source: CalendarSource
    events: Optional[list[RawEvent]] = None
    error: Optional[SourceError] = None

    def __post_init__(self) -> None:
        if (self.events is None) == (self.error is None):
            raise ValueError("FetchResult needs exactly one of events or error")

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def raw_events(self) -> list[RawEvent]:
        return self.events or []


class ProviderAdapter(ABC):
    """Fetches raw provider events for one kind of calendar source.

    Subclasses implement ``fetch_events`` and raise the ``SourceError``
    taxonomy; ``fetch`` turns those, and anything else they raise, into a
    ``FetchResult``.
    """

    name: ClassVar[str] = "base"

    def accepts(self, source: CalendarSource) -> bool:
        """Whether this adapter can serve ``source``; used when several share a type."""
        return True

    @abstractmethod
    async def fetch_events(
        self,
        source: CalendarSource,
        time_min: datetime,
        time_max: datetime,
        context: FetchContext,
    ) -> list[RawEvent]:
        """Return the provider's raw events in ``[time_min, time_max]``."""

    async def fetch(
        self,
        source: CalendarSource,
        time_min: datetime,
        time_max: datetime,
        context: FetchContext,
    ) -> FetchResult:
        try:
            events = await self.fetch_events(source, time_min, time_max, context)
        except SourceError as e:
            if e.source_id is None:
                e.source_id = source.id
            logger.warning(
                "%s adapter failed for source '%s' (%s): %s: %s",
                self.name,
                source.name,
                source.id,
                type(e).__name__,
                e.message,
            )
            return FetchResult(source=source, error=e)
        except Exception as e:
            logger.exception("%s adapter crashed for source %s", self.name, source.id)
            return FetchResult(
                source=source,
                error=SourceFetchError(
                    f"Unexpected error: {type(e).__name__}: {e}", source_id=source.id
                ),
            )

        logger.debug("%s adapter fetched %d raw events from %s", self.name, len(events), source.id)
        return FetchResult(source=source, events=events)
