"""Adapter lookup keyed on source type."""

import logging
from typing import Optional

import httpx

from flohub.config.settings import FloHubSettings
from flohub.sources.exceptions import SourceFetchError
from flohub.sources.models import CalendarSource, SourceType

from .base import ProviderAdapter
from .google import GoogleCalendarAdapter
from .ical import ICalAdapter
from .microsoft import MICROSOFT_SCOPE, MicrosoftGraphAdapter
from .oauth import OAuthClientConfig, TokenRefresher
from .webhook import WebhookAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Maps each ``SourceType`` to the adapters able to serve it.

    Several adapters may share a type (an ``o365`` source is either an OAuth
    account or a Power Automate URL); the first one whose ``accepts`` returns
    True wins. New providers plug in with ``register`` without touching the
    aggregator.
    """

    def __init__(self) -> None:
        self._adapters: dict[SourceType, list[ProviderAdapter]] = {}

    def register(self, source_type: SourceType, adapter: ProviderAdapter) -> None:
        self._adapters.setdefault(source_type, []).append(adapter)
        logger.debug("Registered %s adapter for %s sources", adapter.name, source_type.value)

    def find(self, source: CalendarSource) -> Optional[ProviderAdapter]:
        for adapter in self._adapters.get(source.type, []):
            if adapter.accepts(source):
                return adapter
        return None

    def resolve(self, source: CalendarSource) -> ProviderAdapter:
        """Return the adapter for ``source``.

        Raises:
            SourceFetchError: If no registered adapter accepts the source
        """
        adapter = self.find(source)
        if adapter is None:
            raise SourceFetchError(
                f"No adapter available for {source.type.value} source '{source.name}'",
                source_id=source.id,
            )
        return adapter

    @property
    def source_types(self) -> list[SourceType]:
        return list(self._adapters)


def create_default_adapters(client: httpx.AsyncClient, settings: FloHubSettings) -> AdapterRegistry:
    """Build the registry with every built-in adapter sharing one HTTP client."""
    retry = {"max_retries": settings.max_retries, "backoff_factor": settings.retry_backoff_factor}

    google_refresher = TokenRefresher(
        client,
        OAuthClientConfig(
            provider="Google",
            token_url=settings.google_token_url,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        ),
        **retry,
    )
    microsoft_refresher = TokenRefresher(
        client,
        OAuthClientConfig(
            provider="Microsoft",
            token_url=settings.microsoft_token_url,
            client_id=settings.microsoft_client_id,
            client_secret=settings.microsoft_client_secret,
            scope=MICROSOFT_SCOPE,
        ),
        **retry,
    )

    webhook = WebhookAdapter(client, allow_private_urls=settings.allow_private_urls, **retry)
    ical = ICalAdapter(client, allow_private_urls=settings.allow_private_urls, **retry)

    registry = AdapterRegistry()
    registry.register(SourceType.GOOGLE, GoogleCalendarAdapter(client, google_refresher, **retry))
    registry.register(SourceType.O365, MicrosoftGraphAdapter(client, microsoft_refresher, **retry))
    registry.register(SourceType.O365, webhook)
    registry.register(SourceType.URL, webhook)
    registry.register(SourceType.ICAL, ical)
    registry.register(SourceType.OTHER, ical)
    return registry
