"""Provider adapters that fetch raw events from calendar backends."""

from .base import FetchContext, FetchResult, ProviderAdapter, RawEvent
from .factory import AdapterRegistry, create_default_adapters
from .google import GoogleCalendarAdapter
from .ical import ICalAdapter
from .microsoft import MicrosoftGraphAdapter
from .oauth import OAuthClientConfig, TokenRefresher
from .webhook import WebhookAdapter, build_webhook_url, unwrap_events

__all__ = [
    "AdapterRegistry",
    "FetchContext",
    "FetchResult",
    "GoogleCalendarAdapter",
    "ICalAdapter",
    "MicrosoftGraphAdapter",
    "OAuthClientConfig",
    "ProviderAdapter",
    "RawEvent",
    "TokenRefresher",
    "WebhookAdapter",
    "build_webhook_url",
    "create_default_adapters",
    "unwrap_events",
]
