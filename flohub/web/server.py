"""aiohttp application factory and server runner."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

import httpx
from aiohttp import web

from flohub.cache import EventCache
from flohub.config.settings import FloHubSettings
from flohub.events.aggregator import CalendarAggregator
from flohub.events.normalizer import EventNormalizer
from flohub.providers.factory import AdapterRegistry, create_default_adapters
from flohub.providers.http import create_http_client
from flohub.settings.persistence import UserSettingsStore
from flohub.sources.registry import SourceRegistry

from .middleware import correlation_id_middleware, error_middleware, make_auth_middleware
from .routes import register_calendar_routes

logger = logging.getLogger(__name__)


def create_app(
    settings: FloHubSettings,
    *,
    store: Optional[UserSettingsStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    adapters: Optional[AdapterRegistry] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> web.Application:
    """Create the aiohttp application with every collaborator wired explicitly.

    Args:
        settings: Application settings
        store: Settings store (defaults to one under ``settings.users_dir``)
        http_client: Shared outbound client; created and owned by the app when omitted
        adapters: Adapter registry (defaults to the built-in adapters)
        clock: Source of the current instant, for the upcoming view and cache buckets

    Returns:
        Configured application; the owned HTTP client is closed on cleanup
    """
    owns_client = http_client is None
    client = http_client or create_http_client(settings)
    registry = SourceRegistry(store or UserSettingsStore(settings.users_dir))

    aggregator = CalendarAggregator(
        registry,
        adapters or create_default_adapters(client, settings),
        EventNormalizer(default_missing_start_to_now=settings.default_missing_start_to_now),
        source_timeout=settings.source_timeout,
    )

    app = web.Application(
        middlewares=[
            correlation_id_middleware,
            error_middleware,
            make_auth_middleware(settings.api_token),
        ]
    )
    app["settings"] = settings
    app["registry"] = registry
    app["aggregator"] = aggregator
    app["event_cache"] = EventCache(ttl_seconds=settings.event_cache_ttl)
    app["http_client"] = client
    app["clock"] = clock or (lambda: datetime.now(timezone.utc))
    app["started_at"] = time.monotonic()

    register_calendar_routes(app)

    async def _close_client(_app: web.Application) -> None:
        if owns_client:
            await client.aclose()
            logger.debug("Shared HTTP client closed")

    app.on_cleanup.append(_close_client)
    return app


async def run_server(settings: FloHubSettings, stop_event: Optional[asyncio.Event] = None) -> None:
    """Serve the API until SIGINT/SIGTERM or ``stop_event`` is set."""
    app = create_app(settings)
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=settings.web_host, port=settings.web_port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%s", settings.web_host, settings.web_port)
        await runner.cleanup()
        raise

    logger.info("FloHub API listening on http://%s:%s", settings.web_host, settings.web_port)

    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()

    def _on_signal() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_signal)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        await runner.cleanup()
