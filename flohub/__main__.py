"""Command-line entry for FloHub.

Examples:
  python -m flohub serve --port 3000
  python -m flohub sources --user alice@example.com
  python -m flohub events --user alice@example.com --days 7 --timezone Europe/Berlin
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

from flohub import __version__
from flohub.config.settings import FloHubSettings
from flohub.events.aggregator import CalendarAggregator
from flohub.events.normalizer import EventNormalizer
from flohub.events.window import as_tzinfo, local_day_bounds
from flohub.providers.factory import create_default_adapters
from flohub.providers.http import create_http_client
from flohub.settings.persistence import UserSettingsStore
from flohub.sources.registry import SourceRegistry
from flohub.utils.logging import setup_logging
from flohub.web.server import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the FloHub CLI."""
    parser = argparse.ArgumentParser(
        prog="flohub",
        description="FloHub - multi-source calendar aggregation service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", metavar="LEVEL", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP API (default)")
    serve.add_argument("--host", help="Bind address (default: FLOHUB_WEB_HOST or 127.0.0.1)")
    serve.add_argument("--port", type=int, help="Port (default: FLOHUB_WEB_PORT or 8080)")

    sources = subparsers.add_parser("sources", help="List a user's calendar sources")
    sources.add_argument("--user", required=True, help="User id")

    events = subparsers.add_parser("events", help="Aggregate a user's events and print JSON")
    events.add_argument("--user", required=True, help="User id")
    events.add_argument("--days", type=int, default=1, help="Number of days from today")
    events.add_argument("--timezone", help="IANA timezone (default: FLOHUB_DEFAULT_TIMEZONE)")

    return parser


def _list_sources(settings: FloHubSettings, user_id: str) -> int:
    registry = SourceRegistry(UserSettingsStore(settings.users_dir))
    sources = registry.list(user_id)
    print(json.dumps([source.to_api_dict() for source in sources], indent=2))
    return 0


async def _print_events(settings: FloHubSettings, user_id: str, days: int, tz_name: str) -> int:
    zone = as_tzinfo(tz_name)
    today = datetime.now(timezone.utc).astimezone(zone).date()
    time_min = local_day_bounds(today, zone)[0]
    time_max = local_day_bounds(today + timedelta(days=max(days, 1) - 1), zone)[1]

    async with create_http_client(settings) as client:
        aggregator = CalendarAggregator(
            SourceRegistry(UserSettingsStore(settings.users_dir)),
            create_default_adapters(client, settings),
            EventNormalizer(default_missing_start_to_now=settings.default_missing_start_to_now),
            source_timeout=settings.source_timeout,
        )
        result = await aggregator.aggregate(user_id, time_min, time_max, tz=zone)

    print(json.dumps(result.to_api_dict(), indent=2))
    return 1 if result.source_errors and not result.synced_sources else 0


def main(argv: Optional[list[str]] = None) -> int:
    """Run the FloHub CLI and return the exit code."""
    args = _create_parser().parse_args(argv)

    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if getattr(args, "host", None):
        overrides["web_host"] = args.host
    if getattr(args, "port", None):
        overrides["web_port"] = args.port
    settings = FloHubSettings(**overrides)

    setup_logging(settings.log_level, settings.log_file)

    if args.command == "sources":
        return _list_sources(settings, args.user)
    if args.command == "events":
        tz_name = args.timezone or settings.default_timezone
        try:
            return asyncio.run(_print_events(settings, args.user, args.days, tz_name))
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
