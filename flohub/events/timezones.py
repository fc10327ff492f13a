"""IANA timezone resolution, including the Windows names Microsoft Graph emits."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

# Windows timezone names to IANA identifier mapping
WINDOWS_TZ_MAP: dict[str, str] = {
    "Pacific Standard Time": "America/Los_Angeles",
    "Mountain Standard Time": "America/Denver",
    "Central Standard Time": "America/Chicago",
    "Eastern Standard Time": "America/New_York",
    "Alaskan Standard Time": "America/Anchorage",
    "Hawaiian Standard Time": "Pacific/Honolulu",
    "US Mountain Standard Time": "America/Phoenix",
    "Atlantic Standard Time": "America/Halifax",
    "GMT Standard Time": "Europe/London",
    "Greenwich Standard Time": "Atlantic/Reykjavik",
    "W. Europe Standard Time": "Europe/Berlin",
    "Romance Standard Time": "Europe/Paris",
    "Central Europe Standard Time": "Europe/Budapest",
    "Central European Standard Time": "Europe/Warsaw",
    "E. Europe Standard Time": "Europe/Chisinau",
    "FLE Standard Time": "Europe/Kiev",
    "GTB Standard Time": "Europe/Bucharest",
    "Russian Standard Time": "Europe/Moscow",
    "India Standard Time": "Asia/Kolkata",
    "China Standard Time": "Asia/Shanghai",
    "Tokyo Standard Time": "Asia/Tokyo",
    "Korea Standard Time": "Asia/Seoul",
    "Singapore Standard Time": "Asia/Singapore",
    "Arabian Standard Time": "Asia/Dubai",
    "Israel Standard Time": "Asia/Jerusalem",
    "AUS Eastern Standard Time": "Australia/Sydney",
    "E. Australia Standard Time": "Australia/Brisbane",
    "W. Australia Standard Time": "Australia/Perth",
    "New Zealand Standard Time": "Pacific/Auckland",
    "E. South America Standard Time": "America/Sao_Paulo",
    "South Africa Standard Time": "Africa/Johannesburg",
    "UTC": "UTC",
    "Coordinated Universal Time": "UTC",
}

# Obsolete or informal names to current IANA identifiers
TZ_ALIAS_MAP: dict[str, str] = {
    "US/Pacific": "America/Los_Angeles",
    "US/Mountain": "America/Denver",
    "US/Central": "America/Chicago",
    "US/Eastern": "America/New_York",
    "GMT": "UTC",
    "Etc/UTC": "UTC",
    "Etc/GMT": "UTC",
    "Z": "UTC",
}


def resolve_timezone_name(name: Optional[str]) -> Optional[str]:
    """Map a Windows, alias or IANA name to an IANA identifier, or None if unknown."""
    if not name:
        return None
    name = name.strip()
    candidate = WINDOWS_TZ_MAP.get(name) or TZ_ALIAS_MAP.get(name) or name
    try:
        get_zone(candidate)
    except ValueError:
        return None
    return candidate


@lru_cache(maxsize=128)
def get_zone(name: str) -> ZoneInfo:
    """Return the ``ZoneInfo`` for an IANA name.

    Raises:
        ValueError: If the name is not a known timezone
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def zone_or_default(name: Optional[str], default: str = "UTC") -> ZoneInfo:
    """Resolve ``name`` leniently, falling back to ``default`` with a warning."""
    resolved = resolve_timezone_name(name)
    if resolved is None:
        if name:
            logger.warning("Unknown timezone '%s', using %s", name, default)
        return get_zone(default)
    return get_zone(resolved)
