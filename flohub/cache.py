"""Short-lived cache of aggregation results.

Entries expire after a TTL and are also keyed by the viewer's time-of-day
bucket, so a cached "morning" view is never served in the afternoon. Any
change to a user's sources bumps that user's version, invalidating their
entries without touching other users.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, tzinfo
from typing import Any, Optional

from flohub.events.models import AggregationResult

logger = logging.getLogger(__name__)


def time_of_day_bucket(now: datetime, tz: Optional[tzinfo] = None) -> str:
    """Classify the local hour as morning, afternoon, evening or night."""
    hour = (now.astimezone(tz) if tz is not None else now).hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


class EventCache:
    """TTL cache for ``AggregationResult`` keyed per user and request.

    Example:
        cache = EventCache(ttl_seconds=300)
        key = cache.generate_key("alice", {"timeMin": "...", "timeMax": "..."}, "morning")
        result = cache.get(key)
        if result is None:
            result = await aggregator.aggregate(...)
            cache.set(key, result)
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_size: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.clock = clock
        self._entries: dict[str, tuple[AggregationResult, float]] = {}
        self._user_versions: dict[str, int] = {}
        self.stats = {"hits": 0, "misses": 0, "evictions": 0, "invalidations": 0}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def generate_key(self, user_id: str, params: dict[str, Any], bucket: str) -> str:
        """Build a key from the user, their current version, request params and bucket."""
        param_str = json.dumps(params, sort_keys=True, default=str)
        # Not security sensitive; only needs to be stable
        param_hash = hashlib.md5(param_str.encode()).hexdigest()
        version = self._user_versions.get(user_id, 0)
        return f"{user_id}:{version}:{bucket}:{param_hash}"

    def get(self, key: str) -> Optional[AggregationResult]:
        entry = self._entries.get(key)
        if entry is not None:
            result, expires_at = entry
            if self.clock() < expires_at:
                self.stats["hits"] += 1
                return result
            del self._entries[key]

        self.stats["misses"] += 1
        return None

    def set(self, key: str, result: AggregationResult) -> None:
        if not self.enabled:
            return
        self._entries[key] = (result, self.clock() + self.ttl_seconds)

        if len(self._entries) > self.max_size:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            self.stats["evictions"] += 1

    def invalidate_user(self, user_id: str) -> None:
        """Drop every cached result of ``user_id``."""
        self._user_versions[user_id] = self._user_versions.get(user_id, 0) + 1
        prefix = f"{user_id}:"
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        self.stats["invalidations"] += 1
        logger.debug("Invalidated %s cached result(s) for user", len(stale))

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> dict[str, Any]:
        total = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "hit_rate": round(self.stats["hits"] / total * 100, 2) if total else 0.0,
            "current_size": len(self._entries),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
        }
