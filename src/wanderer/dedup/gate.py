"""
Freshness-window dedup gate.

Before a URL is dispatched the orchestrator asks the gate whether it was
scraped successfully within the freshness window, and claims it so no second
worker fetches the same normalized URL concurrently. The freshness check is
advisory: when the datastore cannot answer, the URL is treated as not seen.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional, Set

import structlog

from wanderer.crawler.links import normalize_url
from wanderer.protocols import DatastoreProtocol, utcnow

logger = structlog.get_logger(__name__)


class DedupGate:
    def __init__(
        self,
        datastore: DatastoreProtocol,
        freshness_hours: float = 24.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.datastore = datastore
        self.freshness_hours = freshness_hours
        self._clock = clock
        self._in_flight: Set[str] = set()
        self.checks = 0
        self.hits = 0
        self.errors = 0

    async def is_recently_scraped(self, url: str, freshness_hours: Optional[float] = None) -> bool:
        hours = self.freshness_hours if freshness_hours is None else freshness_hours
        self.checks += 1
        if hours <= 0:
            return False
        since = self._clock() - timedelta(hours=hours)
        try:
            fresh = await self.datastore.find_recent_success(url, since)
        except Exception as e:
            self.errors += 1
            logger.error("Failed to check URL in datastore", url=url, error=str(e))
            return False
        if fresh:
            self.hits += 1
        return bool(fresh)

    def claim(self, url: str) -> bool:
        """Mark ``url`` in flight. False if it already is."""
        key = normalize_url(url)
        if key in self._in_flight:
            return False
        self._in_flight.add(key)
        return True

    def release(self, url: str) -> None:
        self._in_flight.discard(normalize_url(url))

    def is_in_flight(self, url: str) -> bool:
        return normalize_url(url) in self._in_flight

    def stats(self) -> dict:
        return {"checks": self.checks, "hits": self.hits, "errors": self.errors, "in_flight": len(self._in_flight)}
