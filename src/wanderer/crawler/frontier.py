"""
FIFO queue of pending crawl requests shared by the orchestrator's workers.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, List, Optional, Set

import structlog

from wanderer.crawler.links import normalize_url
from wanderer.protocols import CrawlRequest

logger = structlog.get_logger(__name__)


class RequestQueue:
    """
    Pending-request queue with run-wide duplicate suppression.

    ``get()`` blocks while the queue is empty but work is still in flight,
    since in-flight requests may discover new links. It returns None once
    the queue is closed, or once it is empty with nothing in flight.
    """

    def __init__(self) -> None:
        self._pending: Deque[CrawlRequest] = deque()
        self._seen: Set[str] = set()
        self._cond = asyncio.Condition()
        self._in_flight = 0
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._pending)

    def seen(self, url: str) -> bool:
        return normalize_url(url) in self._seen

    async def add(self, request: CrawlRequest, *, force: bool = False) -> bool:
        """Append a request at the tail.

        Returns False if the queue is closed or the URL was already queued in
        this run. ``force`` bypasses the duplicate check, for retries.
        """
        async with self._cond:
            if self._closed:
                return False
            key = normalize_url(request.url)
            if key in self._seen and not force:
                return False
            self._seen.add(key)
            self._pending.append(request)
            self._cond.notify()
            return True

    async def get(self) -> Optional[CrawlRequest]:
        async with self._cond:
            while True:
                if self._closed:
                    return None
                if self._pending:
                    self._in_flight += 1
                    return self._pending.popleft()
                if self._in_flight == 0:
                    self._cond.notify_all()
                    return None
                await self._cond.wait()

    async def mark_done(self) -> None:
        """Called once per request returned by :meth:`get`."""
        async with self._cond:
            self._in_flight = max(0, self._in_flight - 1)
            self._cond.notify_all()

    def drain(self) -> List[CrawlRequest]:
        """Remove and return every request still pending, oldest first."""
        drained = list(self._pending)
        self._pending.clear()
        return drained

    async def close(self) -> None:
        async with self._cond:
            if not self._closed:
                self._closed = True
                logger.info("Request queue closed", dropped_pending=len(self._pending))
            self._cond.notify_all()
