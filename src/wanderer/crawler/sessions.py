"""
Crawl session registry.

A session is a crawl identity: cookie jar, browser fingerprint and a fixed
proxy assignment. The registry keeps a bounded pool of them, leases one
session to one request at a time, and tracks each session's health with an
explicit state machine:

    GOOD --failure--> DEGRADED --N consecutive failures--> BAD (evicted)
      ^                   |
      +-----success-------+

Sessions that reach their usage cap are retired. Eviction only removes a
session from future leases; it never touches work already in flight.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

import aiohttp
import structlog

from wanderer.crawler.fingerprints import Fingerprint, FingerprintGenerator
from wanderer.crawler.proxy_tiers import ProxyAssignment, ProxyTierSelector
from wanderer.exceptions import SessionUnavailableError
from wanderer.observability import gauge, increment

logger = structlog.get_logger(__name__)


class SessionState(Enum):
    """Session health states."""

    GOOD = "good"
    DEGRADED = "degraded"  # Recent failures, still leasable
    BAD = "bad"  # Evicted


@dataclass(eq=False)
class Session:
    """A crawl identity. Its proxy assignment never changes."""

    id: str
    fingerprint: Fingerprint
    proxy: ProxyAssignment
    cookie_jar: aiohttp.CookieJar
    usage_count: int = 0
    error_score: float = 0.0
    consecutive_failures: int = 0
    state: SessionState = SessionState.GOOD
    leased: bool = False
    created_at: float = field(default_factory=time.time)

    @property
    def status(self) -> str:
        """Coarse good/bad status as recorded by callers."""
        return "bad" if self.state is SessionState.BAD else "good"

    @property
    def proxy_tier(self) -> str:
        return self.proxy.tier

    def record_success(self) -> None:
        self.usage_count += 1
        self.consecutive_failures = 0
        self.error_score = max(0.0, self.error_score - 0.5)
        self.state = SessionState.GOOD

    def record_failure(self, max_consecutive_failures: int) -> None:
        self.usage_count += 1
        self.consecutive_failures += 1
        self.error_score += 1.0
        if self.consecutive_failures >= max_consecutive_failures:
            self.state = SessionState.BAD
        else:
            self.state = SessionState.DEGRADED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "proxy_tier": self.proxy.tier,
            "proxy": self.proxy.url,
            "usage_count": self.usage_count,
            "error_score": self.error_score,
            "consecutive_failures": self.consecutive_failures,
            "leased": self.leased,
        }


class SessionRegistry:
    """Bounded pool of crawl sessions shared by all workers."""

    def __init__(
        self,
        proxy_selector: ProxyTierSelector,
        *,
        max_pool_size: int,
        max_usage_count: int = 50,
        max_consecutive_failures: int = 3,
        acquire_timeout: float = 30.0,
        fingerprints: Optional[FingerprintGenerator] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_pool_size < 1:
            raise ValueError("max_pool_size must be at least 1")
        self.proxy_selector = proxy_selector
        self.max_pool_size = max_pool_size
        self.max_usage_count = max_usage_count
        self.max_consecutive_failures = max_consecutive_failures
        self.acquire_timeout = acquire_timeout
        self._fingerprints = fingerprints or FingerprintGenerator(rng=rng)
        self._rng = rng or random.Random()

        self._pool: Dict[str, Session] = {}
        self._cond = asyncio.Condition()

        self.created_count = 0
        self.evicted_count = 0
        self.retired_count = 0

    @property
    def size(self) -> int:
        return len(self._pool)

    @property
    def leased_count(self) -> int:
        return sum(1 for s in self._pool.values() if s.leased)

    def sessions(self) -> List[Session]:
        return list(self._pool.values())

    async def acquire(self, timeout: Optional[float] = None) -> Session:
        """Lease a session, creating one while the pool has room.

        Blocks while the pool is saturated and every session is leased.

        Raises:
            SessionUnavailableError: if no session frees up within ``timeout``.
        """
        timeout = self.acquire_timeout if timeout is None else timeout
        async with self._cond:
            try:
                async with asyncio.timeout(timeout):
                    while True:
                        session = self._lease_locked()
                        if session is not None:
                            return session
                        await self._cond.wait()
            except TimeoutError as e:
                logger.warning(
                    "Session pool saturated, acquisition timed out",
                    timeout=timeout,
                    pool_size=len(self._pool),
                    leased=self.leased_count,
                )
                raise SessionUnavailableError(f"No crawl session available after {timeout}s") from e

    def _lease_locked(self) -> Optional[Session]:
        if len(self._pool) < self.max_pool_size:
            session = self._create_locked()
        else:
            idle = [
                s
                for s in self._pool.values()
                if not s.leased and s.state is not SessionState.BAD and s.usage_count < self.max_usage_count
            ]
            if not idle:
                return None
            session = self._rng.choice(idle)
        session.leased = True
        return session

    def _create_locked(self) -> Session:
        session_id = f"session_{uuid4().hex[:12]}"
        session = Session(
            id=session_id,
            fingerprint=self._fingerprints.generate(),
            proxy=self.proxy_selector.next_tier_for(session_id),
            cookie_jar=aiohttp.CookieJar(),
        )
        self._pool[session_id] = session
        self.created_count += 1
        gauge("sessions_active", len(self._pool))
        logger.debug("Session created", session_id=session_id, proxy_tier=session.proxy.tier)
        return session

    async def mark_good(self, session: Session) -> None:
        async with self._cond:
            session.record_success()
            self._release_locked(session)

    async def mark_bad(self, session: Session, reason: str = "") -> None:
        async with self._cond:
            session.record_failure(self.max_consecutive_failures)
            if session.state is SessionState.DEGRADED:
                logger.info(
                    "Session degraded",
                    session_id=session.id,
                    consecutive_failures=session.consecutive_failures,
                    reason=reason,
                )
            self._release_locked(session)

    async def release(self, session: Session) -> None:
        """Return a lease without recording an outcome."""
        async with self._cond:
            self._release_locked(session)

    def _release_locked(self, session: Session) -> None:
        session.leased = False
        if session.id in self._pool:
            if session.state is SessionState.BAD:
                self._evict_locked(session, "bad")
            elif session.usage_count >= self.max_usage_count:
                self._evict_locked(session, "retired")
        self._cond.notify_all()

    def _evict_locked(self, session: Session, reason: str) -> None:
        del self._pool[session.id]
        gauge("sessions_active", len(self._pool))
        increment("sessions_evicted_total", labels={"reason": reason})
        if reason == "bad":
            self.evicted_count += 1
            self.proxy_selector.mark_bad(session.proxy)
            logger.warning(
                "Session evicted",
                session_id=session.id,
                proxy_tier=session.proxy.tier,
                error_score=session.error_score,
            )
        else:
            self.retired_count += 1
            logger.debug("Session retired", session_id=session.id, usage_count=session.usage_count)

    def stats(self) -> Dict[str, Any]:
        states: Dict[str, int] = {state.value: 0 for state in SessionState}
        for s in self._pool.values():
            states[s.state.value] += 1
        return {
            "pool_size": len(self._pool),
            "max_pool_size": self.max_pool_size,
            "leased": self.leased_count,
            "created": self.created_count,
            "evicted": self.evicted_count,
            "retired": self.retired_count,
            "states": states,
            "proxy_tiers": self.proxy_selector.describe(),
        }
