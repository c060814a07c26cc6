"""
Crawl orchestrator.

Drives one crawl run in one mode: a fixed pool of workers pulls requests
from a shared FIFO queue and takes each through

    restricted-pattern check (strict) -> in-flight claim -> dedup gate
    -> budget -> session lease -> fetch + extract
    -> success: human-like delay, link discovery, classify, batch, mark good
    -> failure: mark bad, retry or record a terminal failure

Fetch failures never escape the run; it always ends with a ``CrawlStats``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import random
import signal
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set
from uuid import uuid4

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from wanderer.classifier import classify
from wanderer.crawler.frontier import RequestQueue
from wanderer.crawler.links import apply_link_strategy
from wanderer.crawler.sessions import Session, SessionRegistry
from wanderer.dedup.gate import DedupGate
from wanderer.exceptions import FetchError, SessionUnavailableError
from wanderer.modes import ModeProfile, random_delay_ms, should_skip_url
from wanderer.observability import gauge, increment
from wanderer.protocols import (
    CrawlRequest,
    ExtractedDocument,
    ExtractionEngineProtocol,
    FetchResult,
    RequestState,
)
from wanderer.storage.batcher import PersistenceBatcher


@dataclass
class CrawlStats:
    """Aggregate counts for one crawl run."""

    crawl_id: str
    mode: str
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    skipped: int = 0
    links_enqueued: int = 0
    links_rejected: int = 0
    budget_exhausted: bool = False
    stopped: bool = False
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    @property
    def success_rate(self) -> float:
        finished = self.succeeded + self.failed
        return round(self.succeeded / finished * 100, 1) if finished else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["duration"] = round(self.duration, 3)
        data["success_rate"] = self.success_rate
        return data


class CrawlOrchestrator:
    """Runs a crawl for one resolved mode profile."""

    def __init__(
        self,
        profile: ModeProfile,
        *,
        engine: ExtractionEngineProtocol,
        registry: SessionRegistry,
        batcher: PersistenceBatcher,
        dedup_gate: DedupGate,
        classifier: Callable[[ExtractedDocument], str] = classify,
        session_acquire_timeout: float = 30.0,
        max_retry_after: Optional[float] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.profile = profile
        self.engine = engine
        self.registry = registry
        self.batcher = batcher
        self.dedup_gate = dedup_gate
        self.classifier = classifier
        self.session_acquire_timeout = session_acquire_timeout
        self.max_retry_after = profile.request_timeout if max_retry_after is None else max_retry_after
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.mode = profile.mode.value
        self.logger = structlog.get_logger(__name__).bind(mode=self.mode)

        self.stats = CrawlStats(crawl_id="", mode=self.mode)
        self._queue: Optional[RequestQueue] = None
        self._stop_requested = False
        self._in_flight = 0
        self._background: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._original_sigint_handler: Any = None
        self._original_sigterm_handler: Any = None

    @property
    def is_running(self) -> bool:
        return self._queue is not None

    async def run(self, seeds: Iterable[str], *, handle_signals: bool = False) -> CrawlStats:
        """Crawl from ``seeds`` until the budget is spent or no work remains."""
        if self._queue is not None:
            raise RuntimeError("Crawl already running")

        crawl_id = uuid4().hex[:12]
        self.stats = CrawlStats(crawl_id=crawl_id, mode=self.mode)
        self._stop_requested = False
        self._queue = RequestQueue()
        self._loop = asyncio.get_running_loop()
        bind_contextvars(crawl_id=crawl_id, mode=self.mode)

        if handle_signals:
            self._setup_signal_handlers()

        try:
            seeded = await self._enqueue_seeds(seeds)
            self.logger.info(
                "Crawl started",
                crawl_id=crawl_id,
                seeds=seeded,
                max_requests=self.profile.max_requests,
                max_concurrency=self.profile.max_concurrency,
                max_depth=self.profile.max_depth,
            )
            if seeded:
                async with asyncio.TaskGroup() as tg:
                    for i in range(self.profile.max_concurrency):
                        tg.create_task(self._worker(f"worker-{i}"))
        finally:
            self._abandon_pending_retries()
            await self.batcher.close()
            if handle_signals:
                self._cleanup_signal_handlers()
            self.stats.end_time = time.time()
            self._queue = None
            unbind_contextvars("crawl_id", "mode")

        self.logger.info("Crawl finished", **self.stats.to_dict())
        return self.stats

    async def _enqueue_seeds(self, seeds: Iterable[str]) -> int:
        assert self._queue is not None
        count = 0
        for url in seeds:
            url = url.strip()
            if not url:
                continue
            if self._is_restricted(url):
                self.stats.skipped += 1
                self.logger.info("Skipping restricted URL", url=url)
                continue
            if await self._queue.add(CrawlRequest.seed(url)):
                count += 1
        return count

    def request_stop(self, reason: str = "requested") -> None:
        """Stop admitting new dispatches; in-flight requests still finish."""
        if self._stop_requested:
            return
        self._stop_requested = True
        self.stats.stopped = True
        self.logger.info("Stop requested, draining in-flight requests", reason=reason, in_flight=self._in_flight)
        if self._queue is not None:
            task = asyncio.get_running_loop().create_task(self._queue.close())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _setup_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to a graceful stop."""

        def signal_handler(signum: int, frame: Any) -> None:
            self.logger.info(f"Received signal {signum}, initiating shutdown")
            if self._loop is not None and not self._loop.is_closed():
                self._loop.call_soon_threadsafe(self.request_stop, f"signal_{signum}")

        self._original_sigint_handler = signal.signal(signal.SIGINT, signal_handler)
        self._original_sigterm_handler = signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_signal_handlers(self) -> None:
        """Restore original signal handlers."""
        if self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)
        if self._original_sigterm_handler is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm_handler)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, worker_id: str) -> None:
        assert self._queue is not None
        queue = self._queue
        while not self._stop_requested:
            request = await queue.get()
            if request is None:
                break
            self._in_flight += 1
            gauge("in_flight_requests", self._in_flight)
            try:
                retry = await self._process(request)
                if retry is not None:
                    if not await queue.add(retry, force=True):
                        self._record_failure(retry, reason="crawl stopped before retry")
            except Exception:
                self.stats.failed += 1
                self.logger.exception("Unexpected error processing request", url=request.url, worker_id=worker_id)
            finally:
                self._in_flight -= 1
                gauge("in_flight_requests", self._in_flight)
                await queue.mark_done()

    def _is_restricted(self, url: str) -> bool:
        return self.profile.is_strict and should_skip_url(url, self.profile)

    def _budget_allows(self, request: CrawlRequest) -> bool:
        if request.retry_count > 0:
            return True
        if self.stats.dispatched < self.profile.max_requests:
            return True
        self._exhaust_budget()
        return False

    def _exhaust_budget(self) -> None:
        if not self.stats.budget_exhausted:
            self.stats.budget_exhausted = True
            self.logger.info("Request budget exhausted", max_requests=self.profile.max_requests)

    async def _process(self, request: CrawlRequest) -> Optional[CrawlRequest]:
        """Take one request through a dispatch. Returns the request when it must be retried."""
        url = request.url
        if self.stats.budget_exhausted and request.retry_count == 0:
            return None
        if self._is_restricted(url):
            self.stats.skipped += 1
            self.logger.info("Skipping restricted URL", url=url)
            return None
        if not self.dedup_gate.claim(url):
            self.stats.skipped += 1
            self.logger.debug("Skipping URL already in flight", url=url)
            return None

        try:
            if await self.dedup_gate.is_recently_scraped(url):
                self.stats.skipped += 1
                self.logger.info("Skipping recently scraped URL", url=url)
                return None
            if not self._budget_allows(request):
                return None

            if request.retry_count == 0:
                self.stats.dispatched += 1
                if self.stats.dispatched >= self.profile.max_requests:
                    self._exhaust_budget()
            request.transition(RequestState.DISPATCHED)
            self.logger.info("Processing", url=url, depth=request.depth, attempt=request.retry_count + 1)
            error = await self._dispatch(request)
        finally:
            self.dedup_gate.release(url)

        if error is None:
            return None
        return await self._handle_failure(request, error)

    async def _dispatch(self, request: CrawlRequest) -> Optional[FetchError]:
        """Lease a session and fetch. Returns the failure, if any."""
        try:
            session = await self.registry.acquire(timeout=self.session_acquire_timeout)
        except SessionUnavailableError as e:
            return e

        recorded = False
        try:
            try:
                result = await asyncio.wait_for(
                    self.engine.fetch_and_extract(
                        request.url,
                        session=session,
                        proxy=session.proxy,
                        timeout=self.profile.request_timeout,
                        link_selector=self.profile.link_selector,
                        mode=self.mode,
                    ),
                    timeout=self.profile.request_timeout,
                )
            except asyncio.TimeoutError:
                error = FetchError(f"Request timed out after {self.profile.request_timeout}s", url=request.url)
            except FetchError as e:
                error = e
            except Exception as e:
                error = FetchError(f"{type(e).__name__}: {e}", url=request.url)
            else:
                await self._handle_success(request, result, session)
                recorded = True
                return None

            await self.registry.mark_bad(session, reason=str(error))
            recorded = True
            return error
        finally:
            if not recorded:
                await self.registry.release(session)

    async def _handle_success(self, request: CrawlRequest, result: FetchResult, session: Session) -> None:
        delay_ms = random_delay_ms(self.profile, self._rng)
        await self._sleep(delay_ms / 1000)

        await self._discover_links(request, result)

        document = dataclasses.replace(
            result.document,
            url=request.url,
            mode=self.mode,
            depth=request.depth,
            parent_url=request.parent_url,
            retry_count=request.retry_count,
            error_messages=tuple(request.error_messages),
        )
        document = document.with_category(self.classifier(document))
        self.batcher.enqueue(document)

        await self.registry.mark_good(session)
        request.transition(RequestState.SUCCEEDED)
        self.stats.succeeded += 1
        increment("requests_total", labels={"mode": self.mode, "outcome": "success"})
        self.logger.info(
            "Extracted data",
            url=request.url,
            category=document.category,
            links=document.link_count,
            words=document.word_count,
            products=len(document.products),
            delay_ms=delay_ms,
        )

    async def _discover_links(self, request: CrawlRequest, result: FetchResult) -> None:
        assert self._queue is not None
        origin = result.final_url or request.url
        if self.stats.budget_exhausted:
            return
        links = apply_link_strategy(result.discovered_links, origin, self.profile.link_strategy)
        if request.depth + 1 > self.profile.max_depth:
            self.stats.links_rejected += len(links)
            return

        for link in links:
            if self._is_restricted(link):
                self.stats.links_rejected += 1
                self.logger.info("Skipping restricted URL", url=link)
                continue
            if await self._queue.add(request.child(link)):
                self.stats.links_enqueued += 1

    async def _handle_failure(self, request: CrawlRequest, error: FetchError) -> Optional[CrawlRequest]:
        message = str(error)
        if request.retry_count < self.profile.max_retries:
            request.schedule_retry(message)
            self.stats.retried += 1
            increment("requests_total", labels={"mode": self.mode, "outcome": "retry"})
            self.logger.warning(
                "Request failed, will retry",
                url=request.url,
                error=message,
                status_code=error.status_code,
                retry_count=request.retry_count,
            )
            if error.status_code == 429 and error.retry_after:
                wait = min(error.retry_after, self.max_retry_after)
                self.logger.info("Rate limited, honoring Retry-After", url=request.url, wait_seconds=wait)
                await self._sleep(wait)
            return request

        request.error_messages.append(message)
        self._record_failure(request, status_code=error.status_code)
        return None

    def _record_failure(
        self, request: CrawlRequest, status_code: Optional[int] = None, reason: Optional[str] = None
    ) -> None:
        """Persist a terminal failed record for ``request``."""
        request.transition(RequestState.FAILED)
        document = ExtractedDocument.failed(request, self.mode, status_code=status_code)
        document = document.with_category(self.classifier(document))
        self.batcher.enqueue(document)
        self.stats.failed += 1
        increment("requests_total", labels={"mode": self.mode, "outcome": "failed"})
        self.logger.error(
            "Failed after retries" if reason is None else "Request abandoned",
            url=request.url,
            retry_count=request.retry_count,
            errors=list(request.error_messages),
            reason=reason,
        )

    def _abandon_pending_retries(self) -> None:
        """Requests already dispatched and waiting for a retry end as failed when the run stops early."""
        if self._queue is None:
            return
        for request in self._queue.drain():
            if request.retry_count > 0:
                self._record_failure(request, reason="crawl stopped before retry")

    def summary(self) -> Dict[str, Any]:
        data = self.stats.to_dict()
        data["sessions"] = self.registry.stats()
        data["batcher"] = self.batcher.stats()
        data["dedup"] = self.dedup_gate.stats()
        return data


__all__ = ["CrawlOrchestrator", "CrawlStats"]
