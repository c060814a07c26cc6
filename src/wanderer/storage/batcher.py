"""
Write-behind batching of extracted documents.

Workers hand documents to :meth:`PersistenceBatcher.enqueue`, which never
waits on storage. A batch is written when the buffer reaches ``batch_size``
or when ``flush_delay`` seconds have passed since the first buffered
document, whichever comes first. Writes are serialized, retried with
exponential backoff, and put back at the front of the buffer when retries
run out, so a handed-over document is only ever lost if the process dies.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from wanderer.classifier import classify
from wanderer.exceptions import PersistenceError
from wanderer.observability import increment
from wanderer.protocols import DatastoreProtocol, ExtractedDocument, utcnow
from wanderer.storage.collections import DEFAULT_COLLECTION_SIZE_THRESHOLD, collection_name
from wanderer.utils import atomic_json_dump

logger = structlog.get_logger(__name__)

SIZE = "size"
TIMER = "timer"
MANUAL = "manual"
SHUTDOWN = "shutdown"


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Batch write failed, retrying",
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


class PersistenceBatcher:
    """Buffers documents and writes them to the datastore in batches."""

    def __init__(
        self,
        datastore: DatastoreProtocol,
        *,
        batch_size: int = 20,
        flush_delay: float = 1.0,
        collection_threshold: int = DEFAULT_COLLECTION_SIZE_THRESHOLD,
        max_retries: int = 5,
        retry_wait_min: float = 0.5,
        retry_wait_max: float = 10.0,
        spill_path: Optional[Path] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.datastore = datastore
        self.batch_size = batch_size
        self.flush_delay = flush_delay
        self.collection_threshold = collection_threshold
        self.max_retries = max_retries
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max
        self.spill_path = spill_path
        self._clock = clock

        self._buffer: List[ExtractedDocument] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._write_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        self.enqueued = 0
        self.persisted = 0
        self.rejected = 0
        self.write_failures = 0
        self.spilled = 0
        self.flushes: Counter[str] = Counter()
        self.flush_sizes: List[int] = []

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, document: ExtractedDocument) -> None:
        """Buffer a document; must be called from the event loop thread."""
        if self._closed:
            raise RuntimeError("Cannot enqueue documents on a closed batcher")
        self._buffer.append(document)
        self.enqueued += 1

        while len(self._buffer) >= self.batch_size:
            batch = self._buffer[: self.batch_size]
            del self._buffer[: self.batch_size]
            self._cancel_timer()
            self._spawn_write(batch, SIZE)

        if self._buffer and self._timer is None:
            self._arm_timer()

    def _arm_timer(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.flush_delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self._buffer:
            batch = self._take_all()
            self._spawn_write(batch, TIMER)

    def _take_all(self) -> List[ExtractedDocument]:
        batch = self._buffer
        self._buffer = []
        return batch

    def _spawn_write(self, batch: List[ExtractedDocument], trigger: str) -> None:
        task = asyncio.create_task(self._write(batch, trigger))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _assign_hints(self, batch: List[ExtractedDocument]) -> List[ExtractedDocument]:
        now = self._clock()
        counts: Dict[Tuple[str, str], int] = {}
        routed: List[ExtractedDocument] = []
        for document in batch:
            if document.category is None:
                document = document.with_category(classify(document))
            key = (document.category, document.mode)
            if key not in counts:
                try:
                    counts[key] = await self.datastore.count_by_category_and_mode(*key)
                except Exception as e:
                    logger.warning("Could not check collection size", category=key[0], mode=key[1], error=str(e))
                    counts[key] = 0
            hint = collection_name(document.category, document.mode, counts[key], self.collection_threshold, now)
            routed.append(document.with_collection_hint(hint))
        return routed

    async def _insert_with_retry(self, batch: List[ExtractedDocument]) -> List[bool]:
        results: List[bool] = []
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_wait_min, min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception_type(PersistenceError),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                results = await self.datastore.bulk_insert(batch)
        return results

    async def _write(self, batch: List[ExtractedDocument], trigger: str) -> None:
        async with self._write_lock:
            try:
                routed = await self._assign_hints(batch)
                results = await self._insert_with_retry(routed)
            except Exception as e:
                self.write_failures += 1
                increment("persistence_failures_total")
                logger.error(
                    "Batch write failed, documents returned to buffer",
                    size=len(batch),
                    trigger=trigger,
                    error=str(e),
                )
                self._requeue(batch)
                return

        accepted = sum(1 for ok in results if ok)
        rejected = len(routed) - accepted
        self.persisted += accepted
        self.rejected += rejected
        self.flushes[trigger] += 1
        self.flush_sizes.append(len(routed))
        increment("batch_flushes_total", labels={"trigger": trigger})
        increment("documents_persisted_total", accepted, labels={"status": "accepted"})
        if rejected:
            increment("documents_rejected_total", rejected)
            for document, ok in zip(routed, results):
                if not ok:
                    logger.warning("Document rejected by datastore", url=document.url, category=document.category)
        logger.info("Batch saved", size=len(routed), accepted=accepted, rejected=rejected, trigger=trigger)

    def _requeue(self, batch: List[ExtractedDocument]) -> None:
        self._buffer[0:0] = batch
        if not self._closed and self._timer is None:
            self._arm_timer()

    async def _drain_writes(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def flush(self) -> None:
        """Write everything buffered now and wait for pending writes."""
        self._cancel_timer()
        await self._drain_writes()
        if self._buffer:
            await self._write(self._take_all(), MANUAL if not self._closed else SHUTDOWN)

    async def close(self) -> None:
        """Final flush. Documents that still cannot be written are spilled if a path is set."""
        if self._closed:
            return
        self._closed = True
        await self.flush()

        if not self._buffer:
            logger.info("Persistence batcher closed", **self.stats())
            return

        logger.critical("Documents could not be persisted at shutdown", count=len(self._buffer))
        if self.spill_path is None:
            return
        records = [document.to_record() for document in self._buffer]
        if await atomic_json_dump(records, self.spill_path):
            self.spilled += len(self._buffer)
            self._buffer = []
            logger.critical("Unpersisted documents written to rescue file", path=str(self.spill_path))

    def pending_documents(self) -> List[ExtractedDocument]:
        """Documents still held in memory, oldest first."""
        return list(self._buffer)

    def stats(self) -> Dict[str, Any]:
        return {
            "enqueued": self.enqueued,
            "persisted": self.persisted,
            "rejected": self.rejected,
            "buffered": len(self._buffer),
            "write_failures": self.write_failures,
            "spilled": self.spilled,
            "flushes": dict(self.flushes),
        }
