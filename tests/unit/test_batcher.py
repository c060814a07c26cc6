"""Tests for the write-behind persistence batcher."""

import asyncio
import dataclasses
import json
from datetime import datetime, timezone

import pytest

from tests.helpers import make_document, metric_delta
from wanderer.storage.batcher import MANUAL, SHUTDOWN, SIZE, TIMER, PersistenceBatcher

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _docs(count, mode="wander", prefix="https://example.com/page"):
    return [make_document(f"{prefix}/{i}", mode=mode, text="Nothing special.") for i in range(count)]


def _batcher(datastore, **kwargs):
    kwargs.setdefault("batch_size", 20)
    kwargs.setdefault("flush_delay", 0.05)
    kwargs.setdefault("retry_wait_min", 0)
    kwargs.setdefault("retry_wait_max", 0)
    return PersistenceBatcher(datastore, clock=lambda: NOW, **kwargs)


@pytest.mark.unit
class TestTriggers:
    @pytest.mark.asyncio
    async def test_45_documents_flush_as_20_20_then_5_by_timer(self, datastore):
        batcher = _batcher(datastore)
        for document in _docs(45):
            batcher.enqueue(document)
        assert batcher.buffered == 5

        await asyncio.sleep(0.3)

        assert batcher.flush_sizes == [20, 20, 5]
        assert batcher.flushes == {SIZE: 2, TIMER: 1}
        assert [len(batch) for batch in datastore.batches] == [20, 20, 5]
        assert datastore.urls() == [d.url for d in _docs(45)]
        await batcher.close()

    @pytest.mark.asyncio
    async def test_enqueue_never_waits_on_storage(self, datastore):
        release = asyncio.Event()
        original = datastore.bulk_insert

        async def slow_insert(documents):
            await release.wait()
            return await original(documents)

        datastore.bulk_insert = slow_insert
        batcher = _batcher(datastore, batch_size=2)
        for document in _docs(6):
            batcher.enqueue(document)
        assert batcher.enqueued == 6
        assert batcher.persisted == 0

        release.set()
        await batcher.flush()
        assert batcher.persisted == 6

    @pytest.mark.asyncio
    async def test_manual_flush(self, datastore):
        batcher = _batcher(datastore, flush_delay=60)
        for document in _docs(3):
            batcher.enqueue(document)
        with metric_delta("wanderer_batch_flushes_total", {"trigger": "manual"}):
            await batcher.flush()
        assert batcher.flushes == {MANUAL: 1}
        assert batcher.buffered == 0

    @pytest.mark.asyncio
    async def test_close_forces_final_flush(self, datastore):
        batcher = _batcher(datastore, flush_delay=60)
        for document in _docs(3):
            batcher.enqueue(document)
        await batcher.close()
        assert batcher.persisted == 3
        assert batcher.flushes == {SHUTDOWN: 1}
        assert batcher.closed

    @pytest.mark.asyncio
    async def test_enqueue_after_close_raises(self, datastore):
        batcher = _batcher(datastore)
        await batcher.close()
        with pytest.raises(RuntimeError):
            batcher.enqueue(make_document())


@pytest.mark.unit
class TestRouting:
    @pytest.mark.asyncio
    async def test_only_category_and_hint_are_added(self, datastore):
        batcher = _batcher(datastore)
        original = make_document("https://github.com/foo/bar", mode="strict", title="foo/bar")
        batcher.enqueue(original)
        await batcher.flush()

        (stored,) = datastore.records
        assert stored.category == "github"
        assert stored.collection_hint == "strict_github_2024-05"
        assert dataclasses.replace(stored, category=None, collection_hint=None) == original

    @pytest.mark.asyncio
    async def test_existing_category_is_kept(self, datastore):
        batcher = _batcher(datastore)
        batcher.enqueue(make_document("https://github.com/x").with_category("docs"))
        await batcher.flush()
        assert datastore.records[0].category == "docs"
        assert datastore.records[0].collection_hint == "wander_docs_2024-05"

    @pytest.mark.asyncio
    async def test_large_collections_get_bucket_suffix(self, datastore):
        datastore.counts[("general", "wander")] = 2500
        batcher = _batcher(datastore)
        batcher.enqueue(make_document("https://example.com/a", text="Nothing special."))
        await batcher.flush()
        assert datastore.records[0].collection_hint == "wander_general_2024-05_2"

    @pytest.mark.asyncio
    async def test_count_failure_uses_base_hint(self, datastore):
        datastore.fail_counts = True
        batcher = _batcher(datastore)
        batcher.enqueue(make_document("https://example.com/a", text="Nothing special."))
        await batcher.flush()
        assert datastore.records[0].collection_hint == "wander_general_2024-05"


@pytest.mark.unit
class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_write_failures_are_retried(self, datastore):
        datastore.fail_next = 2
        batcher = _batcher(datastore, max_retries=5)
        for document in _docs(4):
            batcher.enqueue(document)
        await batcher.flush()
        assert datastore.insert_calls == 3
        assert batcher.persisted == 4
        assert batcher.write_failures == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_put_batch_back_in_order(self, datastore):
        datastore.fail_next = 100
        batcher = _batcher(datastore, max_retries=2, flush_delay=60)
        docs = _docs(3)
        for document in docs:
            batcher.enqueue(document)

        with metric_delta("wanderer_persistence_failures_total"):
            await batcher.flush()
        assert batcher.write_failures == 1
        assert batcher.pending_documents() == docs

        batcher.enqueue(make_document("https://example.com/late"))
        datastore.fail_next = 0
        await batcher.flush()
        assert datastore.urls() == [d.url for d in docs] + ["https://example.com/late"]
        assert batcher.buffered == 0

    @pytest.mark.asyncio
    async def test_rejected_documents_are_counted(self, datastore):
        datastore.reject_urls.add("https://example.com/page/1")
        batcher = _batcher(datastore)
        for document in _docs(3):
            batcher.enqueue(document)
        await batcher.flush()
        assert batcher.persisted == 2
        assert batcher.rejected == 1

    @pytest.mark.asyncio
    async def test_unflushable_documents_spill_at_close(self, datastore, tmp_path):
        datastore.fail_next = 100
        spill = tmp_path / "rescue.json"
        batcher = _batcher(datastore, max_retries=1, spill_path=spill)
        for document in _docs(3):
            batcher.enqueue(document)
        await batcher.close()

        assert batcher.spilled == 3
        assert batcher.buffered == 0
        records = json.loads(spill.read_text(encoding="utf-8"))
        assert [r["url"] for r in records] == [d.url for d in _docs(3)]
        assert all(r["collection_hint"] is None for r in records)

    @pytest.mark.asyncio
    async def test_unflushable_documents_stay_buffered_without_spill_path(self, datastore):
        datastore.fail_next = 100
        batcher = _batcher(datastore, max_retries=1)
        for document in _docs(2):
            batcher.enqueue(document)
        await batcher.close()
        assert len(batcher.pending_documents()) == 2
        assert batcher.stats()["buffered"] == 2
