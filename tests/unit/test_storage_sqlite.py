"""Tests for the SQLite datastore."""

from datetime import datetime, timedelta, timezone

import pytest

from tests.helpers import make_document
from wanderer.exceptions import PersistenceError
from wanderer.protocols import CrawlRequest, DocumentStatus, Headings, Product, ExtractedDocument
from wanderer.storage.sqlite_manager import SQLiteManager, format_timestamp, parse_timestamp


def _stored(url, mode="wander", category="general", **fields):
    return make_document(url, mode=mode, **fields).with_category(category).with_collection_hint(f"{mode}_{category}")


@pytest.mark.unit
class TestSQLiteManager:
    @pytest.mark.asyncio
    async def test_bulk_insert_and_find_by_url(self, sqlite_manager):
        document = _stored(
            "https://example.com/a",
            mode="strict",
            category="ecommerce",
            title="Shop",
            headings=Headings(h1=("Shop",), h2=("Deals", "New")),
            products=(Product(name="Lamp", price="$10", description="Bright"),),
            depth=2,
            parent_url="https://example.com/",
            metadata={"keywords": "lamps"},
        )
        assert await sqlite_manager.bulk_insert([document]) == [True]

        loaded = await sqlite_manager.find_by_url("https://example.com/a")
        assert loaded is not None
        assert loaded.title == "Shop"
        assert loaded.headings == document.headings
        assert loaded.products == document.products
        assert loaded.depth == 2
        assert loaded.parent_url == "https://example.com/"
        assert loaded.category == "ecommerce"
        assert loaded.collection_hint == "strict_ecommerce"
        assert loaded.metadata == {"keywords": "lamps"}
        assert abs(loaded.timestamp - document.timestamp) < timedelta(milliseconds=1)

    @pytest.mark.asyncio
    async def test_failed_record_round_trip(self, sqlite_manager):
        request = CrawlRequest.seed("https://example.com/down")
        request.error_messages.extend(["HTTP 500", "HTTP 502"])
        request.retry_count = 2
        document = ExtractedDocument.failed(request, "wander", status_code=502).with_category("general")
        await sqlite_manager.bulk_insert([document])

        loaded = await sqlite_manager.find_by_url("https://example.com/down")
        assert loaded.status is DocumentStatus.FAILED
        assert loaded.error_messages == ("HTTP 500", "HTTP 502")
        assert loaded.retry_count == 2
        assert loaded.status_code == 502

    @pytest.mark.asyncio
    async def test_constraint_violations_are_rejected_per_item(self, sqlite_manager):
        good = _stored("https://example.com/ok")
        bad = make_document("https://example.com/bad", mode="explore")
        assert await sqlite_manager.bulk_insert([good, bad]) == [True, False]
        assert await sqlite_manager.find_by_url("https://example.com/ok") is not None
        assert await sqlite_manager.find_by_url("https://example.com/bad") is None

    @pytest.mark.asyncio
    async def test_empty_batch(self, sqlite_manager):
        assert await sqlite_manager.bulk_insert([]) == []

    @pytest.mark.asyncio
    async def test_database_failure_raises_persistence_error(self, storage_config):
        manager = SQLiteManager(storage_config)
        await manager.initialize()
        async with manager.get_connection() as conn:
            await conn.execute("DROP TABLE scraped_data")
            await conn.commit()
        with pytest.raises(PersistenceError):
            await manager.bulk_insert([_stored("https://example.com/a")])
        await manager.close()

    @pytest.mark.asyncio
    async def test_find_recent_success(self, sqlite_manager):
        now = datetime.now(timezone.utc)
        await sqlite_manager.bulk_insert(
            [
                _stored("https://example.com/fresh", timestamp=now - timedelta(hours=1)),
                _stored("https://example.com/stale", timestamp=now - timedelta(hours=30)),
                _stored("https://example.com/failed", status=DocumentStatus.FAILED),
            ]
        )
        since = now - timedelta(hours=24)
        assert await sqlite_manager.find_recent_success("https://example.com/fresh", since)
        assert not await sqlite_manager.find_recent_success("https://example.com/stale", since)
        assert not await sqlite_manager.find_recent_success("https://example.com/failed", since)
        assert not await sqlite_manager.find_recent_success("https://example.com/unknown", since)

    @pytest.mark.asyncio
    async def test_count_by_category_and_mode(self, sqlite_manager):
        await sqlite_manager.bulk_insert(
            [
                _stored("https://example.com/1", category="news"),
                _stored("https://example.com/2", category="news"),
                _stored("https://example.com/3", mode="strict", category="news"),
                _stored("https://example.com/4", category="docs"),
            ]
        )
        assert await sqlite_manager.count_by_category_and_mode("news", "wander") == 2
        assert await sqlite_manager.count_by_category_and_mode("news", "strict") == 1
        assert await sqlite_manager.count_by_category_and_mode("forum", "wander") == 0

    @pytest.mark.asyncio
    async def test_crawl_summary_per_mode(self, sqlite_manager):
        await sqlite_manager.bulk_insert(
            [
                _stored("https://example.com/w1", link_count=10, depth=0),
                _stored("https://example.com/w2", link_count=4, depth=2, category="news"),
                _stored("https://example.com/w3", status=DocumentStatus.FAILED),
                _stored(
                    "https://shop.example.com/s1",
                    mode="strict",
                    category="ecommerce",
                    headings=Headings(h1=("A",), h2=("B", "C"), h3=("D",)),
                    products=(Product(name="x"), Product(name="y")),
                ),
            ]
        )

        wander = await sqlite_manager.crawl_summary("wander")
        assert wander["total"] == 3
        assert wander["succeeded"] == 2
        assert wander["failed"] == 1
        assert wander["success_rate"] == 66.7
        assert wander["total_links"] == 14
        assert wander["avg_depth"] == 0.67
        assert wander["categories"] == {"general": 2, "news": 1}
        assert "total_products" not in wander

        strict = await sqlite_manager.crawl_summary("strict")
        assert strict["total"] == 1
        assert strict["total_products"] == 2
        assert strict["total_headings"] == 3
        assert "total_links" not in strict

        overall = await sqlite_manager.crawl_summary()
        assert overall["total"] == 4
        assert "total_links" in overall and "total_products" in overall

    @pytest.mark.asyncio
    async def test_empty_summary(self, sqlite_manager):
        summary = await sqlite_manager.crawl_summary("wander")
        assert summary["total"] == 0
        assert summary["success_rate"] == 0.0
        assert summary["categories"] == {}

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent_across_restarts(self, storage_config):
        first = SQLiteManager(storage_config)
        await first.initialize()
        await first.bulk_insert([_stored("https://example.com/kept")])
        await first.close()

        second = SQLiteManager(storage_config)
        await second.initialize()
        assert await second.find_by_url("https://example.com/kept") is not None
        await second.close()


@pytest.mark.unit
def test_timestamp_format_round_trip():
    value = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    assert format_timestamp(value) == "2024-01-02 03:04:05.678000"
    assert parse_timestamp(format_timestamp(value)) == value


@pytest.mark.unit
def test_naive_timestamps_are_treated_as_utc():
    assert format_timestamp(datetime(2024, 1, 1)) == "2024-01-01 00:00:00.000000"
