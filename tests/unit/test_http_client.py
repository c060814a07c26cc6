"""Tests for the default aiohttp/selectolax extraction engine."""

import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses

from tests.helpers import histogram_observes
from wanderer.crawler.http_client import HttpExtractionEngine, parse_retry_after
from wanderer.exceptions import FetchError

PAGE = """
<html><head><title>Home</title></head>
<body><h1>Welcome</h1><a href="/blog/one">One</a><a href="https://other.org/">Other</a></body></html>
"""


@pytest_asyncio.fixture
async def http_engine():
    async with HttpExtractionEngine(connection_limit=10) as engine:
        yield engine


@pytest_asyncio.fixture
async def session(registry):
    return await registry.acquire()


async def _fetch(engine, session, url, mode="wander", link_selector="a[href]"):
    return await engine.fetch_and_extract(
        url, session=session, proxy=session.proxy, timeout=5.0, link_selector=link_selector, mode=mode
    )


@pytest.mark.unit
class TestParseRetryAfter:
    def test_seconds(self):
        assert parse_retry_after("7") == 7.0
        assert parse_retry_after(" 2.5 ") == 2.5

    def test_negative_clamped(self):
        assert parse_retry_after("-3") == 0.0

    def test_http_date(self):
        when = datetime.now(timezone.utc) + timedelta(seconds=120)
        value = parse_retry_after(format_datetime(when, usegmt=True))
        assert 100 < value <= 120

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_unparseable(self, value):
        assert parse_retry_after(value) is None


@pytest.mark.unit
class TestHttpExtractionEngine:
    @pytest.mark.asyncio
    async def test_successful_fetch_extracts_document_and_links(self, http_engine, session):
        with aioresponses() as m:
            m.get("https://example.com/", status=200, body=PAGE, content_type="text/html")
            with histogram_observes("wanderer_fetch_latency_seconds", {"mode": "wander"}):
                result = await _fetch(http_engine, session, "https://example.com/")

        assert result.http_status == 200
        assert result.document.title == "Home"
        assert result.document.mode == "wander"
        assert result.document.headings.h1 == ("Welcome",)
        assert result.discovered_links == ("https://example.com/blog/one", "https://other.org/")

    @pytest.mark.asyncio
    async def test_link_selector_is_applied(self, http_engine, session):
        with aioresponses() as m:
            m.get("https://example.com/", status=200, body=PAGE, content_type="text/html")
            result = await _fetch(http_engine, session, "https://example.com/", "strict", 'a[href*="/blog/"]')
        assert result.discovered_links == ("https://example.com/blog/one",)

    @pytest.mark.asyncio
    async def test_error_status_raises_fetch_error(self, http_engine, session):
        with aioresponses() as m:
            m.get("https://example.com/missing", status=404, body="nope", content_type="text/html")
            with pytest.raises(FetchError) as exc_info:
                await _fetch(http_engine, session, "https://example.com/missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.url == "https://example.com/missing"
        assert exc_info.value.retry_after is None

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, http_engine, session):
        with aioresponses() as m:
            m.get("https://example.com/", status=429, headers={"Retry-After": "12"})
            with pytest.raises(FetchError) as exc_info:
                await _fetch(http_engine, session, "https://example.com/")
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 12.0

    @pytest.mark.asyncio
    async def test_timeout_raises_fetch_error(self, http_engine, session):
        with aioresponses() as m:
            m.get("https://example.com/slow", exception=asyncio.TimeoutError())
            with pytest.raises(FetchError, match="timed out"):
                await _fetch(http_engine, session, "https://example.com/slow")

    @pytest.mark.asyncio
    async def test_network_error_raises_fetch_error(self, http_engine, session):
        with aioresponses() as m:
            m.get("https://example.com/", exception=aiohttp.ClientConnectionError("refused"))
            with pytest.raises(FetchError, match="ClientConnectionError"):
                await _fetch(http_engine, session, "https://example.com/")
        assert http_engine.get_stats()["in_flight_requests"] == 0

    @pytest.mark.asyncio
    async def test_requires_initialize(self, session):
        engine = HttpExtractionEngine()
        with pytest.raises(RuntimeError):
            await _fetch(engine, session, "https://example.com/")

    @pytest.mark.asyncio
    async def test_close_resets_state(self):
        engine = HttpExtractionEngine()
        await engine.initialize()
        assert engine.get_stats()["initialized"]
        await engine.close()
        assert engine.connector is None
        assert not engine.get_stats()["initialized"]
