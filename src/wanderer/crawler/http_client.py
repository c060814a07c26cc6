"""
Default extraction engine: plain HTTP fetch with aiohttp, extraction with selectolax.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import aiohttp
import structlog

from wanderer.crawler.extractor import extract_page
from wanderer.crawler.proxy_tiers import ProxyAssignment
from wanderer.crawler.sessions import Session
from wanderer.exceptions import FetchError
from wanderer.observability import histogram
from wanderer.protocols import FetchResult

logger = structlog.get_logger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds to wait from a ``Retry-After`` header (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class HttpExtractionEngine:
    """Fetches pages through a session's identity and proxy, then extracts them."""

    def __init__(self, connection_limit: int = 100, max_body_bytes: int = 5 * 1024 * 1024):
        self.connection_limit = connection_limit
        self.max_body_bytes = max_body_bytes
        self.connector: Optional[aiohttp.TCPConnector] = None
        self._in_flight_requests = 0
        self._is_initialized = False

    async def initialize(self) -> None:
        """Create the shared TCP connector."""
        if self.connector is None:
            self.connector = aiohttp.TCPConnector(
                limit=self.connection_limit,
                ttl_dns_cache=30,
                use_dns_cache=True,
                keepalive_timeout=30,
            )
            self._is_initialized = True
            logger.info("HTTP extraction engine initialized", connection_limit=self.connection_limit)

    async def close(self) -> None:
        if self.connector is not None:
            await self.connector.close()
            self.connector = None
        self._is_initialized = False
        logger.info("HTTP extraction engine closed")

    async def __aenter__(self) -> "HttpExtractionEngine":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def fetch_and_extract(
        self,
        url: str,
        *,
        session: Session,
        proxy: ProxyAssignment,
        timeout: float,
        link_selector: str,
        mode: str,
    ) -> FetchResult:
        """
        Fetch ``url`` with the session's cookies and fingerprint headers.

        Raises:
            FetchError: on network errors, timeouts and non-2xx responses.
                ``retry_after`` is populated from the response when present.
        """
        if not self._is_initialized:
            raise RuntimeError("HTTP extraction engine not initialized. Call initialize() first.")

        kwargs: Dict[str, Any] = {}
        if proxy.url:
            kwargs["proxy"] = proxy.url

        start_time = time.time()
        self._in_flight_requests += 1
        try:
            async with aiohttp.ClientSession(
                connector=self.connector,
                connector_owner=False,
                cookie_jar=session.cookie_jar,
                headers=session.fingerprint.headers(),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as client:
                async with client.get(url, **kwargs) as response:
                    status = response.status
                    final_url = str(response.url)
                    if status >= 400:
                        raise FetchError(
                            f"HTTP {status} for {url}",
                            url=url,
                            status_code=status,
                            retry_after=parse_retry_after(response.headers.get("Retry-After")),
                        )
                    if status >= 300:
                        raise FetchError(f"Unfollowed redirect ({status}) for {url}", url=url, status_code=status)
                    body = await response.content.read(self.max_body_bytes)
                    html = body.decode(response.get_encoding() if response.charset else "utf-8", errors="replace")
        except FetchError:
            raise
        except asyncio.TimeoutError as e:
            raise FetchError(f"Request timed out after {timeout}s", url=url) from e
        except aiohttp.ClientError as e:
            raise FetchError(f"{type(e).__name__}: {e}", url=url) from e
        finally:
            self._in_flight_requests -= 1
            histogram("fetch_latency_seconds", time.time() - start_time, labels={"mode": mode})

        document, links = extract_page(
            html, url, mode, link_selector=link_selector, status_code=status, base_url=final_url
        )
        return FetchResult(document=document, discovered_links=tuple(links), http_status=status, final_url=final_url)

    def get_stats(self) -> Dict[str, Any]:
        return {"in_flight_requests": self._in_flight_requests, "initialized": self._is_initialized}
