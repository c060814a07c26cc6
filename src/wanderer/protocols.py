"""
Core dataclasses and collaborator protocols for Wanderer.

The orchestration core talks to two external collaborators, an extraction
engine and a datastore, only through the protocols defined here. The
package ships default implementations of both (``crawler.http_client`` and
``storage.sqlite_manager``), but tests and alternative deployments may plug
in anything that satisfies the protocol.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, Tuple

if TYPE_CHECKING:
    from wanderer.crawler.proxy_tiers import ProxyAssignment
    from wanderer.crawler.sessions import Session

DEFAULT_CATEGORY = "general"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================


class RequestState(Enum):
    """Lifecycle of a crawl request."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    RequestState.PENDING: {RequestState.DISPATCHED, RequestState.FAILED},
    RequestState.DISPATCHED: {RequestState.SUCCEEDED, RequestState.FAILED, RequestState.PENDING},
    RequestState.SUCCEEDED: set(),
    RequestState.FAILED: set(),
}


class DocumentStatus(str, Enum):
    """Terminal outcome recorded for a crawled URL."""

    SUCCESS = "success"
    FAILED = "failed"


# ============================================================================
# Crawl requests
# ============================================================================


@dataclass
class CrawlRequest:
    """A unit of pending work owned by the request queue until dispatched."""

    url: str
    depth: int = 0
    parent_url: Optional[str] = None
    discovered_at: datetime = field(default_factory=utcnow)
    retry_count: int = 0
    error_messages: List[str] = field(default_factory=list)
    state: RequestState = RequestState.PENDING

    def __post_init__(self) -> None:
        if self.depth < 0:
            raise ValueError("Request depth cannot be negative")
        if self.depth == 0 and self.parent_url is not None:
            raise ValueError("Only seed requests may have depth 0")

    @classmethod
    def seed(cls, url: str) -> "CrawlRequest":
        return cls(url=url, depth=0)

    def child(self, url: str) -> "CrawlRequest":
        """Request for a link discovered on this request's page."""
        return CrawlRequest(url=url, depth=self.depth + 1, parent_url=self.url)

    def transition(self, new_state: RequestState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise ValueError(f"Illegal request transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def schedule_retry(self, error_message: str) -> None:
        """dispatched -> pending with one more attempt recorded."""
        self.error_messages.append(error_message)
        self.retry_count += 1
        self.transition(RequestState.PENDING)


# ============================================================================
# Extracted documents
# ============================================================================


@dataclass(frozen=True)
class Headings:
    h1: Tuple[str, ...] = ()
    h2: Tuple[str, ...] = ()
    h3: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, List[str]]:
        return {"h1": list(self.h1), "h2": list(self.h2), "h3": list(self.h3)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Sequence[str]]]) -> "Headings":
        data = data or {}
        return cls(
            h1=tuple(data.get("h1") or ()),
            h2=tuple(data.get("h2") or ()),
            h3=tuple(data.get("h3") or ()),
        )


@dataclass(frozen=True)
class Product:
    name: str = ""
    price: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "price": self.price, "description": self.description}


@dataclass(frozen=True)
class ExtractedDocument:
    """Record produced for every terminal request outcome.

    Instances are immutable; classification and collection routing return
    new instances through :meth:`with_category` and :meth:`with_collection_hint`.
    """

    url: str
    mode: str
    title: str = ""
    description: str = ""
    text: str = ""
    word_count: int = 0
    headings: Headings = field(default_factory=Headings)
    link_count: int = 0
    image_count: int = 0
    products: Tuple[Product, ...] = ()
    depth: int = 0
    parent_url: Optional[str] = None
    status: DocumentStatus = DocumentStatus.SUCCESS
    status_code: Optional[int] = None
    error_messages: Tuple[str, ...] = ()
    retry_count: int = 0
    category: Optional[str] = None
    collection_hint: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(cls, request: CrawlRequest, mode: str, status_code: Optional[int] = None) -> "ExtractedDocument":
        """Terminal failure record for a request that exhausted its retries."""
        return cls(
            url=request.url,
            mode=mode,
            depth=request.depth,
            parent_url=request.parent_url,
            status=DocumentStatus.FAILED,
            status_code=status_code,
            error_messages=tuple(request.error_messages),
            retry_count=request.retry_count,
        )

    def with_category(self, category: str) -> "ExtractedDocument":
        return dataclasses.replace(self, category=category)

    def with_collection_hint(self, hint: str) -> "ExtractedDocument":
        return dataclasses.replace(self, collection_hint=hint)

    def to_record(self) -> Dict[str, Any]:
        """Plain-data form used by storage backends and JSON spill files."""
        return {
            "url": self.url,
            "mode": self.mode,
            "title": self.title,
            "description": self.description,
            "text": self.text,
            "word_count": self.word_count,
            "headings": self.headings.to_dict(),
            "link_count": self.link_count,
            "image_count": self.image_count,
            "products": [p.to_dict() for p in self.products],
            "depth": self.depth,
            "parent_url": self.parent_url,
            "status": self.status.value,
            "status_code": self.status_code,
            "error_messages": list(self.error_messages),
            "retry_count": self.retry_count,
            "category": self.category,
            "collection_hint": self.collection_hint,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ExtractedDocument":
        timestamp = record.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        if timestamp is None:
            timestamp = utcnow()
        elif timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            url=record["url"],
            mode=record["mode"],
            title=record.get("title") or "",
            description=record.get("description") or "",
            text=record.get("text") or "",
            word_count=record.get("word_count") or 0,
            headings=Headings.from_dict(record.get("headings")),
            link_count=record.get("link_count") or 0,
            image_count=record.get("image_count") or 0,
            products=tuple(Product(**p) for p in record.get("products") or ()),
            depth=record.get("depth") or 0,
            parent_url=record.get("parent_url"),
            status=DocumentStatus(record.get("status") or DocumentStatus.SUCCESS.value),
            status_code=record.get("status_code"),
            error_messages=tuple(record.get("error_messages") or ()),
            retry_count=record.get("retry_count") or 0,
            category=record.get("category"),
            collection_hint=record.get("collection_hint"),
            timestamp=timestamp,
            metadata=dict(record.get("metadata") or {}),
        )


@dataclass(frozen=True)
class FetchResult:
    """What the extraction engine returns for a successful fetch."""

    document: ExtractedDocument
    discovered_links: Tuple[str, ...] = ()
    http_status: int = 200
    final_url: Optional[str] = None


# ============================================================================
# Collaborator protocols
# ============================================================================


class ExtractionEngineProtocol(Protocol):
    """Fetches and extracts a page on behalf of the crawl core."""

    async def fetch_and_extract(
        self,
        url: str,
        *,
        session: "Session",
        proxy: "ProxyAssignment",
        timeout: float,
        link_selector: str,
        mode: str,
    ) -> FetchResult:
        """Fetch ``url`` through ``proxy`` and extract content and links.

        Raises:
            FetchError: on network errors, timeouts and non-2xx responses.
        """
        ...


class DatastoreProtocol(Protocol):
    """Storage operations the crawl core issues."""

    async def bulk_insert(self, documents: Sequence[ExtractedDocument]) -> List[bool]:
        """Best-effort insert; returns per-document success flags.

        Raises:
            PersistenceError: if the batch could not be written at all.
        """
        ...

    async def find_recent_success(self, url: str, since: datetime) -> bool:
        """True if ``url`` has a successful record newer than ``since``."""
        ...

    async def count_by_category_and_mode(self, category: str, mode: str) -> int:
        """Number of stored records for a category/mode pair."""
        ...


__all__ = [
    "DEFAULT_CATEGORY",
    "RequestState",
    "DocumentStatus",
    "CrawlRequest",
    "Headings",
    "Product",
    "ExtractedDocument",
    "FetchResult",
    "ExtractionEngineProtocol",
    "DatastoreProtocol",
    "utcnow",
]
