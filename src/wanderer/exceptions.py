"""
Error taxonomy for the Wanderer crawl core.

Only ``ConfigError`` is fatal; everything else is recovered somewhere inside
the core (fetch errors by retry, classification errors by defaulting, and
persistence errors by the batcher's retry loop).
"""

from __future__ import annotations

from typing import Optional


class WandererError(Exception):
    """Base class for all Wanderer errors."""


class ConfigError(WandererError):
    """Invalid or missing configuration, raised at startup."""


class FetchError(WandererError):
    """A fetch failed: network error, timeout or non-2xx response."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.retry_after = retry_after


class SessionUnavailableError(FetchError):
    """No crawl session could be leased before the acquisition timeout."""


class ClassificationError(WandererError):
    """A document could not be inspected by the classifier."""


class PersistenceError(WandererError):
    """A write to the datastore failed as a whole."""


__all__ = [
    "WandererError",
    "ConfigError",
    "FetchError",
    "SessionUnavailableError",
    "ClassificationError",
    "PersistenceError",
]
