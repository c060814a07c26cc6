"""Crawl sessions, proxy tiers, request queue and the default HTTP extraction engine."""

from .fingerprints import Fingerprint, FingerprintGenerator
from .frontier import RequestQueue
from .http_client import HttpExtractionEngine
from .links import apply_link_strategy, is_same_domain, normalize_url, resolve_link
from .proxy_tiers import ProxyAssignment, ProxyTierSelector
from .sessions import Session, SessionRegistry, SessionState

__all__ = [
    "Fingerprint",
    "FingerprintGenerator",
    "RequestQueue",
    "HttpExtractionEngine",
    "apply_link_strategy",
    "is_same_domain",
    "normalize_url",
    "resolve_link",
    "ProxyAssignment",
    "ProxyTierSelector",
    "Session",
    "SessionRegistry",
    "SessionState",
]
