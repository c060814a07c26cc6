"""
URL normalization and link-strategy filtering.
"""

from __future__ import annotations

from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, urldefrag, urlencode, urljoin, urlparse, urlunparse

from wanderer.modes import LinkStrategy

_DEFAULT_PORTS = {"http": 80, "https": 443}
_CRAWLABLE_SCHEMES = frozenset({"http", "https"})


def normalize_url(url: str) -> str:
    """Canonical form used as the identity of a URL within a crawl.

    Lower-cases scheme and host, drops default ports, fragments and trailing
    slashes, and sorts query parameters. Malformed input is returned stripped.
    """
    url = url.strip()
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return url

    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not host:
        return url

    netloc = host
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    if parsed.username:
        userinfo = parsed.username + (f":{parsed.password}" if parsed.password else "")
        netloc = f"{userinfo}@{netloc}"

    path = parsed.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = urlencode(sorted(parse_qsl(parsed.query, keep_blank_values=True)))
    return urlunparse((scheme, netloc, path, parsed.params, query, ""))


def resolve_link(href: str, base_url: str) -> Optional[str]:
    """Absolute crawlable URL for ``href`` found on ``base_url``, or None."""
    href = (href or "").strip()
    if not href or href.startswith(("javascript:", "mailto:", "tel:", "data:", "#")):
        return None
    absolute, _ = urldefrag(urljoin(base_url, href))
    try:
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme.lower() not in _CRAWLABLE_SCHEMES or not parsed.hostname:
        return None
    return absolute


def _site_host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def is_same_domain(url: str, origin_url: str) -> bool:
    """True when both URLs share a host, ignoring ``www.`` and subdomains."""
    host = _site_host(url)
    origin = _site_host(origin_url)
    if not host or not origin:
        return False
    return host == origin or host.endswith("." + origin) or origin.endswith("." + host)


def apply_link_strategy(links: Iterable[str], origin_url: str, strategy: LinkStrategy) -> List[str]:
    """Filter discovered links by the mode's strategy, keeping first-seen order."""
    selected: List[str] = []
    seen = set()
    for link in links:
        key = normalize_url(link)
        if key in seen:
            continue
        seen.add(key)
        if strategy is LinkStrategy.SAME_DOMAIN and not is_same_domain(link, origin_url):
            continue
        selected.append(link)
    return selected
