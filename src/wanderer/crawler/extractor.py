"""
Mode-specific content extraction with selectolax.

Wander mode keeps a short text sample and a handful of headings per level;
strict mode looks for the main article body, collects more headings and
picks up product cards.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import structlog
from selectolax.parser import HTMLParser, Node

from wanderer.crawler.links import resolve_link
from wanderer.modes import CrawlMode
from wanderer.protocols import ExtractedDocument, Headings, Product

logger = structlog.get_logger(__name__)

WANDER_TEXT_LIMIT = 2000
WANDER_HEADINGS_LIMIT = 5

STRICT_TEXT_LIMIT = 5000
STRICT_HEADINGS_LIMIT = 10
STRICT_PRODUCTS_LIMIT = 20

ARTICLE_SELECTORS = [
    "article",
    ".article",
    ".content",
    ".post",
    ".entry",
    "main",
    ".main-content",
    ".story-body",
    ".article-body",
    ".post-content",
]
PRODUCT_SELECTOR = ".product, .item, .card"
PRODUCT_NAME_SELECTOR = "h1, h2, h3, .title, .name"
PRODUCT_PRICE_SELECTOR = ".price, .cost, .amount"
PRODUCT_DESCRIPTION_SELECTOR = ".description, .desc, p"


def _text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return " ".join(node.text(separator=" ").split())


def _meta(tree: HTMLParser, name: str) -> str:
    node = tree.css_first(f'meta[name="{name}"]')
    if node is None:
        return ""
    return (node.attributes.get("content") or "").strip()


def _heading_texts(tree: HTMLParser, tag: str, limit: Optional[int]) -> Tuple[str, ...]:
    texts = [_text(node) for node in tree.css(tag)]
    texts = [t for t in texts if t]
    return tuple(texts if limit is None else texts[:limit])


def _article_text(tree: HTMLParser) -> str:
    for selector in ARTICLE_SELECTORS:
        text = _text(tree.css_first(selector))
        if text:
            return text[:STRICT_TEXT_LIMIT]
    return _text(tree.body)[:STRICT_TEXT_LIMIT]


def _products(tree: HTMLParser) -> Tuple[Product, ...]:
    products: List[Product] = []
    for card in tree.css(PRODUCT_SELECTOR):
        name = _text(card.css_first(PRODUCT_NAME_SELECTOR))
        price = _text(card.css_first(PRODUCT_PRICE_SELECTOR))
        if not name and not price:
            continue
        description = _text(card.css_first(PRODUCT_DESCRIPTION_SELECTOR))
        products.append(Product(name=name, price=price, description=description))
        if len(products) >= STRICT_PRODUCTS_LIMIT:
            break
    return tuple(products)


def extract_links(tree: HTMLParser, base_url: str, link_selector: str) -> List[str]:
    """Absolute crawlable links matched by ``link_selector``, in page order."""
    links: List[str] = []
    for node in tree.css(link_selector):
        href = node.attributes.get("href")
        if not href:
            continue
        absolute = resolve_link(href, base_url)
        if absolute:
            links.append(absolute)
    return links


def extract_page(
    html: str,
    url: str,
    mode: CrawlMode,
    *,
    link_selector: str = "a[href]",
    status_code: int = 200,
    base_url: Optional[str] = None,
) -> Tuple[ExtractedDocument, List[str]]:
    """Parse ``html`` and build the document and discovered links for ``mode``.

    Links are resolved against ``base_url`` (the post-redirect URL) when given.
    """
    mode = CrawlMode(mode)
    tree = HTMLParser(html)
    for node in tree.css("script, style, noscript"):
        node.decompose()

    body_text = _text(tree.body)
    metadata: Dict[str, Any] = {}

    if mode is CrawlMode.STRICT:
        text = _article_text(tree)
        headings = Headings(
            h1=_heading_texts(tree, "h1", None),
            h2=_heading_texts(tree, "h2", STRICT_HEADINGS_LIMIT),
            h3=_heading_texts(tree, "h3", STRICT_HEADINGS_LIMIT),
        )
        products = _products(tree)
        keywords = _meta(tree, "keywords")
        if keywords:
            metadata["keywords"] = keywords
    else:
        text = body_text[:WANDER_TEXT_LIMIT]
        headings = Headings(
            h1=_heading_texts(tree, "h1", WANDER_HEADINGS_LIMIT),
            h2=_heading_texts(tree, "h2", WANDER_HEADINGS_LIMIT),
            h3=_heading_texts(tree, "h3", WANDER_HEADINGS_LIMIT),
        )
        products = ()

    document = ExtractedDocument(
        url=url,
        mode=mode.value,
        title=_text(tree.css_first("title")),
        description=_meta(tree, "description"),
        text=text,
        word_count=len(body_text.split()),
        headings=headings,
        link_count=len(tree.css("a[href]")),
        image_count=len(tree.css("img[src]")),
        products=products,
        status_code=status_code,
        metadata=metadata,
    )
    links = extract_links(tree, base_url or url, link_selector)
    logger.debug(
        "Page extracted",
        url=url,
        mode=mode.value,
        words=document.word_count,
        links=len(links),
        products=len(products),
    )
    return document, links
