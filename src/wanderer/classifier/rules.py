"""
Ordered category rule table.

Rules are evaluated top to bottom and the first match wins, so the order is
part of the table's meaning. Bump ``RULES_VERSION`` whenever a rule or the
order changes; stored documents are not reclassified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

RULES_VERSION = "1"


@dataclass(frozen=True)
class CategoryRule:
    """
    A category and the signals that select it.

    A rule matches when any URL substring occurs in the lower-cased URL, any
    keyword occurs in the lower-cased content, every keyword of any one
    ``all_of`` group occurs in the content, or (with ``match_products``) the
    document carries at least one product.
    """

    name: str
    url_substrings: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()
    all_of: Tuple[Tuple[str, ...], ...] = ()
    match_products: bool = False

    def matches(self, url: str, haystack: str, product_count: int = 0) -> bool:
        if self.match_products and product_count > 0:
            return True
        if any(s in url for s in self.url_substrings):
            return True
        if any(k in haystack for k in self.keywords):
            return True
        return any(all(k in haystack for k in group) for group in self.all_of)


CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        name="github",
        url_substrings=("github.com", "github.io"),
        keywords=("github", "repository", "pull request", "commit", "open source", "git clone"),
    ),
    CategoryRule(
        name="sports",
        url_substrings=(
            "espn.com",
            "theathletic.com",
            "bleacherreport.com",
            "skysports.com",
            "formula1.com",
            "pgatour.com",
            "/sport",
        ),
        keywords=(
            "sports",
            "football",
            "basketball",
            "baseball",
            "soccer",
            "tennis",
            "golf",
            "championship",
            "league",
            "athlete",
            "match",
            "tournament",
            "playoff",
        ),
    ),
    CategoryRule(
        name="science",
        url_substrings=("nature.com", "science.org", "scientificamerican.com", "sciencedaily.com"),
        keywords=(
            "research",
            "study shows",
            "scientists",
            "researchers",
            "scientific",
            "experiment",
            "discovery",
            "peer review",
            "journal",
            "hypothesis",
        ),
    ),
    CategoryRule(
        name="rabbit_hole",
        url_substrings=("atlasobscura.com", "mentalfloss.com", "ridiculouslyinteresting.com"),
        keywords=("weird", "unusual", "bizarre", "mystery", "fascinating", "strange", "curious", "obscure"),
    ),
    CategoryRule(
        name="big_technology",
        url_substrings=(
            "apple.com",
            "microsoft.com",
            "google.com",
            "amazon.com",
            "meta.com",
            "facebook.com",
            "twitter.com",
            "x.com",
            "tesla.com",
            "netflix.com",
            "techcrunch.com",
            "theverge.com",
            "arstechnica.com",
            "wired.com",
            "technologyreview.com",
            "stackoverflow.com",
        ),
        keywords=(
            "artificial intelligence",
            "machine learning",
            "cloud computing",
            "tech earnings",
            "startup",
            "silicon valley",
        ),
    ),
    CategoryRule(
        name="local_news",
        url_substrings=("newsbreak.com", "news.google.com", "smartnews.com", "apple.com/apple-news"),
        keywords=("neighborhood", "community news", "city council", "school board"),
        all_of=(("local", "news"),),
    ),
    CategoryRule(
        name="local_area_data",
        url_substrings=(".gov",),
        keywords=(
            "weather",
            "traffic",
            "restaurant",
            "yelp",
            "tripadvisor",
            "city guide",
            "events near",
            "things to do",
            "government",
        ),
    ),
    CategoryRule(
        name="ecommerce",
        url_substrings=("shop", "store", "amazon.com", "ebay.com", "etsy.com", "walmart.com"),
        keywords=("price", "buy now", "add to cart"),
        match_products=True,
    ),
    CategoryRule(
        name="news",
        url_substrings=("news", "reuters.com", "apnews.com", "bbc.com/news", "wsj.com/news"),
        keywords=("news", "article", "breaking", "report", "journalist"),
    ),
    CategoryRule(
        name="docs",
        url_substrings=("docs", "developer.", "/docs/"),
        keywords=("api", "documentation", "tutorial", "guide", "reference", "developer"),
    ),
    CategoryRule(
        name="forum",
        url_substrings=("forum", "reddit.com", "news.ycombinator.com"),
        keywords=("forum", "discussion", "reddit", "comment", "thread", "reply"),
    ),
)

CATEGORY_NAMES: Tuple[str, ...] = tuple(rule.name for rule in CATEGORY_RULES)
