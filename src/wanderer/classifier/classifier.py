"""
Rule-based document classification.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

import structlog

from wanderer.classifier.rules import CATEGORY_RULES, CategoryRule
from wanderer.exceptions import ClassificationError
from wanderer.observability import increment
from wanderer.protocols import DEFAULT_CATEGORY, ExtractedDocument

logger = structlog.get_logger(__name__)


def _signals(document: Any) -> Tuple[str, str, int]:
    try:
        url = (document.url or "").lower()
        haystack = f"{document.title or ''} {document.description or ''} {document.text or ''}".lower()
        product_count = len(document.products or ())
    except (AttributeError, TypeError) as e:
        raise ClassificationError(f"Document cannot be classified: {e}") from e
    return url, haystack, product_count


def classify(document: ExtractedDocument, rules: Sequence[CategoryRule] = CATEGORY_RULES) -> str:
    """Category of ``document``: the first matching rule, else ``"general"``.

    Never raises; documents that cannot be inspected are classified as general.
    """
    try:
        url, haystack, product_count = _signals(document)
    except ClassificationError as e:
        logger.warning("Classification failed, using default category", error=str(e))
        category = DEFAULT_CATEGORY
    else:
        category = DEFAULT_CATEGORY
        for rule in rules:
            if rule.matches(url, haystack, product_count):
                category = rule.name
                break
    increment("documents_classified_total", labels={"category": category})
    return category
