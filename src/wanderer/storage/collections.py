"""
Collection routing hints.

Stored documents carry a hint naming the logical collection they belong to,
``{mode}_{category}_{YYYY-MM}``. Once a category/mode pair holds more than
the size threshold, a numeric suffix splits it into thousand-record buckets.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from wanderer.protocols import utcnow

DEFAULT_COLLECTION_SIZE_THRESHOLD = 1000
BUCKET_SIZE = 1000


def collection_name(
    category: str,
    mode: str,
    count: int = 0,
    threshold: int = DEFAULT_COLLECTION_SIZE_THRESHOLD,
    now: Optional[datetime] = None,
) -> str:
    base = f"{mode}_{category}_{(now or utcnow()).strftime('%Y-%m')}"
    if count > threshold:
        return f"{base}_{count // BUCKET_SIZE}"
    return base
