"""
Tiered proxy selection.

Tiers are ordered cheapest first: direct (no proxy), basic, premium. New
sessions are assigned to the lowest tier that still has a usable proxy,
rotating round-robin inside that tier. Proxies are marked bad when a session
using them is evicted; once every tier is exhausted the selector degrades to
a direct connection instead of failing the crawl.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

import structlog

from wanderer.observability import increment

logger = structlog.get_logger(__name__)

DIRECT = "direct"
BASIC = "basic"
PREMIUM = "premium"


@dataclass(frozen=True)
class ProxyTier:
    name: str
    level: int
    proxies: Tuple[Optional[str], ...]


@dataclass(frozen=True)
class ProxyAssignment:
    """A concrete proxy choice; ``url`` is None for a direct connection."""

    tier: str
    level: int
    url: Optional[str] = None
    degraded: bool = False

    @property
    def is_direct(self) -> bool:
        return self.url is None


class ProxyTierSelector:
    """Builds the tier list and hands out proxy assignments."""

    def __init__(self, basic: Sequence[str] = (), premium: Sequence[str] = ()) -> None:
        tiers: List[ProxyTier] = [ProxyTier(name=DIRECT, level=0, proxies=(None,))]
        for name, pool in ((BASIC, basic), (PREMIUM, premium)):
            cleaned = tuple(dict.fromkeys(p.strip() for p in pool if p and p.strip()))
            if cleaned:
                tiers.append(ProxyTier(name=name, level=len(tiers), proxies=cleaned))
        self.tiers: Tuple[ProxyTier, ...] = tuple(tiers)

        self._cursors: Dict[str, int] = {tier.name: 0 for tier in self.tiers}
        self._bad: Dict[str, Set[Optional[str]]] = {tier.name: set() for tier in self.tiers}
        self._fallback_active = False
        self.fallback_count = 0

        logger.info(
            "Proxy tiers configured",
            tiers=[tier.name for tier in self.tiers],
            proxies={tier.name: len(tier.proxies) for tier in self.tiers if tier.name != DIRECT},
        )

    @property
    def has_proxies(self) -> bool:
        return len(self.tiers) > 1

    def _available(self, tier: ProxyTier) -> List[Optional[str]]:
        bad = self._bad[tier.name]
        return [p for p in tier.proxies if p not in bad]

    def is_exhausted(self, tier_name: str) -> bool:
        tier = self._tier(tier_name)
        return not self._available(tier)

    def _tier(self, name: str) -> ProxyTier:
        for tier in self.tiers:
            if tier.name == name:
                return tier
        raise KeyError(name)

    def next_tier_for(self, session_id: str) -> ProxyAssignment:
        """Assignment for a new session: lowest available tier, round-robin."""
        for tier in self.tiers:
            available = self._available(tier)
            if not available:
                continue
            cursor = self._cursors[tier.name]
            proxy = available[cursor % len(available)]
            self._cursors[tier.name] = cursor + 1
            if self._fallback_active:
                logger.info("Proxy tier available again", tier=tier.name)
                self._fallback_active = False
            logger.debug("Proxy assigned", session_id=session_id, tier=tier.name, proxy=proxy)
            return ProxyAssignment(tier=tier.name, level=tier.level, url=proxy)

        self.fallback_count += 1
        increment("proxy_fallback_total")
        if not self._fallback_active:
            logger.warning(
                "All proxy tiers exhausted, falling back to direct connection",
                session_id=session_id,
                tiers=[tier.name for tier in self.tiers],
            )
            self._fallback_active = True
        return ProxyAssignment(tier=DIRECT, level=0, url=None, degraded=True)

    def mark_bad(self, assignment: ProxyAssignment) -> None:
        """Exclude a proxy from future assignments."""
        if assignment.degraded:
            return
        bad = self._bad.get(assignment.tier)
        if bad is None or assignment.url in bad:
            return
        bad.add(assignment.url)
        logger.warning(
            "Proxy marked bad",
            tier=assignment.tier,
            proxy=assignment.url,
            tier_exhausted=self.is_exhausted(assignment.tier),
        )

    def reset(self) -> None:
        for bad in self._bad.values():
            bad.clear()
        self._fallback_active = False

    def describe(self) -> Dict[str, Dict[str, int]]:
        return {
            tier.name: {"total": len(tier.proxies), "bad": len(self._bad[tier.name])}
            for tier in self.tiers
        }
