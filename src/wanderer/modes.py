"""
Mode profiles: the static per-mode crawl configuration.

A profile is resolved once at startup from a mode token and never mutated.
"""

from __future__ import annotations

import dataclasses
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from wanderer.exceptions import ConfigError


class CrawlMode(str, Enum):
    """The two mutually exclusive crawl modes."""

    WANDER = "wander"
    STRICT = "strict"


class LinkStrategy(str, Enum):
    """Which discovered links are eligible for enqueueing."""

    ALL = "all"
    SAME_DOMAIN = "same-domain"


RESTRICTED_PATTERNS: FrozenSet[str] = frozenset(
    {
        "/admin/",
        "/private/",
        "/api/",
        "/login/",
        "/signup/",
        ".pdf",
        ".zip",
        ".exe",
    }
)


@dataclass(frozen=True)
class ModeProfile:
    """Immutable crawl profile for a single run.

    Delays are in milliseconds, ``request_timeout`` is in seconds.
    """

    mode: CrawlMode
    max_requests: int
    max_concurrency: int
    request_timeout: float
    min_delay: int
    max_delay: int
    link_strategy: LinkStrategy
    link_selector: str
    max_depth: int
    restricted_patterns: FrozenSet[str] = frozenset()
    max_retries: int = 3
    session_pool_size: int = 20

    @property
    def is_strict(self) -> bool:
        return self.mode is CrawlMode.STRICT

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["mode"] = self.mode.value
        data["link_strategy"] = self.link_strategy.value
        data["restricted_patterns"] = sorted(self.restricted_patterns)
        return data


WANDER_PROFILE = ModeProfile(
    mode=CrawlMode.WANDER,
    max_requests=10000,
    max_concurrency=10,
    request_timeout=60.0,
    min_delay=1000,
    max_delay=3000,
    link_strategy=LinkStrategy.ALL,
    link_selector="a[href]",
    max_depth=5,
    restricted_patterns=frozenset(),
    max_retries=3,
    session_pool_size=50,
)

STRICT_PROFILE = ModeProfile(
    mode=CrawlMode.STRICT,
    max_requests=1000,
    max_concurrency=2,
    request_timeout=30.0,
    min_delay=2000,
    max_delay=5000,
    link_strategy=LinkStrategy.SAME_DOMAIN,
    link_selector='a[href*="/product/"], a[href*="/article/"], a[href*="/blog/"]',
    max_depth=3,
    restricted_patterns=RESTRICTED_PATTERNS,
    max_retries=2,
    session_pool_size=20,
)

MODE_PROFILES: Mapping[CrawlMode, ModeProfile] = {
    CrawlMode.WANDER: WANDER_PROFILE,
    CrawlMode.STRICT: STRICT_PROFILE,
}

_OVERRIDABLE_FIELDS = frozenset(f.name for f in dataclasses.fields(ModeProfile)) - {"mode"}


def resolve_mode_profile(token: str, overrides: Optional[Mapping[str, Any]] = None) -> ModeProfile:
    """Return the profile for ``token``, optionally with field overrides.

    Raises:
        ConfigError: if the token is not ``"wander"`` or ``"strict"``, or an
            override is unknown or produces an inconsistent profile.
    """
    if not isinstance(token, str):
        raise ConfigError(f"Mode token must be a string, got {type(token).__name__}")

    normalized = token.strip()
    try:
        mode = CrawlMode(normalized)
    except ValueError as e:
        valid = ", ".join(m.value for m in CrawlMode)
        raise ConfigError(f"Unknown crawl mode {token!r}; expected one of: {valid}") from e

    profile = MODE_PROFILES[mode]
    if not overrides:
        return profile

    unknown = set(overrides) - _OVERRIDABLE_FIELDS
    if unknown:
        raise ConfigError(f"Unknown mode profile fields: {', '.join(sorted(unknown))}")

    try:
        changes = {name: _coerce_override(profile, name, value) for name, value in overrides.items()}
    except (ValueError, TypeError, AttributeError) as e:
        raise ConfigError(f"Invalid mode profile override: {e}") from e

    profile = dataclasses.replace(profile, **changes)
    _validate_profile(profile)
    return profile


def _coerce_override(profile: ModeProfile, name: str, value: Any) -> Any:
    """Convert a raw override (often a string from YAML or env) to the field's type."""
    if name == "link_strategy":
        return LinkStrategy(value)
    if name == "restricted_patterns":
        if isinstance(value, str):
            raise TypeError("restricted_patterns must be a list of strings")
        return frozenset(str(p).lower() for p in value)
    current = getattr(profile, name)
    if isinstance(value, bool) or value is None:
        raise TypeError(f"{name} must be a {type(current).__name__}, got {value!r}")
    if isinstance(current, int):
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{name} must be a whole number, got {value!r}")
        return int(value)
    if isinstance(current, float):
        return float(value)
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {value!r}")
    return value


def _validate_profile(profile: ModeProfile) -> None:
    if profile.min_delay < 0 or profile.max_delay < profile.min_delay:
        raise ConfigError(f"Invalid delay bounds [{profile.min_delay}, {profile.max_delay}]")
    if profile.max_concurrency < 1:
        raise ConfigError("max_concurrency must be at least 1")
    if profile.max_requests < 1:
        raise ConfigError("max_requests must be at least 1")
    if profile.max_depth < 0:
        raise ConfigError("max_depth cannot be negative")
    if profile.max_retries < 0:
        raise ConfigError("max_retries cannot be negative")
    if profile.session_pool_size < 1:
        raise ConfigError("session_pool_size must be at least 1")
    if profile.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")


def random_delay_ms(profile: ModeProfile, rng: Optional[random.Random] = None) -> int:
    """Human-like delay in milliseconds, uniform over the inclusive bounds."""
    rng = rng or random
    return rng.randint(profile.min_delay, profile.max_delay)


def should_skip_url(url: str, profile: ModeProfile) -> bool:
    """Strict mode only: True when the URL contains a restricted pattern."""
    if not profile.is_strict:
        return False
    lowered = url.lower()
    return any(pattern in lowered for pattern in profile.restricted_patterns)
