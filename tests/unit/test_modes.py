"""Tests for mode profile resolution and the per-mode helpers."""

import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from wanderer.exceptions import ConfigError
from wanderer.modes import (
    STRICT_PROFILE,
    WANDER_PROFILE,
    CrawlMode,
    LinkStrategy,
    random_delay_ms,
    resolve_mode_profile,
    should_skip_url,
)


@pytest.mark.unit
class TestResolveModeProfile:
    def test_wander_profile_values(self):
        profile = resolve_mode_profile("wander")
        assert profile is WANDER_PROFILE
        assert profile.mode is CrawlMode.WANDER
        assert profile.max_requests == 10000
        assert profile.max_concurrency == 10
        assert profile.request_timeout == 60.0
        assert (profile.min_delay, profile.max_delay) == (1000, 3000)
        assert profile.link_strategy is LinkStrategy.ALL
        assert profile.link_selector == "a[href]"
        assert profile.max_depth == 5
        assert profile.restricted_patterns == frozenset()

    def test_strict_profile_values(self):
        profile = resolve_mode_profile("strict")
        assert profile is STRICT_PROFILE
        assert profile.max_requests == 1000
        assert profile.max_concurrency == 2
        assert profile.request_timeout == 30.0
        assert (profile.min_delay, profile.max_delay) == (2000, 5000)
        assert profile.link_strategy is LinkStrategy.SAME_DOMAIN
        assert "/product/" in profile.link_selector
        assert profile.max_depth == 3
        assert {"/admin/", "/login/", ".pdf", ".exe"} <= profile.restricted_patterns

    def test_surrounding_whitespace_is_ignored(self):
        assert resolve_mode_profile("  strict\n") is STRICT_PROFILE

    @pytest.mark.parametrize("token", ["", "WANDER", "Strict", "explore", "wander-mode"])
    def test_unknown_tokens_raise(self, token):
        with pytest.raises(ConfigError):
            resolve_mode_profile(token)

    def test_non_string_token_raises(self):
        with pytest.raises(ConfigError):
            resolve_mode_profile(None)  # type: ignore[arg-type]

    @given(st.sampled_from(["wander", "strict"]))
    def test_resolution_is_deterministic(self, token):
        assert resolve_mode_profile(token) == resolve_mode_profile(token)

    def test_overrides_replace_fields(self):
        profile = resolve_mode_profile("wander", {"max_depth": 2, "link_strategy": "same-domain"})
        assert profile.max_depth == 2
        assert profile.link_strategy is LinkStrategy.SAME_DOMAIN
        assert WANDER_PROFILE.max_depth == 5

    def test_string_overrides_are_coerced(self):
        profile = resolve_mode_profile("strict", {"max_depth": "2", "request_timeout": "12.5", "min_delay": 0})
        assert profile.max_depth == 2
        assert profile.request_timeout == 12.5
        assert profile.min_delay == 0

    def test_invalid_override_type_raises_config_error(self):
        with pytest.raises(ConfigError):
            resolve_mode_profile("strict", {"max_depth": "2", "max_concurrency": "many"})

    def test_restricted_pattern_override_is_lowercased(self):
        profile = resolve_mode_profile("strict", {"restricted_patterns": ["/Admin/", ".DOCX"]})
        assert profile.restricted_patterns == frozenset({"/admin/", ".docx"})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"colour": "blue"},
            {"mode": "wander"},
            {"min_delay": 5000, "max_delay": 1000},
            {"max_concurrency": 0},
            {"max_depth": -1},
            {"link_strategy": "sideways"},
            {"request_timeout": 0},
            {"max_depth": "two"},
            {"max_depth": 2.5},
            {"max_requests": None},
            {"max_retries": True},
            {"restricted_patterns": "/admin/"},
            {"link_selector": 5},
        ],
    )
    def test_invalid_overrides_raise(self, overrides):
        with pytest.raises(ConfigError):
            resolve_mode_profile("strict", overrides)

    def test_to_dict_uses_plain_values(self):
        data = STRICT_PROFILE.to_dict()
        assert data["mode"] == "strict"
        assert data["link_strategy"] == "same-domain"
        assert data["restricted_patterns"] == sorted(STRICT_PROFILE.restricted_patterns)


@pytest.mark.unit
class TestDelaysAndRestrictions:
    def test_delay_within_bounds(self):
        rng = random.Random(7)
        delays = [random_delay_ms(STRICT_PROFILE, rng) for _ in range(500)]
        assert all(2000 <= d <= 5000 for d in delays)
        assert all(isinstance(d, int) for d in delays)

    def test_delay_bounds_are_inclusive(self):
        profile = resolve_mode_profile("wander", {"min_delay": 10, "max_delay": 10})
        assert random_delay_ms(profile, random.Random(1)) == 10

    @pytest.mark.parametrize(
        "url",
        [
            "https://shop.example.com/admin/users",
            "https://example.com/API/v1/items",
            "https://example.com/files/report.PDF",
            "https://example.com/login/",
        ],
    )
    def test_strict_skips_restricted_urls(self, url):
        assert should_skip_url(url, STRICT_PROFILE)

    def test_strict_allows_ordinary_urls(self):
        assert not should_skip_url("https://example.com/article/42", STRICT_PROFILE)

    def test_wander_never_skips(self):
        assert not should_skip_url("https://example.com/admin/", WANDER_PROFILE)
