"""Tests for topic starting points."""

import pytest

from wanderer.classifier import CATEGORY_NAMES
from wanderer.seeds import AVAILABLE_TOPICS, TOPIC_STARTING_POINTS, seeds_for_topics, starting_urls_for_topic


@pytest.mark.unit
class TestSeeds:
    def test_every_category_has_starting_points(self):
        for category in CATEGORY_NAMES:
            if category == "local_area_data":
                continue
            assert TOPIC_STARTING_POINTS[category]
        assert "general" in AVAILABLE_TOPICS

    def test_topic_lookup_is_forgiving(self):
        assert starting_urls_for_topic(" GitHub ") == TOPIC_STARTING_POINTS["github"]

    def test_unknown_topic_gets_general(self):
        assert starting_urls_for_topic("knitting") == TOPIC_STARTING_POINTS["general"]

    def test_seeds_for_topics_dedups_in_order(self):
        seeds = seeds_for_topics(["forum", "docs"])
        assert seeds[0] == "https://www.reddit.com"
        assert len(seeds) == len(set(seeds))
        assert seeds.index("https://stackoverflow.com") < seeds.index("https://docs.python.org")
        assert seeds.count("https://dev.to") == 1

    def test_no_topics(self):
        assert seeds_for_topics([]) == []
