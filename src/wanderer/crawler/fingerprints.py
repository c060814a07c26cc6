"""
Browser fingerprint generation for crawl sessions.

Each session gets one randomized fingerprint for its whole lifetime: a
realistic user agent together with a matching language, timezone and
viewport, and the request headers derived from them.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
}


@dataclass(frozen=True)
class Fingerprint:
    user_agent: str
    language: str
    timezone: str
    viewport: Tuple[int, int]
    platform: str

    def headers(self) -> Dict[str, str]:
        """Request headers presented by a session using this fingerprint."""
        headers = dict(DEFAULT_HEADERS)
        headers["User-Agent"] = self.user_agent
        headers["Accept-Language"] = self.language
        return headers


class FingerprintGenerator:
    """
    Produces randomized, internally consistent browser fingerprints.

    Desktop agents are favoured; the platform is derived from the agent so
    the fingerprint does not contradict itself.
    """

    def __init__(self, include_mobile: bool = True, rng: Optional[random.Random] = None):
        self.include_mobile = include_mobile
        self._rng = rng or random.Random()

        self.desktop_agents: List[str] = [
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
        ]
        self.mobile_agents: List[str] = [
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
            "Mozilla/5.0 (Linux; Android 14; SM-G998B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
        ]
        self.languages = ["en-US,en;q=0.9", "en-GB,en;q=0.9", "en-CA,en;q=0.9"]
        self.timezones = ["America/New_York", "America/Los_Angeles", "Europe/London", "Europe/Berlin", "Asia/Tokyo"]
        self.desktop_viewports = [(1920, 1080), (1366, 768), (1440, 900), (1536, 864)]
        self.mobile_viewports = [(390, 844), (412, 915)]

    def generate(self) -> Fingerprint:
        mobile = self.include_mobile and self._rng.random() < 0.2
        if mobile:
            user_agent = self._rng.choice(self.mobile_agents)
            viewport = self._rng.choice(self.mobile_viewports)
        else:
            user_agent = self._rng.choice(self.desktop_agents)
            viewport = self._rng.choice(self.desktop_viewports)
        return Fingerprint(
            user_agent=user_agent,
            language=self._rng.choice(self.languages),
            timezone=self._rng.choice(self.timezones),
            viewport=viewport,
            platform=_platform_for(user_agent),
        )


def _platform_for(user_agent: str) -> str:
    if "Android" in user_agent:
        return "android"
    if "iPhone" in user_agent or "iPad" in user_agent:
        return "ios"
    if "Windows" in user_agent:
        return "windows"
    if "Macintosh" in user_agent:
        return "macos"
    return "linux"
