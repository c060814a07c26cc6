"""
Wanderer - two-mode (wander/strict) web crawl orchestration core.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .container import DependencyContainer
from .modes import CrawlMode, ModeProfile, resolve_mode_profile
from .orchestrator import CrawlOrchestrator

__all__ = [
    "__version__",
    "Config",
    "DependencyContainer",
    "CrawlMode",
    "ModeProfile",
    "resolve_mode_profile",
    "CrawlOrchestrator",
]
