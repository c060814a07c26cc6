"""Configuration models and loaders."""

from __future__ import annotations

from .config import (
    BatchConfig,
    Config,
    CrawlerConfig,
    MonitoringConfig,
    ProxyConfig,
    SessionConfig,
    StorageConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "BatchConfig",
    "Config",
    "CrawlerConfig",
    "MonitoringConfig",
    "ProxyConfig",
    "SessionConfig",
    "StorageConfig",
    "find_config_file",
    "load_config",
]
