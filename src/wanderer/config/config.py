"""
Configuration management for Wanderer using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from wanderer.exceptions import ConfigError
from wanderer.modes import ModeProfile, resolve_mode_profile

# --- Setup Logging ---
log = logging.getLogger(__name__)


def _split_csv(v: Any) -> Any:
    """Accept ``"a,b,c"`` wherever a list of strings is expected."""
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


# --- Nested Configuration Models ---


class CrawlerConfig(BaseModel):
    """Crawl run configuration."""

    mode: str = Field(default="strict", description="Crawl mode token: 'wander' or 'strict'.")
    targets: List[str] = Field(default_factory=list, description="Seed URLs to start crawling from.")
    topics: List[str] = Field(default_factory=list, description="Topic names whose starting points are added as seeds.")
    freshness_hours: float = Field(
        default=24.0, ge=0, description="URLs scraped successfully within this window are not re-dispatched."
    )
    session_acquire_timeout: float = Field(
        default=30.0, gt=0, description="Maximum seconds a worker waits for a free crawl session."
    )
    max_retry_after: Optional[float] = Field(
        default=None, description="Cap for honoring Retry-After on HTTP 429. Defaults to the request timeout."
    )
    profile_overrides: Dict[str, Any] = Field(
        default_factory=dict, description="Field overrides applied on top of the resolved mode profile."
    )

    @field_validator("targets", "topics", mode="before")
    @classmethod
    def split_lists(cls, v: Any) -> Any:
        return _split_csv(v)


class ProxyConfig(BaseModel):
    """Proxy pools, lowest tier first. The direct tier is implicit."""

    basic: List[str] = Field(default_factory=list, description="Basic-tier proxy URLs.")
    premium: List[str] = Field(default_factory=list, description="Premium-tier proxy URLs.")

    @field_validator("basic", "premium", mode="before")
    @classmethod
    def split_lists(cls, v: Any) -> Any:
        return _split_csv(v)


class SessionConfig(BaseModel):
    """Session pool health policy. Pool size itself comes from the mode profile."""

    max_usage_count: int = Field(default=50, ge=1, description="Requests after which a session is retired.")
    max_consecutive_failures: int = Field(
        default=3, ge=1, description="Consecutive failures after which a session is evicted as bad."
    )


class StorageConfig(BaseModel):
    """Configuration for the SQLite datastore."""

    db_path: Path = Field(
        default_factory=lambda: Path.home() / ".wanderer" / "wanderer.db",
        description="SQLite database file path",
    )
    pool_size: int = Field(default=4, ge=1, description="Size of the connection pool.")
    wal_mode: bool = Field(default=True, description="Enable Write-Ahead Logging for higher concurrency.")
    collection_size_threshold: int = Field(
        default=1000, ge=1, description="Stored documents per category/mode before the collection hint rolls over."
    )

    @field_validator("db_path", mode="before")
    @classmethod
    def ensure_db_directory(cls, v: Any) -> Path:
        """Ensure database directory exists."""
        path = Path(v) if not isinstance(v, Path) else v
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


class BatchConfig(BaseModel):
    """Configuration for the persistence batcher."""

    batch_size: int = Field(default=20, ge=1, description="Buffered documents that trigger an immediate flush.")
    flush_delay: float = Field(default=1.0, gt=0, description="Seconds after the first buffered document to flush.")
    max_retries: int = Field(default=5, ge=1, description="Write attempts per flush before re-buffering.")
    retry_wait_min: float = Field(default=0.5, ge=0, description="Minimum backoff between write attempts.")
    retry_wait_max: float = Field(default=10.0, ge=0, description="Maximum backoff between write attempts.")
    spill_path: Optional[Path] = Field(
        default=None, description="JSON file receiving documents that could not be flushed at shutdown."
    )


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: Optional[str] = Field(default=None, description="Path to log file. If None, logs to console.")
    prometheus_port: Optional[int] = Field(
        default=None,
        description="Port for Prometheus metrics exporter. None to disable.",
    )

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "Wanderer"
    version: str = "0.1.0"
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    proxies: ProxyConfig = Field(default_factory=ProxyConfig)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="WANDERER_", env_nested_delimiter="__", case_sensitive=False)

    def mode_profile(self) -> ModeProfile:
        """Resolve the configured mode token into its profile."""
        return resolve_mode_profile(self.crawler.mode, self.crawler.profile_overrides)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise ConfigError(f"Configuration file not found or is not a file: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Configuration file is not valid YAML: {path}: {e}") from e
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            yaml_data = {}
        try:
            return cls.model_validate(yaml_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    paths_to_check = [
        current_dir / "wanderer.yaml",
        current_dir / "wanderer.yml",
        current_dir / "config.yaml",
        current_dir / "config.yml",
    ]
    for path in paths_to_check:
        if path.exists():
            return path
    return None


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from ``path``, a discovered file, or the environment.

    Raises:
        ConfigError: if the configuration is missing, unreadable or invalid,
            including an unknown mode token.
    """
    config_path = path or find_config_file()
    if config_path is not None:
        log.info("Loading configuration from: %s", config_path)
        config = Config.from_yaml(config_path)
    else:
        log.info("No config file found. Using environment and default settings.")
        try:
            config = Config()
        except (ValidationError, SettingsError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    # Fail fast on a bad mode token rather than at crawl start.
    config.mode_profile()
    return config
