"""
Dependency injection container wiring Wanderer's components from configuration.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, Generic, List, Optional, TypeVar
from uuid import uuid4

import structlog

from wanderer.config import Config, load_config

if TYPE_CHECKING:
    from wanderer.crawler.http_client import HttpExtractionEngine
    from wanderer.orchestrator import CrawlOrchestrator
    from wanderer.storage.sqlite_manager import SQLiteManager

T = TypeVar("T")


class LazyInstance(Generic[T]):
    """Lazy-loaded instance with lifecycle management."""

    def __init__(self, factory: Callable[..., T], *args: Any, **kwargs: Any) -> None:
        self._factory = factory
        self._args = args
        self._kwargs = kwargs
        self._instance: Optional[T] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def get(self) -> T:
        """Get or create the instance."""
        if not self._initialized:
            self._instance = self._factory(*self._args, **self._kwargs)
            if callable(getattr(self._instance, "initialize", None)):
                await self._instance.initialize()  # type: ignore
            self._initialized = True
        assert self._instance is not None
        return self._instance

    async def cleanup(self) -> None:
        """Clean up the instance."""
        if self._instance is not None and callable(getattr(self._instance, "close", None)):
            await self._instance.close()  # type: ignore
        self._instance = None
        self._initialized = False


class DependencyContainer:
    """
    Builds the extraction engine, datastore and crawl core for one run.

    Components are created lazily on first use and closed in reverse
    dependency order on shutdown: engine first, datastore last.
    """

    def __init__(self, config: Optional[Config] = None, config_path: Optional[Path] = None) -> None:
        self.config_path = config_path
        self.config: Optional[Config] = config
        self.logger = structlog.get_logger(self.__class__.__name__)

        self._instances: Dict[str, LazyInstance[Any]] = {}
        self._instances_lock = asyncio.Lock()
        self._shutdown_handlers: List[Callable[[], Any]] = []

        self.container_id = str(uuid4())
        self.is_running = False

    async def initialize(self) -> None:
        """Load configuration (if not given) and register lazy instances."""
        if self.config is None:
            self.config = load_config(self.config_path)
        if not self._instances:
            self._create_instances()
        self.is_running = True
        self.logger.info(
            "Dependency container initialized",
            container_id=self.container_id,
            mode=self.config.crawler.mode,
            config_path=str(self.config_path) if self.config_path else "default",
        )

    def _create_instances(self) -> None:
        if self.config is None:
            raise RuntimeError("Configuration must be loaded before creating instances")

        # Import modules only when needed to avoid circular imports
        from wanderer.crawler.http_client import HttpExtractionEngine
        from wanderer.storage.sqlite_manager import SQLiteManager

        self._instances = {
            "engine": LazyInstance(HttpExtractionEngine),
            "datastore": LazyInstance(SQLiteManager, self.config.storage),
        }

    def override(self, name: str, instance: Any) -> None:
        """Replace a component with a prebuilt instance."""
        if not self._instances:
            self._create_instances()
        self._instances[name] = LazyInstance(lambda: instance)

    async def get_engine(self) -> HttpExtractionEngine:
        async with self._instances_lock:
            return await self._instances["engine"].get()  # type: ignore

    async def get_datastore(self) -> SQLiteManager:
        async with self._instances_lock:
            return await self._instances["datastore"].get()  # type: ignore

    async def build_orchestrator(self) -> CrawlOrchestrator:
        """Wire a crawl orchestrator for the configured mode."""
        from wanderer.crawler.proxy_tiers import ProxyTierSelector
        from wanderer.crawler.sessions import SessionRegistry
        from wanderer.dedup.gate import DedupGate
        from wanderer.orchestrator import CrawlOrchestrator
        from wanderer.storage.batcher import PersistenceBatcher

        if self.config is None:
            raise RuntimeError("Container not initialized")
        config = self.config
        profile = config.mode_profile()
        datastore = await self.get_datastore()
        engine = await self.get_engine()

        selector = ProxyTierSelector(basic=config.proxies.basic, premium=config.proxies.premium)
        registry = SessionRegistry(
            selector,
            max_pool_size=profile.session_pool_size,
            max_usage_count=config.sessions.max_usage_count,
            max_consecutive_failures=config.sessions.max_consecutive_failures,
            acquire_timeout=config.crawler.session_acquire_timeout,
        )
        batcher = PersistenceBatcher(
            datastore,
            batch_size=config.batch.batch_size,
            flush_delay=config.batch.flush_delay,
            collection_threshold=config.storage.collection_size_threshold,
            max_retries=config.batch.max_retries,
            retry_wait_min=config.batch.retry_wait_min,
            retry_wait_max=config.batch.retry_wait_max,
            spill_path=config.batch.spill_path,
        )
        gate = DedupGate(datastore, freshness_hours=config.crawler.freshness_hours)

        self.logger.info("Crawl core wired", mode=profile.mode.value, proxy_tiers=selector.describe())
        return CrawlOrchestrator(
            profile,
            engine=engine,
            registry=registry,
            batcher=batcher,
            dedup_gate=gate,
            session_acquire_timeout=config.crawler.session_acquire_timeout,
            max_retry_after=config.crawler.max_retry_after,
        )

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator[DependencyContainer]:
        """Context manager for proper lifecycle management."""
        try:
            await self.initialize()
            yield self
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Graceful shutdown of all managed instances."""
        if not self.is_running:
            return

        self.logger.info("Shutting down dependency container", container_id=self.container_id)

        for handler in self._shutdown_handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler()
                else:
                    handler()
            except Exception as e:
                self.logger.error("Error in shutdown handler", error=str(e))

        for name, instance in self._instances.items():
            try:
                await instance.cleanup()
            except Exception as e:
                self.logger.error(f"Error cleaning up {name}", error=str(e))

        self.is_running = False
        self.logger.info("Dependency container shutdown complete")

    def add_shutdown_handler(self, handler: Callable[[], Any]) -> None:
        """Add a custom shutdown handler."""
        self._shutdown_handlers.append(handler)

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "container_id": self.container_id,
            "is_running": self.is_running,
            "config_loaded": self.config is not None,
            "instances": {name: inst.initialized for name, inst in self._instances.items()},
            "config_path": str(self.config_path) if self.config_path else None,
        }
