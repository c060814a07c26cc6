"""
Shared fixtures for the Wanderer test suite.
"""

import asyncio
import random
from pathlib import Path
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio

from tests.helpers import FakeDatastore, FakeEngine
from wanderer.config.config import StorageConfig
from wanderer.crawler.proxy_tiers import ProxyTierSelector
from wanderer.crawler.sessions import SessionRegistry
from wanderer.dedup.gate import DedupGate
from wanderer.storage.batcher import PersistenceBatcher
from wanderer.storage.sqlite_manager import SQLiteManager

# ============================================================================
# Core Test Fixtures
# ============================================================================


@pytest_asyncio.fixture(autouse=True)
async def cleanup_tasks() -> AsyncGenerator[None, None]:
    """
    Cancel any asyncio tasks a test leaves behind, so a stray timer or
    writer cannot leak into the next test.
    """
    tasks_before = asyncio.all_tasks()
    yield
    new_tasks = asyncio.all_tasks() - tasks_before

    for task in new_tasks:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def datastore() -> FakeDatastore:
    return FakeDatastore()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def proxy_selector() -> ProxyTierSelector:
    return ProxyTierSelector()


@pytest.fixture
def registry(proxy_selector, rng) -> SessionRegistry:
    return SessionRegistry(proxy_selector, max_pool_size=5, acquire_timeout=1.0, rng=rng)


@pytest.fixture
def batcher(datastore) -> PersistenceBatcher:
    return PersistenceBatcher(datastore, batch_size=20, flush_delay=0.05, retry_wait_min=0, retry_wait_max=0)


@pytest.fixture
def dedup_gate(datastore) -> DedupGate:
    return DedupGate(datastore)


class SleepRecorder:
    """Replacement for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    return StorageConfig(db_path=tmp_path / "wanderer.db", pool_size=2)


@pytest_asyncio.fixture
async def sqlite_manager(storage_config) -> AsyncGenerator[SQLiteManager, None]:
    manager = SQLiteManager(storage_config)
    await manager.initialize()
    yield manager
    await manager.close()
