"""Pytest configuration and fixtures."""

import asyncio
import os

import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["POLL_INTERVAL"] = "0.01"
os.environ["REFRESH_DELAY"] = "0.02"
os.environ["DEBUG"] = "true"

from txwatch.tracking.base import RecordingRefresher, SimulatedChainNotifier
from txwatch.tracking.scheduler import RefreshScheduler
from txwatch.tracking.store import StatusStore
from txwatch.tracking.watcher import TransactionWatcher

TEST_REFRESH_DELAY = 0.02


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Let the loop run until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def store() -> StatusStore:
    """Fresh in-memory status store."""
    return StatusStore()


@pytest.fixture
def refresher() -> RecordingRefresher:
    """Refresher that records calls."""
    return RecordingRefresher()


@pytest.fixture
def notifier() -> SimulatedChainNotifier:
    """Notifier whose milestones are resolved by the test."""
    return SimulatedChainNotifier()


@pytest_asyncio.fixture
async def scheduler(refresher):
    """Debounce scheduler with a short window."""
    scheduler = RefreshScheduler(refresher, delay=TEST_REFRESH_DELAY)
    yield scheduler
    scheduler.close()


@pytest_asyncio.fixture
async def watcher(store, notifier, scheduler):
    """Watcher wired to the simulated collaborators."""
    watcher = TransactionWatcher(store, notifier, scheduler)
    yield watcher
    watcher.abandon_all()


@pytest.fixture
def until():
    """The wait_until helper, for tests that poll engine state."""
    return wait_until
