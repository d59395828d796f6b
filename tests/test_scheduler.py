"""Tests for the debounced refresh scheduler."""

import asyncio

import pytest

from txwatch.tracking.base import CALL_HISTORY_SIZE, BalanceRefresher, RecordingRefresher
from txwatch.tracking.scheduler import RefreshScheduler


class TimedRefresher(BalanceRefresher):
    """Records the loop time of every refresh."""

    def __init__(self):
        self.balance_times: list[float] = []
        self.history_calls: list[tuple[int, bool]] = []

    async def refresh_balances(self, force: bool = False) -> None:
        assert force is True
        self.balance_times.append(asyncio.get_running_loop().time())

    async def refresh_history(self, offset: int = 0, force: bool = False) -> None:
        self.history_calls.append((offset, force))


class BlockingRefresher(BalanceRefresher):
    """Balance refresh blocks until released; records cancellations."""

    def __init__(self):
        self.release = asyncio.Event()
        self.started = 0
        self.cancelled = 0
        self.finished = 0

    async def refresh_balances(self, force: bool = False) -> None:
        self.started += 1
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        self.finished += 1

    async def refresh_history(self, offset: int = 0, force: bool = False) -> None:
        pass


class FailingRefresher(BalanceRefresher):
    async def refresh_balances(self, force: bool = False) -> None:
        raise RuntimeError("node down")

    async def refresh_history(self, offset: int = 0, force: bool = False) -> None:
        raise RuntimeError("node down")


class TestRefreshScheduler:
    """Tests for RefreshScheduler."""

    async def test_single_request_fires_once(self, refresher, until):
        """Test that one request produces one balance and one history refresh."""
        scheduler = RefreshScheduler(refresher, delay=0.01)
        scheduler.request()
        assert scheduler.pending

        await until(lambda: refresher.calls)
        await scheduler.flush()

        assert list(refresher.calls) == [("balances", True), ("history", 0, True)]
        assert not scheduler.pending

    async def test_burst_coalesces_after_last_call(self):
        """Test that N requests in the window give one refresh, after the last one."""
        refresher = TimedRefresher()
        scheduler = RefreshScheduler(refresher, delay=0.2)
        loop = asyncio.get_running_loop()

        for _ in range(10):
            scheduler.request()
            await asyncio.sleep(0.01)
        last_request = loop.time()
        scheduler.request()

        await asyncio.sleep(0.4)
        await scheduler.flush()

        assert len(refresher.balance_times) == 1
        assert refresher.balance_times[0] >= last_request + 0.2 - 0.001
        assert refresher.history_calls == [(0, True)]
        assert scheduler.fired == 1

    async def test_quiet_period_allows_second_refresh(self, refresher):
        """Test that requests separated by the window each fire."""
        scheduler = RefreshScheduler(refresher, delay=0.01)

        scheduler.request()
        await asyncio.sleep(0.05)
        scheduler.request()
        await asyncio.sleep(0.05)
        await scheduler.flush()

        assert refresher.balance_refreshes == 2
        assert refresher.history_refreshes == 2

    async def test_cancel_pending(self, refresher):
        """Test that a cancelled refresh never runs."""
        scheduler = RefreshScheduler(refresher, delay=0.01)
        scheduler.request()

        assert scheduler.cancel_pending() is True
        assert scheduler.cancel_pending() is False

        await asyncio.sleep(0.05)
        assert list(refresher.calls) == []

    async def test_refresher_errors_are_swallowed(self, caplog):
        """Test that refresh failures are logged, not raised."""
        scheduler = RefreshScheduler(FailingRefresher(), delay=0.01)
        scheduler.request()

        await asyncio.sleep(0.05)
        await scheduler.flush()

        assert "Balance refresh failed" in caplog.text

    def test_request_needs_running_loop(self, refresher):
        """Test that scheduling outside an event loop is rejected."""
        scheduler = RefreshScheduler(refresher)
        with pytest.raises(RuntimeError):
            scheduler.request()

    async def test_close_cancels_queued_refresh(self, until):
        """Test that close stops both the running and the queued refresh."""
        refresher = BlockingRefresher()
        scheduler = RefreshScheduler(refresher, delay=0.01)

        scheduler.request()
        await until(lambda: refresher.started == 1)
        # Second refresh queues behind the blocked first one
        scheduler.request()
        await until(lambda: scheduler.fired == 2)
        assert scheduler.active_refreshes == 2

        scheduler.close()
        await asyncio.sleep(0.01)
        refresher.release.set()
        await asyncio.sleep(0.05)

        assert refresher.cancelled == 1
        assert refresher.started == 1
        assert refresher.finished == 0
        assert scheduler.active_refreshes == 0

    async def test_recording_refresher_history_is_bounded(self):
        """Test that only the most recent refresher calls are kept."""
        refresher = RecordingRefresher()
        for _ in range(CALL_HISTORY_SIZE + 10):
            await refresher.refresh_balances(force=True)

        assert len(refresher.calls) == CALL_HISTORY_SIZE
        assert refresher.balance_refreshes == CALL_HISTORY_SIZE + 10
        assert refresher.history_refreshes == 0
