"""Debounced balance refresh scheduling.

Many watches finish in bursts (a block commits dozens of transactions at
once). Each of them asks for a refresh; the scheduler keeps a single timer
and restarts it on every request, so the node is queried once after the
burst settles.
"""

import asyncio
import logging
from typing import Optional

from txwatch.tracking.base import BalanceRefresher

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_DELAY = 0.5


class RefreshScheduler:
    """Single-slot debounce timer in front of a BalanceRefresher."""

    def __init__(self, refresher: BalanceRefresher, delay: float = DEFAULT_REFRESH_DELAY):
        """Initialize scheduler.

        Args:
            refresher: Balance/history refresher called when the timer fires
            delay: Quiet period in seconds before the refresh runs
        """
        self.refresher = refresher
        self.delay = delay
        self._timer: Optional[asyncio.TimerHandle] = None
        self._running: Optional[asyncio.Task] = None
        self._refreshes: set[asyncio.Task] = set()
        self.fired = 0

    @property
    def pending(self) -> bool:
        """True while a refresh is scheduled but has not started."""
        return self._timer is not None

    def request(self) -> None:
        """Schedule a refresh, replacing any pending one."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.delay, self._fire)

    def cancel_pending(self) -> bool:
        """Drop the scheduled refresh. Returns True if one was pending."""
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        logger.debug("Pending balance refresh cancelled")
        return True

    def _fire(self) -> None:
        self._timer = None
        self.fired += 1
        previous = self._running
        self._running = asyncio.create_task(self._refresh(previous))
        self._refreshes.add(self._running)
        self._running.add_done_callback(self._refreshes.discard)

    async def _refresh(self, previous: Optional[asyncio.Task]) -> None:
        # Never run two refreshes at once
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        logger.debug("Refreshing balances and transaction history")
        results = await asyncio.gather(
            self.refresher.refresh_balances(force=True),
            self.refresher.refresh_history(offset=0, force=True),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Balance refresh failed: {result}")

    @property
    def active_refreshes(self) -> int:
        """Refreshes running or waiting for the previous one."""
        return len(self._refreshes)

    async def flush(self) -> None:
        """Wait for the refresh that is currently running, if any."""
        running = self._running
        if running is not None and not running.done():
            await asyncio.wait([running])

    def close(self) -> None:
        """Cancel the pending timer and every refresh still running or queued."""
        self.cancel_pending()
        for task in list(self._refreshes):
            task.cancel()
        self._refreshes.clear()
        self._running = None
