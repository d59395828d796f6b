"""Base interfaces for transaction and deposit tracking.

Watch flow:
1. Caller submits a transaction elsewhere and asks the engine to watch it
2. Engine waits for the COMMIT milestone on the layer-2 node
3. Status becomes Committed, balances are refreshed
4. Engine waits for the VERIFY milestone
5. Status becomes Verified, the entry is evicted, balances are refreshed

Deposits follow a shorter path: Initiated until the settlement-layer receipt
arrives, then Committed (removed from the active list).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

# Most recent calls kept by the simulated collaborators
CALL_HISTORY_SIZE = 1000


class TxStatus(str, Enum):
    """Status tag of a watched transaction or deposit."""

    INITIATED = "Initiated"   # Deposit sent on the settlement layer
    SUBMITTED = "Submitted"   # Watched, waiting for the commit milestone
    COMMITTED = "Committed"   # Included in a committed block
    VERIFIED = "Verified"     # Block proof verified (terminal)


class Milestone(str, Enum):
    """Confirmation stage a notifier can wait for."""

    COMMIT = "COMMIT"
    VERIFY = "VERIFY"


class MilestoneError(Exception):
    """Raised when a transaction is rejected or a milestone wait times out."""

    pass


class ReceiptError(Exception):
    """Raised when a deposit transaction reverts or its receipt never arrives."""

    pass


@dataclass
class WatchedTransaction:
    """Status of a transaction that has not reached Verified yet."""

    hash: str
    status: str
    extra: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"hash": self.hash, "status": self.status, **self.extra}


@dataclass
class DepositRecord:
    """Pending deposit shown in a token's deposit list."""

    hash: str
    amount: str           # Smallest units, decimal string
    status: str
    confirmations: int = 0

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "amount": self.amount,
            "status": self.status,
            "confirmations": self.confirmations,
        }


class ChainNotifier(ABC):
    """Waits for confirmation milestones of layer-2 transactions."""

    @abstractmethod
    async def await_milestone(self, tx_hash: str, milestone: Milestone) -> None:
        """Wait until the transaction reaches the milestone.

        Args:
            tx_hash: Layer-2 transaction hash
            milestone: COMMIT or VERIFY

        Raises:
            MilestoneError: if the transaction failed or the wait timed out
        """
        pass


class DepositHandle(ABC):
    """A submitted settlement-layer deposit transaction."""

    eth_tx_hash: str

    @abstractmethod
    async def await_receipt(self) -> None:
        """Wait until the deposit transaction has a successful receipt.

        Raises:
            ReceiptError: if the transaction reverted or the wait timed out
        """
        pass


class BalanceRefresher(ABC):
    """Refreshes account balances and transaction history."""

    @abstractmethod
    async def refresh_balances(self, force: bool = False) -> None:
        """Reload balances, bypassing any cache when force is set."""
        pass

    @abstractmethod
    async def refresh_history(self, offset: int = 0, force: bool = False) -> None:
        """Reload one page of transaction history starting at offset."""
        pass


class SimulatedChainNotifier(ChainNotifier):
    """In-process notifier for tests and dry-run mode.

    Every wait is backed by a future that can be resolved or failed from the
    outside. With ``auto_delay`` set, waits resolve on their own after the
    delay.
    """

    def __init__(self, auto_delay: Optional[float] = None):
        self.auto_delay = auto_delay
        self.calls: deque[tuple[str, Milestone]] = deque(maxlen=CALL_HISTORY_SIZE)
        self._waiters: dict[tuple[str, Milestone], asyncio.Future] = {}

    def _future(self, tx_hash: str, milestone: Milestone) -> asyncio.Future:
        key = (tx_hash, Milestone(milestone))
        if key not in self._waiters:
            self._waiters[key] = asyncio.get_running_loop().create_future()
        return self._waiters[key]

    async def await_milestone(self, tx_hash: str, milestone: Milestone) -> None:
        """Wait for the simulated milestone."""
        self.calls.append((tx_hash, Milestone(milestone)))
        if self.auto_delay is not None:
            await asyncio.sleep(self.auto_delay)
            logger.info(f"[SIMULATED] {tx_hash[:16]} reached {Milestone(milestone).value}")
            return
        await asyncio.shield(self._future(tx_hash, milestone))

    def resolve(self, tx_hash: str, milestone: Milestone) -> None:
        """Mark the milestone as reached."""
        future = self._future(tx_hash, milestone)
        if not future.done():
            future.set_result(None)

    def fail(
        self, tx_hash: str, milestone: Milestone, error: Optional[Exception] = None
    ) -> None:
        """Make the milestone wait raise."""
        future = self._future(tx_hash, milestone)
        if not future.done():
            future.set_exception(error or MilestoneError(f"{tx_hash} rejected"))

    def wait_count(self, tx_hash: str, milestone: Milestone) -> int:
        """Number of waits issued for a transaction and milestone."""
        return self.calls.count((tx_hash, Milestone(milestone)))


class SimulatedDepositHandle(DepositHandle):
    """Deposit handle whose receipt is settled from the outside."""

    def __init__(self, eth_tx_hash: str, auto_delay: Optional[float] = None):
        self.eth_tx_hash = eth_tx_hash
        self.auto_delay = auto_delay
        self._receipt: Optional[asyncio.Future] = None

    def _future(self) -> asyncio.Future:
        if self._receipt is None:
            self._receipt = asyncio.get_running_loop().create_future()
        return self._receipt

    async def await_receipt(self) -> None:
        """Wait for the simulated receipt."""
        if self.auto_delay is not None:
            await asyncio.sleep(self.auto_delay)
            return
        await asyncio.shield(self._future())

    def confirm(self) -> None:
        """Deliver a successful receipt."""
        future = self._future()
        if not future.done():
            future.set_result(None)

    def fail(self, error: Optional[Exception] = None) -> None:
        """Deliver a failed receipt."""
        future = self._future()
        if not future.done():
            future.set_exception(error or ReceiptError(f"{self.eth_tx_hash} reverted"))


class RecordingRefresher(BalanceRefresher):
    """Refresher that only records the calls it receives."""

    def __init__(self):
        self.calls: deque[tuple] = deque(maxlen=CALL_HISTORY_SIZE)
        self.balance_refreshes = 0
        self.history_refreshes = 0

    async def refresh_balances(self, force: bool = False) -> None:
        """Record a balance refresh."""
        logger.debug(f"[SIMULATED] Refresh balances (force={force})")
        self.calls.append(("balances", force))
        self.balance_refreshes += 1

    async def refresh_history(self, offset: int = 0, force: bool = False) -> None:
        """Record a history refresh."""
        logger.debug(f"[SIMULATED] Refresh history offset={offset} (force={force})")
        self.calls.append(("history", offset, force))
        self.history_refreshes += 1
