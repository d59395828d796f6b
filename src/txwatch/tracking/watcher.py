"""Transaction and deposit watch state machines.

Transactions:  Submitted -> Committed -> Verified (evicted)
Deposits:      Initiated -> Committed (removed from the token list)

Failures of the notifier or of the deposit receipt are logged and folded
into the nominal terminal status, so a watch never raises to its caller.
"""

import asyncio
import logging
from typing import Optional

from txwatch.tracking.base import (
    ChainNotifier,
    DepositHandle,
    Milestone,
    TxStatus,
)
from txwatch.tracking.scheduler import RefreshScheduler
from txwatch.tracking.store import StatusStore

logger = logging.getLogger(__name__)


class TransactionWatcher:
    """Watches transactions and deposits, writing their status to a store.

    Example:
        watcher = TransactionWatcher(store, notifier, scheduler)
        watcher.start_transaction_watch(tx_hash)
        ...
        watcher.abandon_all()  # on logout
    """

    def __init__(
        self,
        store: StatusStore,
        notifier: ChainNotifier,
        scheduler: RefreshScheduler,
    ):
        self.store = store
        self.notifier = notifier
        self.scheduler = scheduler
        self._tasks: set[asyncio.Task] = set()
        # Hashes claimed in the store by each running transaction watch
        self._claims: dict[asyncio.Task, str] = {}

    async def watch_transaction(self, tx_hash: str, already_submitted: bool = False) -> None:
        """Follow a layer-2 transaction until it is verified.

        Args:
            tx_hash: Layer-2 transaction hash
            already_submitted: Skip the COMMIT wait and mark it Committed at once
        """
        initial = TxStatus.COMMITTED if already_submitted else TxStatus.SUBMITTED
        if not self.store.claim(tx_hash, initial):
            logger.debug(f"Transaction {tx_hash} is already watched")
            return

        task = asyncio.current_task()
        self._claims[task] = tx_hash
        try:
            await self._follow_transaction(tx_hash, already_submitted)
        finally:
            self._claims.pop(task, None)

    async def _follow_transaction(self, tx_hash: str, already_submitted: bool) -> None:
        try:
            if not already_submitted:
                await self.notifier.await_milestone(tx_hash, Milestone.COMMIT)
                self.store.upsert(tx_hash, TxStatus.COMMITTED)
                logger.info(f"Transaction {tx_hash} committed")
                self.scheduler.request()

            await self.notifier.await_milestone(tx_hash, Milestone.VERIFY)
            logger.info(f"Transaction {tx_hash} verified")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Watch of {tx_hash} failed, marking verified: {e}")

        self.store.upsert(tx_hash, TxStatus.VERIFIED)
        self.scheduler.request()

    async def watch_deposit(
        self, handle: DepositHandle, token_symbol: str, amount: str
    ) -> None:
        """Follow a settlement-layer deposit until its receipt arrives.

        Args:
            handle: Submitted deposit transaction
            token_symbol: Token being deposited
            amount: Amount in smallest units
        """
        tx_hash = handle.eth_tx_hash
        self.store.update_deposit_status(
            token_symbol,
            tx_hash,
            TxStatus.INITIATED,
            amount=str(amount),
            confirmations=1,
        )
        logger.info(f"Watching {token_symbol} deposit {tx_hash} ({amount})")

        try:
            await handle.await_receipt()
            logger.info(f"Deposit {tx_hash} confirmed")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Deposit {tx_hash} receipt failed, marking committed: {e}")

        self.scheduler.request()
        self.store.update_deposit_status(token_symbol, tx_hash, TxStatus.COMMITTED)

    def link_withdrawal(self, tx_hash: str, eth_tx_hash: str) -> bool:
        """Record the settlement-layer transaction of a withdrawal."""
        return self.store.set_withdrawal_link(tx_hash, eth_tx_hash)

    def request_refresh(self) -> None:
        """Ask for a debounced balance and history refresh."""
        self.scheduler.request()

    # ======================
    # Task tracking
    # ======================

    def _track(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def start_transaction_watch(
        self, tx_hash: str, already_submitted: bool = False
    ) -> asyncio.Task:
        """Run watch_transaction in a tracked background task."""
        return self._track(
            self.watch_transaction(tx_hash, already_submitted),
            name=f"watch-tx-{tx_hash}",
        )

    def start_deposit_watch(
        self, handle: DepositHandle, token_symbol: str, amount: str
    ) -> asyncio.Task:
        """Run watch_deposit in a tracked background task."""
        return self._track(
            self.watch_deposit(handle, token_symbol, amount),
            name=f"watch-deposit-{handle.eth_tx_hash}",
        )

    @property
    def active_watches(self) -> int:
        return len(self._tasks)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until every tracked watch has finished.

        Returns:
            False if the timeout expired first
        """
        while self._tasks:
            done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
            if pending:
                return False
        return True

    def abandon_all(self) -> int:
        """Cancel every outstanding watch and the pending refresh.

        Does not wait for the tasks to unwind. Transactions claimed by the
        cancelled watches are released from the store at once, so they can be
        watched again. Returns the number of watches that were cancelled.
        """
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
            tx_hash = self._claims.pop(task, None)
            if tx_hash is not None:
                self.store.remove(tx_hash)
        self._tasks.clear()
        self.scheduler.cancel_pending()
        if tasks:
            logger.info(f"Abandoned {len(tasks)} pending watches")
        return len(tasks)
