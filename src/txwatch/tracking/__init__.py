"""Transaction and deposit status tracking."""

from txwatch.tracking.base import (
    BalanceRefresher,
    ChainNotifier,
    DepositHandle,
    DepositRecord,
    Milestone,
    TxStatus,
    WatchedTransaction,
)
from txwatch.tracking.scheduler import RefreshScheduler
from txwatch.tracking.store import StatusStore
from txwatch.tracking.watcher import TransactionWatcher

__all__ = [
    "BalanceRefresher",
    "ChainNotifier",
    "DepositHandle",
    "DepositRecord",
    "Milestone",
    "RefreshScheduler",
    "StatusStore",
    "TransactionWatcher",
    "TxStatus",
    "WatchedTransaction",
]
