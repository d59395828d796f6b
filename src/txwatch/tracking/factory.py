"""Factory for building the watch engine from settings."""

import logging
from typing import Optional

from txwatch.config import Settings, get_settings
from txwatch.tracking.base import (
    BalanceRefresher,
    ChainNotifier,
    DepositHandle,
    RecordingRefresher,
    SimulatedChainNotifier,
    SimulatedDepositHandle,
)
from txwatch.tracking.jsonrpc import JsonRpcClient
from txwatch.tracking.scheduler import RefreshScheduler
from txwatch.tracking.store import StatusStore
from txwatch.tracking.watcher import TransactionWatcher
from txwatch.tracking.zksync import EthDepositHandle, ZkSyncNotifier, ZkSyncRefresher

logger = logging.getLogger(__name__)


def get_notifier(settings: Settings) -> ChainNotifier:
    """Get the milestone notifier for the configured mode.

    - dry_run: milestones are reached after one poll interval
    - otherwise: zkSync ``tx_info`` polling
    """
    if settings.dry_run:
        return SimulatedChainNotifier(auto_delay=settings.poll_interval)

    return ZkSyncNotifier(
        JsonRpcClient(settings.zksync_api_url, timeout=settings.rpc_timeout),
        poll_interval=settings.poll_interval,
        timeout=settings.milestone_timeout,
    )


def get_refresher(settings: Settings) -> BalanceRefresher:
    """Get the balance/history refresher for the configured account."""
    if settings.dry_run or not settings.account_address:
        if not settings.dry_run:
            logger.warning("ACCOUNT_ADDRESS not set - balance refresh disabled")
        return RecordingRefresher()

    return ZkSyncRefresher(
        JsonRpcClient(settings.zksync_api_url, timeout=settings.rpc_timeout),
        address=settings.account_address,
        rest_url=settings.zksync_rest_url,
        page_size=settings.history_page_size,
        timeout=settings.rpc_timeout,
    )


def get_deposit_handle(eth_tx_hash: str, settings: Optional[Settings] = None) -> DepositHandle:
    """Wrap a submitted deposit transaction hash in a handle."""
    settings = settings or get_settings()
    if settings.dry_run:
        return SimulatedDepositHandle(eth_tx_hash, auto_delay=settings.poll_interval)

    return EthDepositHandle(
        JsonRpcClient(settings.eth_rpc_url, timeout=settings.rpc_timeout),
        eth_tx_hash,
        poll_interval=settings.poll_interval,
        timeout=settings.receipt_timeout,
    )


def create_watcher(settings: Optional[Settings] = None) -> TransactionWatcher:
    """Build a watcher with a fresh store and scheduler."""
    settings = settings or get_settings()
    scheduler = RefreshScheduler(get_refresher(settings), delay=settings.refresh_delay)
    return TransactionWatcher(StatusStore(), get_notifier(settings), scheduler)
