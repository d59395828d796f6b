"""zkSync node adapters for the watch engine.

- ZkSyncNotifier polls ``tx_info`` until the transaction's block is
  committed or verified.
- EthDepositHandle polls ``eth_getTransactionReceipt`` on the settlement
  layer for a deposit transaction.
- ZkSyncRefresher reloads account balances (``account_info``) and history
  pages (REST API) and keeps the last result for readers.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from txwatch.tracking.base import (
    BalanceRefresher,
    ChainNotifier,
    DepositHandle,
    Milestone,
    MilestoneError,
    ReceiptError,
)
from txwatch.tracking.jsonrpc import JsonRpcClient, RpcError

logger = logging.getLogger(__name__)


def _deadline(timeout: float) -> Optional[float]:
    if not timeout:
        return None
    return asyncio.get_running_loop().time() + timeout


def _expired(deadline: Optional[float]) -> bool:
    return deadline is not None and asyncio.get_running_loop().time() >= deadline


class ZkSyncNotifier(ChainNotifier):
    """Milestone notifier backed by the zkSync JSON-RPC API."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        poll_interval: float = 2.0,
        timeout: float = 0.0,
    ):
        """Initialize notifier.

        Args:
            rpc: Client for the zkSync node
            poll_interval: Seconds between ``tx_info`` polls
            timeout: Give up after this many seconds (0 = never)
        """
        self.rpc = rpc
        self.poll_interval = poll_interval
        self.timeout = timeout

    @staticmethod
    def _reached(info: dict, milestone: Milestone) -> bool:
        block = info.get("block") or {}
        if milestone == Milestone.COMMIT:
            return bool(block.get("committed"))
        return bool(block.get("verified"))

    async def await_milestone(self, tx_hash: str, milestone: Milestone) -> None:
        """Poll the node until the transaction reaches the milestone."""
        milestone = Milestone(milestone)
        deadline = _deadline(self.timeout)

        while True:
            try:
                info = await self.rpc.call("tx_info", [tx_hash]) or {}
            except RpcError as e:
                # Node hiccups are retried until the deadline
                logger.warning(f"tx_info for {tx_hash} failed: {e}")
                info = {}

            if info.get("executed") and info.get("success") is False:
                reason = info.get("failReason") or "unknown reason"
                raise MilestoneError(f"Transaction {tx_hash} failed: {reason}")

            if self._reached(info, milestone):
                return

            if _expired(deadline):
                raise MilestoneError(
                    f"Transaction {tx_hash} not {milestone.value} after {self.timeout}s"
                )
            await asyncio.sleep(self.poll_interval)


class EthDepositHandle(DepositHandle):
    """Deposit transaction on the settlement layer."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        eth_tx_hash: str,
        poll_interval: float = 2.0,
        timeout: float = 0.0,
    ):
        self.rpc = rpc
        self.eth_tx_hash = eth_tx_hash
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.receipt: Optional[dict] = None

    async def await_receipt(self) -> None:
        """Poll until the deposit has a receipt, raising if it reverted."""
        deadline = _deadline(self.timeout)

        while True:
            try:
                receipt = await self.rpc.call("eth_getTransactionReceipt", [self.eth_tx_hash])
            except RpcError as e:
                logger.warning(f"Receipt lookup for {self.eth_tx_hash} failed: {e}")
                receipt = None

            if receipt:
                self.receipt = receipt
                if receipt.get("status") == "0x0":
                    raise ReceiptError(f"Deposit {self.eth_tx_hash} reverted")
                return

            if _expired(deadline):
                raise ReceiptError(
                    f"No receipt for deposit {self.eth_tx_hash} after {self.timeout}s"
                )
            await asyncio.sleep(self.poll_interval)


class ZkSyncRefresher(BalanceRefresher):
    """Reloads balances and history of one zkSync account."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        address: str,
        rest_url: str,
        page_size: int = 25,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc = rpc
        self.address = address
        self.rest_url = rest_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._transport = transport
        self._account: Optional[dict] = None
        self._history: dict[int, list[dict]] = {}

    @property
    def balances(self) -> dict[str, dict[str, str]]:
        """Last known committed and verified balances by token."""
        if self._account is None:
            return {"committed": {}, "verified": {}}
        return {
            "committed": dict((self._account.get("committed") or {}).get("balances", {})),
            "verified": dict((self._account.get("verified") or {}).get("balances", {})),
        }

    def history(self, offset: int = 0) -> list[dict]:
        """Last loaded history page at offset."""
        return list(self._history.get(offset, []))

    async def refresh_balances(self, force: bool = False) -> None:
        """Load ``account_info`` unless cached and not forced."""
        if self._account is not None and not force:
            return
        self._account = await self.rpc.call("account_info", [self.address])
        logger.debug(f"Balances refreshed for {self.address}")

    async def refresh_history(self, offset: int = 0, force: bool = False) -> None:
        """Load one history page unless cached and not forced."""
        if offset in self._history and not force:
            return

        url = f"{self.rest_url}/account/{self.address}/history/{offset}/{self.page_size}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise RpcError(f"History request failed: {e}") from e

        if response.status_code != 200:
            raise RpcError(f"History request returned HTTP {response.status_code}")

        page: Any = response.json()
        self._history[offset] = page if isinstance(page, list) else []
        logger.debug(f"History refreshed for {self.address} (offset {offset})")
