"""In-memory status store shared by the watch state machines.

Holds three tables:
- watched transactions keyed by layer-2 hash (Verified entries are evicted)
- pending deposits grouped per token symbol, in insertion order
- withdrawal hash -> settlement-layer hash links (write-once)

Every operation takes the store lock for its whole read-modify-write, and
readers get copies, so observers never see a half-applied update.
"""

import logging
import threading
from dataclasses import replace
from typing import Optional

from txwatch.tracking.base import DepositRecord, TxStatus, WatchedTransaction

logger = logging.getLogger(__name__)


def _status_value(status) -> str:
    if isinstance(status, TxStatus):
        return status.value
    return str(status)


class StatusStore:
    """Keyed status registry for watched transactions and deposits."""

    def __init__(self):
        self._lock = threading.RLock()
        self._transactions: dict[str, WatchedTransaction] = {}
        self._deposits: dict[str, list[DepositRecord]] = {}
        self._withdrawal_links: dict[str, str] = {}
        self._revision = 0

    # ======================
    # Watched transactions
    # ======================

    def get(self, tx_hash: str) -> Optional[WatchedTransaction]:
        """Get a copy of a watched transaction, or None if not tracked."""
        with self._lock:
            tx = self._transactions.get(tx_hash)
            if tx is None:
                return None
            return replace(tx, extra=dict(tx.extra))

    def __contains__(self, tx_hash: str) -> bool:
        with self._lock:
            return tx_hash in self._transactions

    def claim(self, tx_hash: str, status: str) -> bool:
        """Insert a transaction only if it is not tracked yet.

        Returns:
            True if this call created the entry, False if it already existed
        """
        with self._lock:
            if tx_hash in self._transactions:
                return False
            self._transactions[tx_hash] = WatchedTransaction(
                hash=tx_hash, status=_status_value(status)
            )
            return True

    def upsert(
        self, tx_hash: str, status: str, extra: Optional[dict[str, str]] = None
    ) -> None:
        """Create or update a transaction's status.

        A Verified status removes the entry instead.
        """
        status = _status_value(status)
        with self._lock:
            if status == TxStatus.VERIFIED.value:
                self._transactions.pop(tx_hash, None)
                return

            tx = self._transactions.get(tx_hash)
            if tx is None:
                tx = WatchedTransaction(hash=tx_hash, status=status)
                self._transactions[tx_hash] = tx
            else:
                tx.status = status
            if extra:
                tx.extra.update({k: str(v) for k, v in extra.items()})

    def remove(self, tx_hash: str) -> bool:
        """Stop tracking a transaction. Returns True if it was tracked."""
        with self._lock:
            return self._transactions.pop(tx_hash, None) is not None

    def pending_transactions(self) -> dict[str, WatchedTransaction]:
        """Snapshot of all transactions that have not reached Verified."""
        with self._lock:
            return {
                tx_hash: replace(tx, extra=dict(tx.extra))
                for tx_hash, tx in self._transactions.items()
            }

    # ======================
    # Deposits
    # ======================

    def update_deposit_status(
        self,
        token_symbol: str,
        tx_hash: str,
        status: str,
        amount: Optional[str] = None,
        confirmations: int = 0,
    ) -> None:
        """Apply a deposit status change.

        Unknown deposits are appended to the token's list, Committed removes
        the deposit, any other status updates it in place.
        """
        status = _status_value(status)
        with self._lock:
            records = self._deposits.setdefault(token_symbol, [])
            index = next((i for i, r in enumerate(records) if r.hash == tx_hash), -1)

            if index == -1:
                if status == TxStatus.COMMITTED.value:
                    # Already removed by an earlier watch of the same deposit
                    logger.debug(f"Deposit {tx_hash} ({token_symbol}) already committed")
                    return
                records.append(
                    DepositRecord(
                        hash=tx_hash,
                        amount=str(amount) if amount is not None else "0",
                        status=status,
                        confirmations=confirmations,
                    )
                )
            elif status == TxStatus.COMMITTED.value:
                del records[index]
            else:
                records[index].status = status

            self._revision += 1

    def list_by_token(self, token_symbol: str) -> list[DepositRecord]:
        """Pending deposits for a token, oldest first."""
        with self._lock:
            return [replace(r) for r in self._deposits.get(token_symbol, [])]

    def deposits(self) -> dict[str, list[DepositRecord]]:
        """Snapshot of all pending deposits by token."""
        with self._lock:
            return {
                token: [replace(r) for r in records]
                for token, records in self._deposits.items()
            }

    @property
    def revision(self) -> int:
        """Counter bumped on every deposit list change."""
        with self._lock:
            return self._revision

    # ======================
    # Withdrawal links
    # ======================

    def set_withdrawal_link(self, tx_hash: str, eth_tx_hash: str) -> bool:
        """Link a withdrawal to its settlement-layer transaction.

        Returns:
            False if the withdrawal was already linked (the first link wins)
        """
        with self._lock:
            existing = self._withdrawal_links.get(tx_hash)
            if existing is not None:
                if existing != eth_tx_hash:
                    logger.warning(
                        f"Withdrawal {tx_hash} already linked to {existing}, "
                        f"ignoring {eth_tx_hash}"
                    )
                return False
            self._withdrawal_links[tx_hash] = eth_tx_hash
            return True

    def get_withdrawal_link(self, tx_hash: str) -> Optional[str]:
        """Settlement-layer hash for a withdrawal, or None."""
        with self._lock:
            return self._withdrawal_links.get(tx_hash)

    def clear(self) -> None:
        """Drop all tracked state (useful for testing and logout)."""
        with self._lock:
            self._transactions.clear()
            self._deposits.clear()
            self._withdrawal_links.clear()
            self._revision += 1
