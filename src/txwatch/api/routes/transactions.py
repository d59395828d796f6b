"""Transaction watch, withdrawal link and refresh endpoints."""

import re

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field, field_validator

from txwatch.tracking.watcher import TransactionWatcher

router = APIRouter()

# zkSync hashes come as "sync-tx:<hex>", settlement-layer ones as "0x<hex>"
TX_HASH_RE = re.compile(r"^(sync-tx:|0x)?[a-fA-F0-9]{8,}$")


def validate_hash(v: str) -> str:
    """Validate transaction hash format."""
    v = v.strip()
    if not TX_HASH_RE.match(v):
        raise ValueError("Invalid transaction hash format")
    return v


def get_watcher(request: Request) -> TransactionWatcher:
    """Engine created in the application lifespan."""
    return request.app.state.watcher


class WatchTransactionRequest(BaseModel):
    """Request to watch a layer-2 transaction."""

    hash: str = Field(..., max_length=100, description="Layer-2 transaction hash")
    already_submitted: bool = Field(
        default=False, description="Transaction was submitted elsewhere, skip COMMIT wait"
    )

    @field_validator("hash")
    @classmethod
    def validate_tx_hash(cls, v: str) -> str:
        return validate_hash(v)


class WithdrawalLinkRequest(BaseModel):
    """Settlement-layer transaction of a withdrawal."""

    eth_tx_hash: str = Field(..., max_length=100, description="Settlement-layer hash")

    @field_validator("eth_tx_hash")
    @classmethod
    def validate_eth_tx_hash(cls, v: str) -> str:
        return validate_hash(v)


@router.post("/transactions/watch", status_code=status.HTTP_202_ACCEPTED)
async def watch_transaction(
    payload: WatchTransactionRequest,
    watcher: TransactionWatcher = Depends(get_watcher),
):
    """Start watching a transaction (no-op if it is already watched)."""
    already_watched = payload.hash in watcher.store
    if not already_watched:
        watcher.start_transaction_watch(payload.hash, payload.already_submitted)
    return {"hash": payload.hash, "already_watched": already_watched}


@router.get("/transactions")
async def list_transactions(watcher: TransactionWatcher = Depends(get_watcher)):
    """All transactions that have not been verified yet."""
    return {
        tx_hash: tx.to_dict()
        for tx_hash, tx in watcher.store.pending_transactions().items()
    }


@router.get("/transactions/{tx_hash}")
async def get_transaction(tx_hash: str, watcher: TransactionWatcher = Depends(get_watcher)):
    """Status of a pending transaction."""
    tx = watcher.store.get(tx_hash)
    if tx is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not pending",
        )
    return tx.to_dict()


@router.put("/withdrawals/{tx_hash}/link")
async def set_withdrawal_link(
    tx_hash: str,
    payload: WithdrawalLinkRequest,
    watcher: TransactionWatcher = Depends(get_watcher),
):
    """Link a withdrawal to its settlement-layer transaction (first link wins)."""
    created = watcher.link_withdrawal(tx_hash, payload.eth_tx_hash)
    return {
        "tx_hash": tx_hash,
        "eth_tx_hash": watcher.store.get_withdrawal_link(tx_hash),
        "created": created,
    }


@router.get("/withdrawals/{tx_hash}/link")
async def get_withdrawal_link(tx_hash: str, watcher: TransactionWatcher = Depends(get_watcher)):
    """Settlement-layer transaction of a withdrawal."""
    eth_tx_hash = watcher.store.get_withdrawal_link(tx_hash)
    if eth_tx_hash is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Withdrawal not linked",
        )
    return {"tx_hash": tx_hash, "eth_tx_hash": eth_tx_hash}


@router.post("/refresh", status_code=status.HTTP_202_ACCEPTED)
async def request_refresh(watcher: TransactionWatcher = Depends(get_watcher)):
    """Ask for a debounced balance and history refresh."""
    watcher.request_refresh()
    return {"scheduled": True, "delay": watcher.scheduler.delay}


@router.post("/watches/abandon")
async def abandon_watches(watcher: TransactionWatcher = Depends(get_watcher)):
    """Release every outstanding watch and forget tracked state (logout)."""
    abandoned = watcher.abandon_all()
    watcher.store.clear()
    return {"abandoned": abandoned}
