"""Deposit watch and listing endpoints."""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator

from txwatch.api.routes.transactions import get_watcher, validate_hash
from txwatch.tracking.factory import get_deposit_handle
from txwatch.tracking.watcher import TransactionWatcher

router = APIRouter()


class WatchDepositRequest(BaseModel):
    """Request to watch a settlement-layer deposit."""

    eth_tx_hash: str = Field(..., max_length=100, description="Deposit transaction hash")
    token: str = Field(..., min_length=1, max_length=20, description="Token symbol")
    amount: str = Field(..., description="Amount in smallest units")

    @field_validator("eth_tx_hash")
    @classmethod
    def validate_eth_tx_hash(cls, v: str) -> str:
        return validate_hash(v)

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Normalize token symbol."""
        return v.strip().upper()

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        """Amounts are non-negative integers of the token's smallest unit."""
        v = v.strip()
        if not v.isdigit():
            raise ValueError(f"Invalid amount format: {v}")
        return str(int(v))


@router.post("/deposits/watch", status_code=status.HTTP_202_ACCEPTED)
async def watch_deposit(
    payload: WatchDepositRequest,
    watcher: TransactionWatcher = Depends(get_watcher),
):
    """Start watching a deposit."""
    handle = get_deposit_handle(payload.eth_tx_hash)
    watcher.start_deposit_watch(handle, payload.token, payload.amount)
    return {"eth_tx_hash": payload.eth_tx_hash, "token": payload.token}


@router.get("/deposits")
async def list_deposits(watcher: TransactionWatcher = Depends(get_watcher)):
    """All pending deposits by token, with the change counter."""
    return {
        "revision": watcher.store.revision,
        "deposits": {
            token: [record.to_dict() for record in records]
            for token, records in watcher.store.deposits().items()
        },
    }


@router.get("/deposits/{token}")
async def list_token_deposits(token: str, watcher: TransactionWatcher = Depends(get_watcher)):
    """Pending deposits of one token, oldest first."""
    return [record.to_dict() for record in watcher.store.list_by_token(token.upper())]
