"""Fee quotes for setting an account's signing key (ChangePubKey).

Accounts controlled by a smart contract wallet (ERC-1271) cannot sign the
key change with ECDSA; they authorize it with a settlement-layer
transaction first, and the quote is requested for that flow.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from txwatch.tracking.jsonrpc import JsonRpcClient

logger = logging.getLogger(__name__)

ERC1271 = "ERC-1271"


class PendingEthTransaction(ABC):
    """Settlement-layer transaction returned by a signer."""

    @abstractmethod
    async def wait(self) -> Any:
        """Wait for the transaction receipt."""
        pass


class AccountSigner(ABC):
    """The bits of a wallet the fee query needs."""

    verification_method: Optional[str] = None  # "ECDSA" or "ERC-1271"

    @abstractmethod
    async def is_onchain_auth_signing_key_set(self) -> bool:
        """Whether the signing key was already authorized on-chain."""
        pass

    @abstractmethod
    async def onchain_auth_signing_key(self) -> PendingEthTransaction:
        """Submit the on-chain authorization transaction."""
        pass


class FeeQuote(BaseModel):
    """Fee returned by ``get_tx_fee`` (amounts in smallest units)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    fee_type: Any = Field(default=None, alias="feeType")
    gas_tx_amount: str = Field(default="0", alias="gasTxAmount")
    gas_price_wei: str = Field(default="0", alias="gasPriceWei")
    gas_fee: str = Field(default="0", alias="gasFee")
    zkp_fee: str = Field(default="0", alias="zkpFee")
    total_fee: str = Field(alias="totalFee")


class FeeQuoteService:
    """Requests ChangePubKey fee quotes from the zkSync node."""

    def __init__(self, rpc: JsonRpcClient, signer: AccountSigner):
        self.rpc = rpc
        self.signer = signer

    @property
    def auth_type(self) -> str:
        """How the key change is authorized: "Onchain" or "ECDSA"."""
        return "Onchain" if self.signer.verification_method == ERC1271 else "ECDSA"

    async def ensure_onchain_auth(self) -> bool:
        """Authorize the signing key on-chain if the signer needs it.

        Returns:
            True if an authorization transaction was submitted
        """
        if self.signer.verification_method != ERC1271:
            return False
        if await self.signer.is_onchain_auth_signing_key_set():
            return False

        logger.info("Submitting on-chain signing key authorization")
        tx = await self.signer.onchain_auth_signing_key()
        await tx.wait()
        return True

    async def fetch_change_pubkey_fee(self, address: str, fee_token: str) -> FeeQuote:
        """Quote the ChangePubKey fee for address, paid in fee_token."""
        await self.ensure_onchain_auth()

        change_pubkey_type = "ECDSALegacyMessage" if self.auth_type == "ECDSA" else "ECDSA"
        tx_type = {"ChangePubKey": change_pubkey_type}

        result = await self.rpc.call("get_tx_fee", [tx_type, address, fee_token])
        quote = FeeQuote.model_validate(result)
        logger.debug(f"ChangePubKey fee for {address}: {quote.total_fee} {fee_token}")
        return quote
