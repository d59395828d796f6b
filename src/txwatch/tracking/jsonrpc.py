"""Minimal async JSON-RPC 2.0 client over httpx."""

import itertools
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """Raised for transport failures and JSON-RPC error responses."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class JsonRpcClient:
    """JSON-RPC client for a layer-2 or settlement-layer node."""

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            url: Node JSON-RPC endpoint
            timeout: HTTP timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        """Call a node method and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise RpcError(f"{method} request failed: {e}") from e

        if response.status_code != 200:
            raise RpcError(f"{method} returned HTTP {response.status_code}")

        data = response.json()
        if data.get("error"):
            error = data["error"]
            raise RpcError(
                f"{method} error: {error.get('message', error)}", code=error.get("code")
            )

        logger.debug(f"{method} -> {data.get('result')}")
        return data.get("result")
