"""Node JSON-RPC client — block count, block hash and verbose blocks.

Async HTTP client for a bitcoind-compatible JSON-RPC endpoint:
- ``getblockcount``
- ``getblockhash <height>``
- ``getblock <hash> 2`` (transactions expanded)

Responses are decoded with ``parse_float=Decimal`` so output values never
pass through binary floats.
"""

from __future__ import annotations

import itertools
import json
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import httpx

from chain_indexer.chain.models import Block
from chain_indexer.errors.chain_errors import RPCError
from chain_indexer.errors.definitions import BlockNotFoundError

if TYPE_CHECKING:
    from chain_indexer.config.settings import RPCConfig

# bitcoind RPC_INVALID_ADDRESS_OR_KEY / RPC_INVALID_PARAMETER
_NOT_FOUND_CODES = (-5, -8)


class RPCClient:
    """Async JSON-RPC client for a full node.

    Usage::

        rpc = RPCClient(config.rpc)
        await rpc.connect()
        try:
            block = await rpc.get_block(100)
        finally:
            await rpc.close()
    """

    def __init__(self, config: RPCConfig) -> None:
        """Initialize the RPC client.

        Args:
            config: RPC configuration (url, credentials, timeout).
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        auth = None
        if self._config.user or self._config.password:
            auth = httpx.BasicAuth(self._config.user, self._config.password)
        self._client = httpx.AsyncClient(
            base_url=self._config.url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            auth=auth,
            timeout=self._config.timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_block_count(self) -> int:
        """Return the height of the node's best chain tip."""
        return int(await self.call("getblockcount"))

    async def get_block_hash(self, height: int) -> str:
        """Return the hash of the best-chain block at *height*.

        Raises:
            BlockNotFoundError: If the node has no block at that height.
        """
        try:
            return str(await self.call("getblockhash", height))
        except RPCError as exc:
            if exc.rpc_code in _NOT_FOUND_CODES:
                raise BlockNotFoundError(height) from exc
            raise

    async def get_block(self, height: int) -> Block:
        """Fetch the best-chain block at *height* with expanded transactions.

        Raises:
            BlockNotFoundError: If the node has no block at that height.
            RPCError: On transport or node errors.
        """
        block_hash = await self.get_block_hash(height)
        data: dict[str, Any] = await self.call("getblock", block_hash, 2)
        return Block.from_rpc(data)

    async def call(self, method: str, *params: Any) -> Any:
        """Invoke *method* and return its ``result``.

        Raises:
            RPCError: On HTTP failures or an ``error`` member in the reply.
        """
        client = self._ensure_connected()
        payload = {
            "jsonrpc": "1.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        try:
            response = await client.post("/", json=payload)
        except httpx.HTTPError as exc:
            raise RPCError(f"RPC {method} failed: {exc}") from exc

        try:
            body = json.loads(response.text, parse_float=Decimal)
        except ValueError:
            raise RPCError(
                f"RPC {method} returned HTTP {response.status_code}: {response.text[:200]}"
            ) from None

        if not isinstance(body, dict):
            raise RPCError(f"RPC {method} returned a non-object reply")
        error = body.get("error")
        if isinstance(error, dict):
            raise RPCError(
                f"RPC {method} error: {error.get('message', error)}",
                rpc_code=error.get("code"),
            )
        if error:
            raise RPCError(f"RPC {method} error: {error}")
        if response.status_code != 200:
            raise RPCError(f"RPC {method} returned HTTP {response.status_code}")
        return body.get("result")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "RPC client not connected. Call connect() first."
            raise RPCError(msg)
        return self._client
