"""Tests for the node JSON-RPC client — uses httpx mock transport."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from chain_indexer.chain.rpc.client import RPCClient
from chain_indexer.config.settings import RPCConfig
from chain_indexer.errors.chain_errors import RPCError
from chain_indexer.errors.definitions import BlockNotFoundError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_HASH = "000000000000000000035c6f1b1e5e4f8b3a5d1d8c1e5f6a7b8c9d0e1f2a3b4c"


def _client(handler) -> RPCClient:  # type: ignore[no-untyped-def]
    """Build a client whose HTTP calls go to *handler*."""
    rpc = RPCClient(RPCConfig(url="http://node:8332", user="u", password="p"))
    rpc._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://node:8332",
    )
    return rpc


def _reply(result=None, error=None, status: int = 200) -> httpx.Response:  # type: ignore[no-untyped-def]
    return httpx.Response(status, json={"result": result, "error": error, "id": 1})


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestRPCClientLifecycle:
    async def test_not_connected_by_default(self) -> None:
        rpc = RPCClient(RPCConfig())
        assert rpc.is_connected is False

    async def test_connect_and_close(self) -> None:
        rpc = RPCClient(RPCConfig())
        await rpc.connect()
        assert rpc.is_connected is True
        await rpc.close()
        assert rpc.is_connected is False

    async def test_close_idempotent(self) -> None:
        rpc = RPCClient(RPCConfig())
        await rpc.close()
        assert rpc.is_connected is False

    async def test_not_connected_raises(self) -> None:
        rpc = RPCClient(RPCConfig())
        with pytest.raises(RPCError, match="not connected"):
            await rpc.get_block_count()


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


class TestRPCCalls:
    async def test_payload_shape(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return _reply(812345)

        rpc = _client(handler)
        assert await rpc.get_block_count() == 812345
        assert seen[0]["method"] == "getblockcount"
        assert seen[0]["params"] == []
        assert seen[0]["jsonrpc"] == "1.0"

    async def test_get_block_fetches_hash_then_verbose_block(self) -> None:
        calls: list[tuple[str, list]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            calls.append((body["method"], body["params"]))
            if body["method"] == "getblockhash":
                return _reply(_HASH)
            return httpx.Response(
                200,
                content=(
                    '{"result": {"hash": "%s", "height": 5, "time": 100, "tx": [{"txid": "aa",'
                    ' "vin": [{"coinbase": "00"}], "vout": [{"value": 0.1, "n": 0,'
                    ' "scriptPubKey": {"address": "1A"}}]}]}, "error": null, "id": 2}' % _HASH
                ),
            )

        rpc = _client(handler)
        block = await rpc.get_block(5)
        assert calls == [("getblockhash", [5]), ("getblock", [_HASH, 2])]
        assert block.hash == _HASH
        assert block.tx[0].vout[0].value == Decimal("0.1")

    async def test_values_never_pass_through_float(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b'{"result": 0.30000000000000004, "error": null}')

        rpc = _client(handler)
        assert await rpc.call("anything") == Decimal("0.30000000000000004")

    async def test_height_out_of_range_is_block_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _reply(error={"code": -8, "message": "Block height out of range"}, status=500)

        rpc = _client(handler)
        with pytest.raises(BlockNotFoundError) as excinfo:
            await rpc.get_block(10_000_000)
        assert excinfo.value.height == 10_000_000

    async def test_other_rpc_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _reply(error={"code": -28, "message": "Loading block index..."}, status=500)

        rpc = _client(handler)
        with pytest.raises(RPCError, match="Loading block index") as excinfo:
            await rpc.get_block_hash(1)
        assert excinfo.value.rpc_code == -28

    async def test_string_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return _reply(error="Method not found")

        rpc = _client(handler)
        with pytest.raises(RPCError, match="Method not found"):
            await rpc.call("nosuchmethod")

    async def test_http_error_without_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="Unauthorized")

        rpc = _client(handler)
        with pytest.raises(RPCError, match="HTTP 401"):
            await rpc.get_block_count()

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        rpc = _client(handler)
        with pytest.raises(RPCError, match="getblockcount failed"):
            await rpc.get_block_count()
