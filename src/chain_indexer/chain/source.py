"""BlockSource — the interface the sync driver fetches blocks through."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chain_indexer.chain.models import Block


@runtime_checkable
class BlockSource(Protocol):
    """Anything that serves best-chain blocks by height.

    :class:`~chain_indexer.chain.rpc.client.RPCClient` is the production
    implementation.
    """

    async def get_block(self, height: int) -> Block: ...

    async def get_block_count(self) -> int: ...
