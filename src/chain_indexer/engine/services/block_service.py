"""Block service — the archive of indexed blocks and the height watermark."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chain_indexer.chain.models import Block
from chain_indexer.engine.models.block import Block as BlockRecord
from chain_indexer.errors.definitions import BlockNotFoundError, NotFoundError

if TYPE_CHECKING:
    from chain_indexer.datastore.client import Datastore


class BlockService:
    """Archive blocks by height and answer where indexing stopped."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    async def save(self, block: Block) -> bool:
        """Archive *block* under its height, replacing any previous entry.

        Returns:
            True if the archive changed.
        """
        return await self._ds.upsert(
            BlockRecord,
            block.height,
            {
                "hash": block.hash,
                "time": block.time,
                "document": block.to_document(),
            },
        )

    async def get_by_height(self, height: int) -> Block:
        """Load the archived block at *height*.

        Raises:
            BlockNotFoundError: If no block is archived at that height.
        """
        record = await self._ds.get(BlockRecord, height)
        if record is None:
            raise BlockNotFoundError(height)
        return Block.from_rpc(record.document)

    async def max_height(self) -> int:
        """Return the highest archived height.

        Raises:
            NotFoundError: If the archive is empty.
        """
        height = await self._ds.max_of(BlockRecord.height)
        if height is None:
            raise NotFoundError("max height in blocks not found")
        return int(height)

    async def count(self) -> int:
        """Number of archived blocks."""
        return await self._ds.count(BlockRecord)

    async def delete(self, height: int) -> bool:
        """Drop the archive entry at *height* once its block is retracted."""
        return await self._ds.delete(BlockRecord, height)
