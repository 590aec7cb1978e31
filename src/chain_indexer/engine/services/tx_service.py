"""Tx service — the transaction index."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chain_indexer.engine.models.tx import Tx
from chain_indexer.ledger.amount import to_str

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal

    from chain_indexer.datastore.client import Datastore
    from chain_indexer.engine.models.tx import AddressValue

logger = logging.getLogger(__name__)


class TxService:
    """Per-transaction records with fee and address/value summaries."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    async def index(
        self,
        txid: str,
        block_hash: str,
        fee: Decimal,
        time: int,
        vins: Sequence[AddressValue],
        vouts: Sequence[AddressValue],
    ) -> bool:
        """Upsert the record of one transaction.

        Returns:
            True if the record was written, False if it was already identical.
        """
        return await self._ds.upsert(
            Tx,
            txid,
            {
                "block_hash": block_hash,
                "fee": to_str(fee),
                "time": time,
                "vins": [v.to_document() for v in vins],
                "vouts": [v.to_document() for v in vouts],
            },
        )

    async def get(self, txid: str) -> Tx | None:
        """Look up an indexed transaction."""
        return await self._ds.get(Tx, txid)

    async def delete_by_block_hash(self, block_hash: str) -> int:
        """Delete every transaction record of a block.

        Returns:
            The number of records removed.
        """
        count = await self._ds.delete_where(Tx, block_hash=block_hash)
        logger.info("Deleted %d transactions of block %s", count, block_hash)
        return count

    async def count(self) -> int:
        """Number of indexed transactions."""
        return await self._ds.count(Tx)
