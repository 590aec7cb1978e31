"""Rollback engine — retract a block from the vout, balance and tx indexes.

The inverse of :class:`~chain_indexer.engine.sync.SyncEngine`: the archived
block is walked backwards (last transaction first, outputs before inputs)
so each balance effect is undone in reverse causal order.

An output still spent by a later block is kept when its creating block is
retracted; retracting that later block afterwards deletes the output unless
its creating transaction has been indexed again.

A transaction the index already holds under another block hash has moved
there in a reorg and is left alone.

The whole block is retracted in one datastore transaction: every failure is
raised to the caller and leaves the indexes as they were, so the same height
can be rolled back again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chain_indexer.errors.definitions import NotFoundError
from chain_indexer.ledger.amount import Direction

if TYPE_CHECKING:
    from chain_indexer.chain.models import Block, Transaction
    from chain_indexer.datastore.client import Datastore
    from chain_indexer.engine.models.vout import Vout
    from chain_indexer.engine.services.balance_service import BalanceService
    from chain_indexer.engine.services.block_service import BlockService
    from chain_indexer.engine.services.tx_service import TxService
    from chain_indexer.engine.services.vout_service import VoutService

logger = logging.getLogger(__name__)


class RollbackEngine:
    """Inverse half of the ledger: un-index a block."""

    def __init__(
        self,
        blocks: BlockService,
        vouts: VoutService,
        balances: BalanceService,
        txs: TxService,
        datastore: Datastore,
    ) -> None:
        self._ds = datastore
        self._blocks = blocks
        self._vouts = vouts
        self._balances = balances
        self._txs = txs

    async def rollback_block(self, height: int) -> None:
        """Undo the indexing of the archived block at *height*.

        Raises:
            BlockNotFoundError: If no block is archived at *height*.
            NotFoundError: If an output the block created or spent is missing.
            StoreUnavailableError: If any store call fails.
        """
        block = await self._blocks.get_by_height(height)
        block_txids = {tx.txid for tx in block.tx}
        try:
            async with self._ds.transaction():
                moved = await self._moved_txids(block)
                await self._txs.delete_by_block_hash(block.hash)
                for tx in reversed(block.tx):
                    if tx.txid in moved:
                        continue
                    await self._rollback_outputs(tx)
                    await self._rollback_inputs(tx, block_txids)
                await self._blocks.delete(height)
        except Exception:
            logger.error("Rollback of block %d %s failed, nothing retracted", height, block.hash)
            raise
        logger.info("Rolled back block %d %s", height, block.hash)

    async def _moved_txids(self, block: Block) -> set[str]:
        moved: set[str] = set()
        for tx in block.tx:
            record = await self._txs.get(tx.txid)
            if record is not None and record.block_hash != block.hash:
                logger.info("tx %s now belongs to block %s, kept", tx.txid, record.block_hash)
                moved.add(tx.txid)
        return moved

    async def _rollback_outputs(self, tx: Transaction) -> None:
        for vout in reversed(tx.vout):
            if not vout.addresses:
                continue  # never indexed
            record = await self._vouts.find_by_origin(tx.txid, vout.n)
            if record.is_spent:
                # Its value already left the balances when a later block spent it.
                logger.warning(
                    "vout %s is still spent by %s, kept",
                    record.id,
                    record.used_txid,
                )
                continue
            await self._vouts.delete(record.id)
            await self._balances.update_by_vout(record, Direction.DEBIT)

    async def _rollback_inputs(self, tx: Transaction, block_txids: set[str]) -> None:
        if tx.is_coinbase:
            return
        for index in reversed(range(len(tx.vin))):
            vin = tx.vin[index]
            try:
                record = await self._vouts.find_by_spender(vin.txid, tx.txid, index)
            except NotFoundError:
                spent = await self._find_origin(vin.txid, vin.vout)
                if spent is None:
                    # Sync skipped this input for the same reason.
                    logger.debug("input %s:%d spends unindexed vout, nothing to undo", tx.txid, index)
                    continue
                if spent.is_spent:
                    logger.warning(
                        "input %s:%d lost vout %s to %s, nothing to undo",
                        tx.txid,
                        index,
                        spent.id,
                        spent.used_txid,
                    )
                    continue
                raise
            origin = record.txid_belong_to
            if origin not in block_txids and await self._txs.get(origin) is None:
                # Its creating block was retracted earlier and not replayed.
                await self._vouts.delete(record.id)
                logger.warning("vout %s outlived its creating tx, deleted", record.id)
                continue
            await self._vouts.clear_spent(record.id)
            await self._balances.update_by_vout(record, Direction.CREDIT)

    async def _find_origin(self, txid: str, vout_index: int) -> Vout | None:
        try:
            return await self._vouts.find_by_origin(txid, vout_index)
        except NotFoundError:
            return None
