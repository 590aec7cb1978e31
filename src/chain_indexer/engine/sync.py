"""Sync engine — apply one block to the vout, balance and tx indexes.

For every transaction, in block order, inputs are handled before outputs:
an address that is both paid by one output and spends another inside the
same block sees its debits and credits in causal order.

Failure policy:
- an input whose vout cannot be found (or looked up) is logged and skipped;
- a vout that cannot be created or marked spent is logged and its balance
  effect skipped, keeping balances equal to the unspent outputs;
- an input that is not applied is left out of the tx record and its fee;
- a failed balance write raises ``BalanceIntegrityError``, which must stop
  the sync process.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chain_indexer.engine.models.tx import AddressValue
from chain_indexer.engine.models.vout import SpentBy, Vout, vout_id
from chain_indexer.errors.definitions import (
    BalanceIntegrityError,
    NotFoundError,
    StoreUnavailableError,
)
from chain_indexer.ledger.amount import ZERO, Direction, sub, total

if TYPE_CHECKING:
    from decimal import Decimal

    from chain_indexer.chain.models import Block, Transaction
    from chain_indexer.chain.models import Vin as ChainVin
    from chain_indexer.chain.models import Vout as ChainVout
    from chain_indexer.engine.services.balance_service import BalanceService
    from chain_indexer.engine.services.tx_service import TxService
    from chain_indexer.engine.services.vout_service import VoutService

logger = logging.getLogger(__name__)


class SyncEngine:
    """Forward half of the ledger: index a block."""

    def __init__(
        self,
        vouts: VoutService,
        balances: BalanceService,
        txs: TxService,
    ) -> None:
        self._vouts = vouts
        self._balances = balances
        self._txs = txs

    async def sync_block(self, block: Block) -> None:
        """Index every transaction of *block* in order.

        Raises:
            BalanceIntegrityError: If a balance write fails.
        """
        for tx in block.tx:
            await self.sync_tx(block.hash, tx)
        logger.info("Synced block %d %s (%d txs)", block.height, block.hash, len(block.tx))

    async def sync_tx(self, block_hash: str, tx: Transaction) -> Decimal:
        """Index one transaction: inputs, outputs, then its record.

        Returns:
            The transaction fee (zero for coinbase).
        """
        vins: list[AddressValue] = []
        vouts: list[AddressValue] = []

        if not tx.is_coinbase:
            for index, vin in enumerate(tx.vin):
                spent = await self._lookup_input(tx, index, vin)
                if spent is None or not await self._spend(tx, index, spent):
                    continue
                vins.append(AddressValue(spent.addresses[0], spent.value))

        for vout in tx.vout:
            if not vout.addresses:
                logger.warning(
                    "vout %s:%d has no address (%s), not indexed",
                    tx.txid,
                    vout.n,
                    vout.script_pub_key.type or "unknown script",
                )
                continue
            vouts.append(AddressValue(vout.addresses[0], vout.value))
            await self._create(tx, vout)

        if tx.is_coinbase:
            fee = ZERO
        else:
            fee = sub(total([v.value for v in vins]), total([v.value for v in tx.vout]))
        try:
            await self._txs.index(tx.txid, block_hash, fee, tx.time, vins, vouts)
        except StoreUnavailableError:
            logger.error("tx %s record not written", tx.txid)
        return fee

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _lookup_input(self, tx: Transaction, index: int, vin: ChainVin) -> Vout | None:
        try:
            vout = await self._vouts.find_by_origin(vin.txid, vin.vout)
        except NotFoundError:
            logger.warning(
                "input %s:%d spends unindexed vout %s:%d, skipped",
                tx.txid,
                index,
                vin.txid,
                vin.vout,
            )
            return None
        except StoreUnavailableError:
            logger.error(
                "lookup of vout %s:%d for input %s:%d failed, skipped",
                vin.txid,
                vin.vout,
                tx.txid,
                index,
            )
            return None
        return vout

    async def _spend(self, tx: Transaction, index: int, vout: Vout) -> bool:
        """Mark *vout* spent by input *index* of *tx*; False if the input is not applied."""
        spender = SpentBy(txid=tx.txid, vin_index=index)
        if vout.spent_by is not None and vout.spent_by != spender:
            logger.warning(
                "vout %s already spent by %s:%d, input %s:%d not applied",
                vout.id,
                vout.spent_by.txid,
                vout.spent_by.vin_index,
                tx.txid,
                index,
            )
            return False
        try:
            changed = await self._vouts.mark_spent(vout.id, tx.txid, index)
        except StoreUnavailableError:
            logger.error("vout %s not marked spent by %s:%d, debit skipped", vout.id, tx.txid, index)
            return False
        if changed:
            await self._update_balance(tx, vout, Direction.DEBIT)
        return True

    async def _create(self, tx: Transaction, vout: ChainVout) -> None:
        try:
            created = await self._vouts.create(
                tx.txid,
                vout.n,
                vout.value,
                vout.addresses,
                coinbase=tx.is_coinbase,
                time=tx.time,
            )
        except StoreUnavailableError:
            logger.error("vout %s:%d not indexed, credit skipped", tx.txid, vout.n)
            return
        if created:
            record = Vout(
                id=vout_id(tx.txid, vout.n),
                txid_belong_to=tx.txid,
                vout_index=vout.n,
                value=vout.value,
                addresses=list(vout.addresses),
            )
            await self._update_balance(tx, record, Direction.CREDIT)

    async def _update_balance(self, tx: Transaction, vout: Vout, direction: Direction) -> None:
        try:
            await self._balances.update_by_vout(vout, direction)
        except StoreUnavailableError as exc:
            addresses = ",".join(vout.addresses)
            logger.critical(
                "balance %s of %s failed for vout %s in tx %s",
                direction,
                addresses,
                vout.id,
                tx.txid,
            )
            raise BalanceIntegrityError(addresses, tx.txid) from exc
