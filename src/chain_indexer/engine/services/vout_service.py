"""Vout service — the UTXO index.

Tracks every output ever indexed and the input that spent it.  Writes are
idempotent: creating an output twice or marking it spent twice with the
same spender changes nothing the second time, and the boolean results let
callers apply balance effects exactly once.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chain_indexer.engine.models.vout import Vout, vout_id
from chain_indexer.errors.definitions import NotFoundError
from chain_indexer.ledger.amount import to_amount

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal

    from chain_indexer.datastore.client import Datastore

logger = logging.getLogger(__name__)


class VoutService:
    """Lookups and state transitions of indexed outputs."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def find_by_origin(self, txid: str, vout_index: int) -> Vout:
        """Find the output created by ``txid`` at position ``vout_index``.

        Raises:
            NotFoundError: If the output was never indexed.
        """
        vout = await self._ds.find_one(Vout, txid_belong_to=txid, vout_index=vout_index)
        if vout is None:
            raise NotFoundError(f"vout {txid}:{vout_index} not found")
        return vout

    async def find_by_spender(self, origin_txid: str, spender_txid: str, vin_index: int) -> Vout:
        """Find the output of ``origin_txid`` spent by input ``vin_index`` of ``spender_txid``.

        Raises:
            NotFoundError: If no such spent output is indexed.
        """
        vout = await self._ds.find_one(
            Vout,
            txid_belong_to=origin_txid,
            used_txid=spender_txid,
            used_vin_index=vin_index,
        )
        if vout is None:
            raise NotFoundError(
                f"vout of {origin_txid} spent by {spender_txid}:{vin_index} not found"
            )
        return vout

    async def get(self, record_id: str) -> Vout | None:
        """Fetch an output by its ``txid:n`` id."""
        return await self._ds.get(Vout, record_id)

    async def count(self) -> int:
        """Number of indexed outputs, spent or not."""
        return await self._ds.count(Vout)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self,
        txid: str,
        vout_index: int,
        value: Decimal | str,
        addresses: Sequence[str],
        *,
        coinbase: bool = False,
        time: int = 0,
    ) -> bool:
        """Index a new output under its derived id.

        An already indexed output is left untouched, spender included.

        Returns:
            True if the output was inserted, False if it already existed.
        """
        record_id = vout_id(txid, vout_index)
        if await self._ds.get(Vout, record_id) is not None:
            logger.debug("vout %s already indexed", record_id)
            return False
        await self._ds.upsert(
            Vout,
            record_id,
            {
                "txid_belong_to": txid,
                "vout_index": vout_index,
                "value": to_amount(value),
                "addresses": list(addresses),
                "coinbase": coinbase,
                "time": time,
            },
        )
        return True

    async def mark_spent(self, record_id: str, spender_txid: str, vin_index: int) -> bool:
        """Record input ``vin_index`` of ``spender_txid`` as the spender.

        Returns:
            True if the spender changed, False for a repeated identical call.
        """
        written = await self._ds.upsert(
            Vout,
            record_id,
            {"used_txid": spender_txid, "used_vin_index": vin_index},
        )
        if written:
            logger.debug("vout %s spent by %s:%d", record_id, spender_txid, vin_index)
        return written

    async def clear_spent(self, record_id: str) -> bool:
        """Mark an output unspent again.

        Returns:
            True if the output had a spender.
        """
        written = await self._ds.upsert(
            Vout,
            record_id,
            {"used_txid": None, "used_vin_index": None},
        )
        if written:
            logger.debug("vout %s spender cleared", record_id)
        return written

    async def delete(self, record_id: str) -> bool:
        """Remove an output entirely.

        Returns:
            True if the output existed.
        """
        deleted = await self._ds.delete(Vout, record_id)
        if deleted:
            logger.debug("vout %s deleted", record_id)
        return deleted
