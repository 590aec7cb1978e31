"""Balance service — running totals per address.

A balance is never recomputed from scratch: each output that becomes
unspent credits its addresses and each output that gets spent debits them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chain_indexer.engine.models.balance import Balance
from chain_indexer.ledger import amount as ledger
from chain_indexer.ledger.amount import Direction

if TYPE_CHECKING:
    from decimal import Decimal

    from chain_indexer.datastore.client import Datastore
    from chain_indexer.engine.models.vout import Vout

logger = logging.getLogger(__name__)


class BalanceService:
    """Credit / debit address balances."""

    def __init__(self, datastore: Datastore) -> None:
        self._ds = datastore

    async def get(self, address: str) -> Balance | None:
        """Return the balance record of *address*, if any."""
        return await self._ds.get(Balance, address)

    async def find_or_init(
        self, address: str, fallback: Decimal | str
    ) -> tuple[str | None, Balance]:
        """Return ``(record_id, balance)`` for *address*.

        When the address has no record yet, returns ``(None, balance)`` with a
        fresh, unsaved balance holding *fallback*; the caller inserts it.
        """
        balance = await self._ds.get(Balance, address)
        if balance is None:
            return None, Balance(address=address, amount=ledger.to_amount(fallback))
        return balance.address, balance

    async def insert(self, balance: Balance) -> None:
        """Persist a balance returned unsaved by :meth:`find_or_init`."""
        await self._ds.upsert(Balance, balance.address, {"amount": balance.amount})
        logger.debug("balance %s created with %s", balance.address, balance.amount)

    async def apply_delta(
        self,
        record_id: str,
        balance: Balance,
        direction: Direction | str,
        amount: Decimal | str,
    ) -> Decimal:
        """Credit or debit *amount* and persist the new total.

        The write is skipped when the total does not change.

        Returns:
            The new amount.

        Raises:
            InvalidDirectionError: If *direction* is neither credit nor debit.
        """
        new_amount = ledger.apply(balance.amount, direction, amount)
        written = await self._ds.upsert(Balance, record_id, {"amount": new_amount})
        balance.amount = new_amount
        if written:
            logger.debug("balance %s %s %s -> %s", record_id, direction, amount, new_amount)
        return new_amount

    async def update_by_vout(self, vout: Vout, direction: Direction | str) -> None:
        """Apply *vout*'s value to the balance of each of its addresses.

        A credit creates missing balances; a debit of a missing balance is
        logged and skipped.

        Raises:
            InvalidDirectionError: If *direction* is neither credit nor debit.
            StoreUnavailableError: If a balance read or write fails.
        """
        direction = Direction.parse(direction)
        for address in vout.addresses:
            record_id, balance = await self.find_or_init(address, vout.value)
            if record_id is None:
                if direction is Direction.CREDIT:
                    await self.insert(balance)
                else:
                    logger.warning(
                        "no balance for %s, cannot debit %s of vout %s",
                        address,
                        vout.value,
                        vout.id,
                    )
                continue
            await self.apply_delta(record_id, balance, direction, vout.value)

    async def count(self) -> int:
        """Number of addresses with a balance record."""
        return await self._ds.count(Balance)
