"""Tests for SyncEngine — applying blocks to the indexes."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from chain_indexer.engine.models import Balance, SpentBy, Vout, vout_id
from chain_indexer.errors.definitions import BalanceIntegrityError, StoreUnavailableError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _amount(balance_service, address: str) -> Decimal | None:
    balance = await balance_service.get(address)
    return None if balance is None else balance.amount


async def _unspent_total(datastore) -> Decimal:
    async with datastore.session() as session:
        result = await session.execute(select(Vout).where(Vout.used_txid.is_(None)))
        return sum((v.value * len(v.addresses) for v in result.scalars()), Decimal(0))


async def _balance_total(datastore) -> Decimal:
    async with datastore.session() as session:
        result = await session.execute(select(Balance))
        return sum((b.amount for b in result.scalars()), Decimal(0))


# ---------------------------------------------------------------------------
# Coinbase and spends
# ---------------------------------------------------------------------------


class TestSyncCoinbase:
    async def test_coinbase_credits_miner(
        self, chain, sync_engine, vout_service, balance_service, tx_service
    ) -> None:
        cb = chain.coinbase("1Alice", "50")
        await sync_engine.sync_block(chain.block(100, cb))

        vout = await vout_service.find_by_origin(cb.txid, 0)
        assert vout.value == Decimal("50")
        assert vout.coinbase is True
        assert vout.spent_by is None
        assert await _amount(balance_service, "1Alice") == Decimal("50")

        tx = await tx_service.get(cb.txid)
        assert tx.block_hash == f"{100:064x}"
        assert tx.fee == "0"
        assert tx.vins == []
        assert tx.vouts == [{"address": "1Alice", "value": "50"}]

    async def test_coinbase_fee_is_zero(self, chain, sync_engine) -> None:
        fee = await sync_engine.sync_tx("h", chain.coinbase("1Alice", "50"))
        assert fee == 0


class TestSyncSpend:
    async def test_spend_moves_balance(
        self, chain, sync_engine, vout_service, balance_service, tx_service
    ) -> None:
        cb = chain.coinbase("1Alice", "50")
        await sync_engine.sync_block(chain.block(100, cb))
        spend = chain.spend([(cb.txid, 0)], [("1Bob", "50")])
        await sync_engine.sync_block(chain.block(101, spend))

        assert await _amount(balance_service, "1Alice") == Decimal("0")
        assert await _amount(balance_service, "1Bob") == Decimal("50")
        spent = await vout_service.find_by_origin(cb.txid, 0)
        assert spent.spent_by == SpentBy(spend.txid, 0)

        tx = await tx_service.get(spend.txid)
        assert tx.fee == "0"
        assert tx.vins == [{"address": "1Alice", "value": "50"}]
        assert tx.vouts == [{"address": "1Bob", "value": "50"}]

    async def test_fee_is_inputs_minus_outputs(self, chain, sync_engine, tx_service) -> None:
        cb = chain.coinbase("1Alice", "50")
        await sync_engine.sync_block(chain.block(100, cb))
        spend = chain.spend([(cb.txid, 0)], [("1Bob", "30"), ("1Alice", "19.9")])
        fee = await sync_engine.sync_tx(f"{101:064x}", spend)
        assert fee == Decimal("0.1")
        assert (await tx_service.get(spend.txid)).fee == "0.1"

    async def test_spending_index_is_input_position(self, chain, sync_engine, vout_service) -> None:
        cb1 = chain.coinbase("1Alice", "1")
        cb2 = chain.coinbase("1Alice", "2")
        await sync_engine.sync_block(chain.block(100, cb1))
        await sync_engine.sync_block(chain.block(101, cb2))
        spend = chain.spend([(cb1.txid, 0), (cb2.txid, 0)], [("1Bob", "3")])
        await sync_engine.sync_block(chain.block(102, spend))

        assert (await vout_service.get(vout_id(cb1.txid, 0))).spent_by == SpentBy(spend.txid, 0)
        assert (await vout_service.get(vout_id(cb2.txid, 0))).spent_by == SpentBy(spend.txid, 1)

    async def test_chain_inside_one_block(self, chain, sync_engine, balance_service) -> None:
        cb = chain.coinbase("1Alice", "50")
        spend = chain.spend([(cb.txid, 0)], [("1Bob", "50")])
        await sync_engine.sync_block(chain.block(100, cb, spend))
        assert await _amount(balance_service, "1Alice") == Decimal("0")
        assert await _amount(balance_service, "1Bob") == Decimal("50")

    async def test_unknown_input_is_skipped(
        self, chain, sync_engine, balance_service, tx_service
    ) -> None:
        spend = chain.spend([("ee" * 32, 0)], [("1Bob", "5")])
        fee = await sync_engine.sync_tx("h", spend)
        assert await _amount(balance_service, "1Bob") == Decimal("5")
        assert fee == Decimal("-5")
        assert (await tx_service.get(spend.txid)).vins == []


class TestSyncOutputs:
    async def test_output_without_address_not_indexed(
        self, chain, sync_engine, vout_service, tx_service
    ) -> None:
        cb = chain.coinbase("1Alice", "50")
        await sync_engine.sync_block(chain.block(100, cb))
        spend = chain.spend([(cb.txid, 0)], [("1Bob", "49"), (None, "0.5")])
        fee = await sync_engine.sync_tx("h", spend)

        assert fee == Decimal("0.5")
        assert await vout_service.get(vout_id(spend.txid, 1)) is None
        assert (await tx_service.get(spend.txid)).vouts == [{"address": "1Bob", "value": "49"}]


# ---------------------------------------------------------------------------
# Idempotence and conservation
# ---------------------------------------------------------------------------


class TestSyncIdempotence:
    async def test_resync_block_changes_nothing(
        self, chain, sync_engine, balance_service, vout_service
    ) -> None:
        cb = chain.coinbase("1Alice", "50")
        spend = chain.spend([(cb.txid, 0)], [("1Bob", "20"), ("1Alice", "30")])
        block = chain.block(100, cb, spend)

        await sync_engine.sync_block(block)
        await sync_engine.sync_block(block)

        assert await _amount(balance_service, "1Alice") == Decimal("30")
        assert await _amount(balance_service, "1Bob") == Decimal("20")
        assert await vout_service.count() == 3

    async def test_double_spend_attempt_not_applied(
        self, chain, sync_engine, balance_service, vout_service
    ) -> None:
        cb = chain.coinbase("1Alice", "50")
        await sync_engine.sync_block(chain.block(100, cb))
        first = chain.spend([(cb.txid, 0)], [("1Bob", "50")])
        second = chain.spend([(cb.txid, 0)], [("1Carol", "50")])
        await sync_engine.sync_block(chain.block(101, first))
        await sync_engine.sync_block(chain.block(102, second))

        assert await _amount(balance_service, "1Alice") == Decimal("0")
        spent = await vout_service.get(vout_id(cb.txid, 0))
        assert spent.spent_by == SpentBy(first.txid, 0)

    async def test_balances_equal_unspent_outputs(self, chain, sync_engine, datastore) -> None:
        cb1 = chain.coinbase("1Alice", "50")
        cb2 = chain.coinbase("1Bob", "50")
        s1 = chain.spend([(cb1.txid, 0)], [("1Carol", "12.5"), ("1Alice", "37.4")])
        s2 = chain.spend([(s1.txid, 0), (cb2.txid, 0)], [("1Dave", "62.4")])
        await sync_engine.sync_block(chain.block(1, cb1))
        await sync_engine.sync_block(chain.block(2, cb2, s1))
        await sync_engine.sync_block(chain.block(3, s2))

        assert await _balance_total(datastore) == await _unspent_total(datastore)
        assert await _balance_total(datastore) == Decimal("99.8")


# ---------------------------------------------------------------------------
# Failure policy
# ---------------------------------------------------------------------------


class TestSyncFailures:
    async def test_balance_write_failure_is_fatal(
        self, chain, sync_engine, balance_service
    ) -> None:
        balance_service.update_by_vout = AsyncMock(
            side_effect=StoreUnavailableError("balances", "1Alice", "upsert")
        )
        cb = chain.coinbase("1Alice", "50")
        with pytest.raises(BalanceIntegrityError) as excinfo:
            await sync_engine.sync_block(chain.block(100, cb))
        assert excinfo.value.txid == cb.txid

    async def test_vout_create_failure_skips_credit(
        self, chain, sync_engine, vout_service, balance_service
    ) -> None:
        vout_service.create = AsyncMock(side_effect=StoreUnavailableError("vouts", "x", "upsert"))
        await sync_engine.sync_block(chain.block(100, chain.coinbase("1Alice", "50")))
        assert await balance_service.get("1Alice") is None

    async def test_tx_record_failure_is_logged(
        self, chain, sync_engine, tx_service, balance_service
    ) -> None:
        tx_service.index = AsyncMock(side_effect=StoreUnavailableError("txs", "x", "upsert"))
        await sync_engine.sync_block(chain.block(100, chain.coinbase("1Alice", "50")))
        assert await _amount(balance_service, "1Alice") == Decimal("50")


class TestSyncTxRecord:
    async def test_rejected_spend_left_out_of_record(
        self, chain, sync_engine, tx_service
    ) -> None:
        cb = chain.coinbase("1Alice", "50")
        await sync_engine.sync_block(chain.block(100, cb))
        first = chain.spend([(cb.txid, 0)], [("1Bob", "50")])
        await sync_engine.sync_block(chain.block(101, first))
        second = chain.spend([(cb.txid, 0)], [("1Carol", "49")])

        fee = await sync_engine.sync_tx(f"{102:064x}", second)

        assert fee == Decimal("-49")
        record = await tx_service.get(second.txid)
        assert record.vins == []
        assert record.fee == "-49"

    async def test_resync_keeps_inputs_in_record(self, chain, sync_engine, tx_service) -> None:
        cb = chain.coinbase("1Alice", "50")
        await sync_engine.sync_block(chain.block(100, cb))
        spend = chain.spend([(cb.txid, 0)], [("1Bob", "49.5")])
        block = chain.block(101, spend)
        await sync_engine.sync_block(block)
        await sync_engine.sync_block(block)

        record = await tx_service.get(spend.txid)
        assert record.vins == [{"address": "1Alice", "value": "50"}]
        assert record.fee == "0.5"
