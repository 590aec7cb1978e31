"""Tests for the cron job handlers."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from chain_indexer.errors.definitions import (
    BalanceIntegrityError,
    BlockNotFoundError,
    StoreUnavailableError,
)
from chain_indexer.metrics.collector import IndexerMetrics
from chain_indexer.taskmanager.tasks import task_calculate_metrics, task_sync_to_tip


def _engine(**counts: int) -> MagicMock:
    engine = MagicMock()
    for name in ("blocks", "txs", "vouts", "balances"):
        getattr(engine, name).count = AsyncMock(return_value=counts.get(name, 0))
    engine.blocks.max_height = AsyncMock(return_value=counts.get("height", 0))
    return engine


class TestSyncToTip:
    async def test_runs_engine_sync(self) -> None:
        engine = MagicMock()
        engine.sync_to_tip = AsyncMock(return_value=12)
        await task_sync_to_tip(engine)
        engine.sync_to_tip.assert_awaited_once()

    async def test_integrity_error_propagates(self) -> None:
        engine = MagicMock()
        engine.sync_to_tip = AsyncMock(side_effect=BalanceIntegrityError("1Alice", "aa" * 32))
        with pytest.raises(BalanceIntegrityError):
            await task_sync_to_tip(engine)

    @pytest.mark.parametrize(
        "error",
        [BlockNotFoundError(7), StoreUnavailableError("vouts", "aa:0", "upsert")],
    )
    async def test_other_errors_are_logged(self, error, caplog) -> None:  # type: ignore[no-untyped-def]
        engine = MagicMock()
        engine.sync_to_tip = AsyncMock(side_effect=error)
        with caplog.at_level(logging.ERROR, logger="chain_indexer.taskmanager.tasks"):
            await task_sync_to_tip(engine)
        assert error.code in caplog.text


class TestCalculateMetrics:
    async def test_sets_gauges(self) -> None:
        metrics = IndexerMetrics()
        engine = _engine(blocks=10, txs=25, vouts=40, balances=7, height=9)
        await task_calculate_metrics(engine, metrics)

        registry = metrics.registry
        assert registry.get_sample_value("chain_indexer_stats_total", {"entity": "blocks"}) == 10
        assert registry.get_sample_value("chain_indexer_stats_total", {"entity": "txs"}) == 25
        assert registry.get_sample_value("chain_indexer_stats_total", {"entity": "vouts"}) == 40
        assert registry.get_sample_value("chain_indexer_stats_total", {"entity": "balances"}) == 7
        assert registry.get_sample_value("chain_indexer_indexed_height") == 9

    async def test_empty_index_keeps_height_unset(self) -> None:
        metrics = IndexerMetrics()
        engine = _engine()
        engine.blocks.max_height = AsyncMock(side_effect=BlockNotFoundError(-1))
        await task_calculate_metrics(engine, metrics)
        assert metrics.registry.get_sample_value("chain_indexer_indexed_height") == 0
        assert metrics.registry.get_sample_value("chain_indexer_stats_total", {"entity": "blocks"}) == 0

    async def test_store_failure_is_logged(self, caplog) -> None:  # type: ignore[no-untyped-def]
        metrics = IndexerMetrics()
        engine = _engine()
        engine.txs.count = AsyncMock(side_effect=StoreUnavailableError("txs", "", "count"))
        with caplog.at_level(logging.ERROR, logger="chain_indexer.taskmanager.tasks"):
            await task_calculate_metrics(engine, metrics)
        assert "calculate_metrics failed" in caplog.text
