"""Background task definitions — cron job handlers.

- ``sync_to_tip`` (``SyncConfig.poll_interval``) — index new heights
- ``calculate_metrics`` (15 s) — count documents for Prometheus gauges
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chain_indexer.errors.definitions import BalanceIntegrityError, NotFoundError
from chain_indexer.errors.indexer_errors import IndexerError

if TYPE_CHECKING:
    from chain_indexer.engine.client import IndexerEngine
    from chain_indexer.metrics.collector import IndexerMetrics

logger = logging.getLogger(__name__)

CALCULATE_METRICS_PERIOD = 15


async def task_sync_to_tip(engine: IndexerEngine) -> None:
    """Index from the resume height up to the node's tip.

    Node and store failures are logged and retried on the next run.

    Raises:
        BalanceIntegrityError: Balances may be inconsistent; indexing must stop.
    """
    try:
        last = await engine.sync_to_tip()
    except BalanceIntegrityError:
        raise
    except IndexerError as exc:
        logger.error("sync_to_tip failed [%s]: %s", exc.code, exc.message)
        return
    logger.debug("sync_to_tip reached height %d", last)


async def task_calculate_metrics(engine: IndexerEngine, metrics: IndexerMetrics) -> None:
    """Count documents per collection and push them to Prometheus gauges."""
    try:
        counts = {
            "blocks": await engine.blocks.count(),
            "txs": await engine.txs.count(),
            "vouts": await engine.vouts.count(),
            "balances": await engine.balances.count(),
        }
        for entity, count in counts.items():
            metrics.set_count(entity, count)
        try:
            metrics.set_indexed_height(await engine.blocks.max_height())
        except NotFoundError:
            pass
    except Exception:
        logger.exception("calculate_metrics failed")
