"""Sync driver — per-height units of work and the reorg window.

One unit of work per height: roll back the height if it lies inside the
reorg window, sync the block, archive it, flush the store and signal
completion.  The steps of a unit run strictly in sequence; units for
different heights may overlap up to ``SyncConfig.max_in_flight``.  Units
that overlap share no lock, so two heights touching the same address can
interleave their balance updates; keep ``max_in_flight=1`` for strict
ordering.

The reorg window is a policy constant: heights at least ``reorg_window``
above the resume point are treated as final and never retracted.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import nullcontext
from typing import TYPE_CHECKING

from chain_indexer.errors.definitions import BlockNotFoundError, NotFoundError

if TYPE_CHECKING:
    from chain_indexer.chain.models import Block
    from chain_indexer.chain.source import BlockSource
    from chain_indexer.config.settings import SyncConfig
    from chain_indexer.datastore.client import Datastore
    from chain_indexer.engine.rollback import RollbackEngine
    from chain_indexer.engine.services.block_service import BlockService
    from chain_indexer.engine.sync import SyncEngine
    from chain_indexer.metrics.collector import IndexerMetrics

logger = logging.getLogger(__name__)

DEFAULT_REORG_WINDOW = 5


def should_rollback(from_: int, height: int, window: int = DEFAULT_REORG_WINDOW) -> bool:
    """Whether *height* lies inside the reorg window opened at *from_*."""
    return height < from_ + window


class SyncDriver:
    """Drive the sync and rollback engines over a range of heights."""

    def __init__(
        self,
        source: BlockSource,
        blocks: BlockService,
        syncer: SyncEngine,
        rollbacker: RollbackEngine,
        datastore: Datastore,
        config: SyncConfig,
        *,
        metrics: IndexerMetrics | None = None,
    ) -> None:
        self._source = source
        self._blocks = blocks
        self._syncer = syncer
        self._rollbacker = rollbacker
        self._ds = datastore
        self._config = config
        self._metrics = metrics

    @property
    def reorg_window(self) -> int:
        return self._config.reorg_window

    async def process_height(self, from_: int, height: int, block: Block | None = None) -> bool:
        """Run the unit of work for *height*.

        Args:
            from_: Height the current run started from (opens the reorg window).
            height: Height to (re)index.
            block: The block to index; fetched from the source when omitted.

        Returns:
            True once the block is synced and flushed.

        Raises:
            BalanceIntegrityError: If sync could not keep balances consistent.
            IndexerError: If rollback or the block fetch fails.
        """
        if block is None:
            block = await self._source.get_block(height)
        if should_rollback(from_, height, self.reorg_window):
            await self._rollback(height)

        tracker = self._metrics.track_sync_block() if self._metrics else nullcontext()
        with tracker:
            await self._syncer.sync_block(block)
        await self._blocks.save(block)
        await self._ds.flush()

        if self._metrics is not None:
            self._metrics.block_synced(height)
        return True

    def submit(self, from_: int, height: int, block: Block | None = None) -> asyncio.Task[bool]:
        """Schedule :meth:`process_height`; the task's result is the completion signal."""
        return asyncio.create_task(
            self.process_height(from_, height, block),
            name=f"sync-height-{height}",
        )

    async def run(self, from_: int, to: int) -> int:
        """Index heights ``from_..to`` inclusive.

        Completions are awaited in height order, with at most
        ``max_in_flight`` units scheduled at once.

        Returns:
            The last height whose unit completed (``from_ - 1`` if none ran).
        """
        last = from_ - 1
        if to < from_:
            return last

        pending: deque[tuple[int, asyncio.Task[bool]]] = deque()
        try:
            for height in range(from_, to + 1):
                if len(pending) >= self._config.max_in_flight:
                    done_height, task = pending.popleft()
                    await task
                    last = done_height
                pending.append((height, self.submit(from_, height)))
            while pending:
                done_height, task = pending.popleft()
                await task
                last = done_height
        except BaseException:
            for _, task in pending:
                task.cancel()
            await asyncio.gather(*(task for _, task in pending), return_exceptions=True)
            raise

        logger.info("Indexed heights %d..%d", from_, last)
        return last

    async def resume_height(self) -> int:
        """Height to restart from so the last ``reorg_window`` blocks are re-derived."""
        start = self._config.start_height
        try:
            watermark = await self._blocks.max_height()
        except NotFoundError:
            logger.info("Index is empty, starting at height %d", start)
            return start
        return max(watermark - self.reorg_window + 1, start)

    async def sync_to_tip(self) -> int:
        """Index from :meth:`resume_height` up to the source's best height.

        Returns:
            The last height indexed.
        """
        from_ = await self.resume_height()
        tip = await self._source.get_block_count()
        return await self.run(from_, tip)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _rollback(self, height: int) -> None:
        tracker = self._metrics.track_rollback_block() if self._metrics else nullcontext()
        try:
            with tracker:
                await self._rollbacker.rollback_block(height)
        except BlockNotFoundError:
            logger.debug("Height %d not indexed yet, nothing to roll back", height)
            return
        if self._metrics is not None:
            self._metrics.block_rolled_back()

