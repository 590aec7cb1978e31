"""Metrics collector — Prometheus counters, gauges, histograms.

- ``chain_indexer_stats_total`` gauge-vec (blocks, txs, vouts, balances)
- ``chain_indexer_indexed_height`` gauge
- ``chain_indexer_blocks_synced_total`` / ``chain_indexer_blocks_rolled_back_total``
- ``chain_indexer_sync_block_histogram`` / ``chain_indexer_rollback_block_histogram``
- ``chain_indexer_cron_histogram`` / ``chain_indexer_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "chain_indexer"

_STAT_LABELS = ("entity",)


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`IndexerMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        """Register and return a Gauge."""
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class IndexerMetrics:
    """High-level indexer metrics.

    All histograms track operation duration in seconds.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()
        self._max_height: int | None = None

        self._stats = self._collector.gauge(
            f"{_PREFIX}_stats_total",
            "Document counts per index collection",
            _STAT_LABELS,
        )
        self._height = self._collector.gauge(
            f"{_PREFIX}_indexed_height",
            "Highest block height synced by this process",
        )
        self._synced = self._collector.counter(
            f"{_PREFIX}_blocks_synced",
            "Blocks applied to the indexes",
        )
        self._rolled_back = self._collector.counter(
            f"{_PREFIX}_blocks_rolled_back",
            "Blocks retracted from the indexes",
        )
        self._sync_block = self._collector.histogram(
            f"{_PREFIX}_sync_block_histogram",
            "Duration of block sync operations",
        )
        self._rollback_block = self._collector.histogram(
            f"{_PREFIX}_rollback_block_histogram",
            "Duration of block rollback operations",
        )

        # Cron metrics
        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of cron job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last cron execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Stat setters --

    def set_count(self, entity: str, count: int) -> None:
        """Set the document count of one collection."""
        self._stats.labels(entity=entity).set(count)

    def block_synced(self, height: int) -> None:
        """Count a synced block and raise the height gauge if it moved up."""
        self._synced.inc()
        if self._max_height is None or height > self._max_height:
            self.set_indexed_height(height)

    def set_indexed_height(self, height: int) -> None:
        self._max_height = height
        self._height.set(height)

    def block_rolled_back(self) -> None:
        self._rolled_back.inc()

    # -- Operation trackers (context managers) --

    @contextmanager
    def track_sync_block(self) -> Iterator[None]:
        """Track the duration of a block sync."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._sync_block.observe(time.monotonic() - start)

    @contextmanager
    def track_rollback_block(self) -> Iterator[None]:
        """Track the duration of a block rollback."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._rollback_block.observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
