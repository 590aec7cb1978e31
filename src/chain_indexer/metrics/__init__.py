"""Metrics — Prometheus metrics collection and exposure."""

from __future__ import annotations

from chain_indexer.metrics.collector import IndexerMetrics, MetricsCollector

__all__ = ["IndexerMetrics", "MetricsCollector"]
