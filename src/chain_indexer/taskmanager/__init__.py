"""Task manager — background cron jobs.

Provides ``TaskManager`` for the periodic work of a long-running indexer:
- Sync to tip (poll the node and index new heights)
- Metrics calculation (collection counts for Prometheus gauges)

Uses ``asyncio`` tasks for scheduling.
"""

from __future__ import annotations

from chain_indexer.taskmanager.manager import CronJob, TaskManager

__all__ = ["CronJob", "TaskManager"]
