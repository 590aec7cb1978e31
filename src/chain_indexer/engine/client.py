"""IndexerEngine — central engine client owning the store, node and engines."""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chain_indexer.chain.rpc.client import RPCClient
    from chain_indexer.chain.source import BlockSource
    from chain_indexer.config.settings import AppConfig
    from chain_indexer.datastore.client import Datastore
    from chain_indexer.engine.driver import SyncDriver
    from chain_indexer.engine.rollback import RollbackEngine
    from chain_indexer.engine.services.balance_service import BalanceService
    from chain_indexer.engine.services.block_service import BlockService
    from chain_indexer.engine.services.tx_service import TxService
    from chain_indexer.engine.services.vout_service import VoutService
    from chain_indexer.engine.sync import SyncEngine
    from chain_indexer.metrics.collector import IndexerMetrics
    from chain_indexer.taskmanager.manager import TaskManager

# Error messages
_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


class IndexerEngine:
    """Central engine that owns all services and infrastructure.

    Wires the datastore, the block source, the four index services, the
    sync and rollback engines and the driver, and provides lifecycle
    management for all of them.
    """

    def __init__(self, config: AppConfig, *, source: BlockSource | None = None) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration with datastore, RPC and sync settings.
            source: Block source to use instead of the node RPC client.
        """
        self._config = config
        self._initialized = False
        self._owns_source = source is None

        # Infrastructure components
        self._datastore: Datastore | None = None
        self._source: BlockSource | None = source
        self._rpc: RPCClient | None = None

        # Services
        self._blocks: BlockService | None = None
        self._vouts: VoutService | None = None
        self._balances: BalanceService | None = None
        self._txs: TxService | None = None
        self._syncer: SyncEngine | None = None
        self._rollbacker: RollbackEngine | None = None
        self._driver: SyncDriver | None = None
        self._metrics: IndexerMetrics | None = None
        self._task_manager: TaskManager | None = None

    async def initialize(self) -> None:
        """Open the datastore, create tables, connect the node and wire services.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        from chain_indexer.datastore.client import Datastore
        from chain_indexer.datastore.migrations import run_auto_migrate
        from chain_indexer.engine.models.base import Base

        # Initialize datastore
        self._datastore = Datastore(self._config.db)
        await self._datastore.open(base=Base)

        # Run migrations
        await run_auto_migrate(self._datastore.engine)

        # Initialize block source
        if self._owns_source:
            from chain_indexer.chain.rpc.client import RPCClient

            self._rpc = RPCClient(self._config.rpc)
            await self._rpc.connect()
            self._source = self._rpc

        # Initialize metrics
        from chain_indexer.metrics.collector import IndexerMetrics

        self._metrics = IndexerMetrics()

        # Initialize services
        from chain_indexer.engine.driver import SyncDriver
        from chain_indexer.engine.rollback import RollbackEngine
        from chain_indexer.engine.services import (
            BalanceService,
            BlockService,
            TxService,
            VoutService,
        )
        from chain_indexer.engine.sync import SyncEngine

        self._blocks = BlockService(self._datastore)
        self._vouts = VoutService(self._datastore)
        self._balances = BalanceService(self._datastore)
        self._txs = TxService(self._datastore)
        self._syncer = SyncEngine(self._vouts, self._balances, self._txs)
        self._rollbacker = RollbackEngine(
            self._blocks, self._vouts, self._balances, self._txs, self._datastore
        )
        self._driver = SyncDriver(
            self.source,
            self._blocks,
            self._syncer,
            self._rollbacker,
            self._datastore,
            self._config.sync,
            metrics=self._metrics,
        )

        # Initialize task manager and register cron jobs
        if self._config.task.enabled:
            await self._start_tasks()

        self._initialized = True

    async def close(self) -> None:
        """Gracefully shut down all services and connections.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        # Stop task manager first (depends on services)
        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None

        # Tear down services
        self._driver = None
        self._syncer = None
        self._rollbacker = None
        self._blocks = None
        self._vouts = None
        self._balances = None
        self._txs = None
        self._metrics = None

        # Close node client
        if self._rpc is not None:
            await self._rpc.close()
            self._rpc = None
            self._source = None

        # Close datastore
        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._initialized = False

    async def sync_to_tip(self) -> int:
        """Index from the resume height up to the node's best height.

        Returns:
            The last height indexed.
        """
        return await self.driver.sync_to_tip()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        """Check if the engine is initialized."""
        return self._initialized

    @property
    def config(self) -> AppConfig:
        """Get the application configuration."""
        return self._config

    @property
    def datastore(self) -> Datastore:
        """Get the datastore instance.

        Raises:
            RuntimeError: If engine not initialized.
        """
        if self._datastore is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._datastore

    @property
    def source(self) -> BlockSource:
        """Get the block source (the node RPC client unless one was injected)."""
        if self._source is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._source

    @property
    def blocks(self) -> BlockService:
        """Get the block archive service."""
        if self._blocks is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._blocks

    @property
    def vouts(self) -> VoutService:
        """Get the vout (UTXO index) service."""
        if self._vouts is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._vouts

    @property
    def balances(self) -> BalanceService:
        """Get the balance service."""
        if self._balances is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._balances

    @property
    def txs(self) -> TxService:
        """Get the transaction index service."""
        if self._txs is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._txs

    @property
    def syncer(self) -> SyncEngine:
        if self._syncer is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._syncer

    @property
    def rollbacker(self) -> RollbackEngine:
        if self._rollbacker is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._rollbacker

    @property
    def driver(self) -> SyncDriver:
        """Get the sync driver."""
        if self._driver is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._driver

    @property
    def metrics(self) -> IndexerMetrics | None:
        """Get the indexer metrics (None if not initialized)."""
        return self._metrics

    @property
    def task_manager(self) -> TaskManager | None:
        """Get the task manager (None if not enabled)."""
        return self._task_manager

    async def health_check(self) -> dict[str, str]:
        """Check health status of all engine components.

        Returns:
            Dictionary with component statuses ('ok', 'error', 'not_initialized').
        """
        status = {
            "engine": "ok" if self._initialized else "not_initialized",
            "datastore": "unknown",
            "source": "unknown",
        }

        if self._initialized:
            if self._datastore and self._datastore.is_open:
                status["datastore"] = "ok"
            else:
                status["datastore"] = "error"

            connected = getattr(self._source, "is_connected", self._source is not None)
            status["source"] = "ok" if connected else "not_connected"

        return status

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _start_tasks(self) -> None:
        from chain_indexer.errors.definitions import BalanceIntegrityError
        from chain_indexer.taskmanager.manager import CronJob, TaskManager
        from chain_indexer.taskmanager.tasks import (
            CALCULATE_METRICS_PERIOD,
            task_calculate_metrics,
            task_sync_to_tip,
        )

        self._task_manager = TaskManager(metrics=self._metrics)
        self._task_manager.register(
            "sync_to_tip",
            CronJob(
                handler=partial(task_sync_to_tip, self),
                period=self._config.sync.poll_interval,
                immediate=True,
                fatal=(BalanceIntegrityError,),
            ),
        )
        self._task_manager.register(
            "calculate_metrics",
            CronJob(
                handler=partial(task_calculate_metrics, self, self._metrics),
                period=CALCULATE_METRICS_PERIOD,
            ),
        )
        await self._task_manager.start()
