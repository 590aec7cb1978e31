"""Shared test fixtures for the chain-indexer test suite."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from chain_indexer.chain.models import Block, ScriptPubKey, Transaction, Vin, Vout
from chain_indexer.config.settings import DatabaseEngine, SyncConfig
from chain_indexer.errors.definitions import BlockNotFoundError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chain_indexer.datastore.client import Datastore

MEMORY_DSN = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Chain builders
# ---------------------------------------------------------------------------


class ChainBuilder:
    """Builds blocks and transactions with deterministic txids."""

    def __init__(self) -> None:
        self._counter = 0

    def txid(self) -> str:
        self._counter += 1
        return f"{self._counter:064x}"

    def coinbase(self, address: str, value: str, *, txid: str | None = None) -> Transaction:
        return Transaction(
            txid=txid or self.txid(),
            time=1_600_000_000,
            vin=(Vin(coinbase="03a08601", sequence=0xFFFFFFFF),),
            vout=(self.output(0, address, value),),
        )

    def spend(
        self,
        inputs: list[tuple[str, int]],
        outputs: list[tuple[str | None, str]],
        *,
        txid: str | None = None,
    ) -> Transaction:
        return Transaction(
            txid=txid or self.txid(),
            time=1_600_000_000,
            vin=tuple(Vin(txid=t, vout=n, sequence=0xFFFFFFFF) for t, n in inputs),
            vout=tuple(self.output(n, a, v) for n, (a, v) in enumerate(outputs)),
        )

    @staticmethod
    def output(n: int, address: str | None, value: str) -> Vout:
        if address is None:
            script = ScriptPubKey(hex="6a", type="nulldata")
        else:
            script = ScriptPubKey(hex="76a914", type="pubkeyhash", addresses=(address,))
        return Vout(value=Decimal(value), n=n, script_pub_key=script)

    @staticmethod
    def block(height: int, *txs: Transaction, hash_: str | None = None) -> Block:
        return Block(
            hash=hash_ or f"{height:064x}",
            height=height,
            time=1_600_000_000 + height,
            tx=tuple(txs),
        )


class FakeSource:
    """In-memory block source keyed by height."""

    def __init__(self) -> None:
        self.blocks: dict[int, Block] = {}
        self.fetched: list[int] = []

    def add(self, *blocks: Block) -> None:
        for block in blocks:
            self.blocks[block.height] = block

    async def get_block(self, height: int) -> Block:
        self.fetched.append(height)
        try:
            return self.blocks[height]
        except KeyError:
            raise BlockNotFoundError(height) from None

    async def get_block_count(self) -> int:
        return max(self.blocks, default=-1)


@pytest.fixture
def chain() -> ChainBuilder:
    return ChainBuilder()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


# ---------------------------------------------------------------------------
# Config and datastore
# ---------------------------------------------------------------------------


@pytest.fixture
def app_config():
    """Provide a test AppConfig with safe defaults."""
    from chain_indexer.config.settings import AppConfig, DatabaseConfig, MetricsConfig

    return AppConfig(
        debug=True,
        db=DatabaseConfig(engine=DatabaseEngine.SQLITE, dsn=MEMORY_DSN),
        metrics=MetricsConfig(enabled=False),
    )


@pytest.fixture
async def datastore(app_config) -> AsyncIterator[Datastore]:
    """Open an in-memory datastore with every index table created."""
    from chain_indexer.datastore.client import Datastore
    from chain_indexer.engine.models.base import Base

    ds = Datastore(app_config.db)
    await ds.open(base=Base)
    yield ds
    await ds.close()


# ---------------------------------------------------------------------------
# Services and engines
# ---------------------------------------------------------------------------


@pytest.fixture
def vout_service(datastore):
    from chain_indexer.engine.services.vout_service import VoutService

    return VoutService(datastore)


@pytest.fixture
def balance_service(datastore):
    from chain_indexer.engine.services.balance_service import BalanceService

    return BalanceService(datastore)


@pytest.fixture
def tx_service(datastore):
    from chain_indexer.engine.services.tx_service import TxService

    return TxService(datastore)


@pytest.fixture
def block_service(datastore):
    from chain_indexer.engine.services.block_service import BlockService

    return BlockService(datastore)


@pytest.fixture
def sync_engine(vout_service, balance_service, tx_service):
    from chain_indexer.engine.sync import SyncEngine

    return SyncEngine(vout_service, balance_service, tx_service)


@pytest.fixture
def rollback_engine(block_service, vout_service, balance_service, tx_service, datastore):
    from chain_indexer.engine.rollback import RollbackEngine

    return RollbackEngine(block_service, vout_service, balance_service, tx_service, datastore)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(reorg_window=5, max_in_flight=1, start_height=0)


@pytest.fixture
def metrics():
    from chain_indexer.metrics.collector import IndexerMetrics

    return IndexerMetrics()


@pytest.fixture
def driver(source, block_service, sync_engine, rollback_engine, datastore, sync_config, metrics):
    from chain_indexer.engine.driver import SyncDriver

    return SyncDriver(
        source,
        block_service,
        sync_engine,
        rollback_engine,
        datastore,
        sync_config,
        metrics=metrics,
    )
