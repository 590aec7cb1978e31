"""Datastore client — async SQLAlchemy engine, sessions and document operations.

Central datastore abstraction providing:
- Engine lifecycle (create, dispose)
- Async session factory
- Keyed-document operations used by the indexes: upsert with no-op
  detection, get, delete, delete-by-query, equality lookup, max aggregate
  and flush

Every document operation runs in its own session and commits before it
returns, so the next call observes the write.  Inside
:meth:`Datastore.transaction` the operations share one session instead and
commit or roll back together.  Database failures are logged
with collection, id and operation and re-raised as ``StoreUnavailableError``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from chain_indexer.datastore.engines import create_engine
from chain_indexer.errors.definitions import StoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.orm import DeclarativeBase, InstrumentedAttribute

    from chain_indexer.config.settings import DatabaseConfig

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

_active_session: ContextVar[AsyncSession | None] = ContextVar("chain_indexer_session", default=None)


class Datastore:
    """Async datastore wrapping a SQLAlchemy engine and session factory.

    Usage::

        ds = Datastore(db_config)
        await ds.open()
        written = await ds.upsert(Balance, "addr", {"amount": Decimal("1")})
        await ds.flush()
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Return the underlying async engine.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._engine is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._engine

    async def open(self, *, base: type[DeclarativeBase] | None = None) -> None:
        """Open the datastore — create engine and optionally create tables.

        Args:
            base: If provided, create all tables defined by this declarative base.
                  Primarily used for SQLite in-memory testing.
        """
        self._engine = create_engine(self._config)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        if base is not None:
            async with self._engine.begin() as conn:
                await conn.run_sync(base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the engine and release all connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    def session(self) -> AsyncSession:
        """Create a new async session from the session factory.

        Returns:
            An ``AsyncSession`` instance. Use as an async context manager.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._session_factory is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._session_factory()

    @property
    def is_open(self) -> bool:
        """Check if the datastore is open."""
        return self._engine is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run every document operation of the block in one transaction.

        Writes are visible to later operations inside the block and are
        committed together on exit; any exception rolls all of them back.
        A nested call joins the enclosing transaction.

        Raises:
            StoreUnavailableError: If the commit fails.
        """
        if _active_session.get() is not None:
            yield
            return
        session = self.session()
        token = _active_session.set(session)
        try:
            yield
            async with self._guard(None, None, "commit"):
                await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            _active_session.reset(token)
            await session.close()

    # ------------------------------------------------------------------
    # Document operations
    # ------------------------------------------------------------------

    async def upsert(
        self,
        model: type[ModelT],
        id_: Any,
        values: dict[str, Any],
        *,
        detect_noop: bool = True,
    ) -> bool:
        """Insert the document *id_* or update *values* on the existing one.

        Args:
            model: ORM model class (the collection).
            id_: Primary key value.
            values: Fields to set.
            detect_noop: Skip the write when every field already holds its value.

        Returns:
            True if a row was inserted or changed, False for a detected no-op.
        """
        async with self._guard(model, id_, "upsert"):
            async with self._scope() as session:
                row = await session.get(model, id_)
                if row is None:
                    session.add(model(**{_id_field(model): id_, **values}))
                else:
                    if detect_noop and all(getattr(row, k) == v for k, v in values.items()):
                        return False
                    for key, value in values.items():
                        setattr(row, key, value)
                await self._commit(session)
                return True

    async def get(self, model: type[ModelT], id_: Any) -> ModelT | None:
        """Fetch a document by primary key."""
        async with self._guard(model, id_, "get"):
            async with self._scope() as session:
                return await session.get(model, id_)

    async def delete(self, model: type[ModelT], id_: Any) -> bool:
        """Delete a document by primary key.

        Returns:
            True if a row was removed.
        """
        async with self._guard(model, id_, "delete"):
            async with self._scope() as session:
                row = await session.get(model, id_)
                if row is None:
                    return False
                await session.delete(row)
                await self._commit(session)
                return True

    async def delete_where(self, model: type[ModelT], **terms: Any) -> int:
        """Delete every document whose fields equal *terms*.

        Returns:
            The number of rows removed.
        """
        async with self._guard(model, terms, "delete_by_query"):
            async with self._scope() as session:
                stmt = delete(model).filter_by(**terms)
                result = await session.execute(stmt)
                await self._commit(session)
                return result.rowcount  # type: ignore[attr-defined]

    async def find_one(self, model: type[ModelT], **terms: Any) -> ModelT | None:
        """Return the first document matching every equality term.

        A ``None`` term matches NULL.
        """
        async with self._guard(model, terms, "search"):
            async with self._scope() as session:
                stmt = select(model).filter_by(**terms).limit(1)
                result = await session.execute(stmt)
                return result.scalars().first()

    async def count(self, model: type[ModelT]) -> int:
        """Count the documents in a collection."""
        async with self._guard(model, None, "count"):
            async with self._scope() as session:
                result = await session.execute(select(func.count()).select_from(model))
                return result.scalar_one()

    async def max_of(self, column: InstrumentedAttribute[Any]) -> Any:
        """Return ``max(column)`` over its collection, or None when empty."""
        model = column.class_
        async with self._guard(model, f"max_{column.key}", "aggregate"):
            async with self._scope() as session:
                result = await session.execute(select(func.max(column)))
                return result.scalar_one_or_none()

    async def flush(self) -> None:
        """Force committed writes durable.

        SQLite checkpoints its write-ahead log; server databases have already
        made every committed write durable.
        """
        async with self._guard(None, None, "flush"):
            async with self.engine.connect() as conn:
                if conn.dialect.name == "sqlite":
                    await conn.exec_driver_sql("PRAGMA wal_checkpoint(PASSIVE)")

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[AsyncSession]:
        active = _active_session.get()
        if active is not None:
            yield active
            return
        async with self.session() as session:
            yield session

    async def _commit(self, session: AsyncSession) -> None:
        if session is _active_session.get():
            await session.flush()
        else:
            await session.commit()

    @asynccontextmanager
    async def _guard(self, model: Any, id_: Any, operation: str) -> AsyncIterator[None]:
        collection = getattr(model, "__tablename__", "*")
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error("%s on %s/%s failed: %s", operation, collection, id_, exc)
            raise StoreUnavailableError(collection, id_, operation) from exc


def _id_field(model: type[Any]) -> str:
    mapper = inspect(model)
    return mapper.get_property_by_column(mapper.primary_key[0]).key
