"""Database engine factories — PostgreSQL, SQLite.

PostgreSQL runs on asyncpg with the configured pool.  SQLite runs on
aiosqlite: file databases are switched to write-ahead logging so that
``Datastore.flush`` can checkpoint them, and in-memory databases share one
connection so every session sees the same tables.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from chain_indexer.config.settings import DatabaseConfig


def is_memory_dsn(dsn: str) -> bool:
    url = make_url(dsn)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from database configuration.

    Args:
        config: Database configuration with DSN, pool settings, etc.

    Returns:
        A configured ``AsyncEngine`` ready for use.
    """
    kwargs: dict[str, Any] = {"echo": config.debug_sql}

    if not config.dsn.startswith("sqlite"):
        kwargs["pool_size"] = config.max_idle_connections
        kwargs["max_overflow"] = config.max_open_connections - config.max_idle_connections
        kwargs["pool_pre_ping"] = True
        return create_async_engine(config.dsn, **kwargs)

    if is_memory_dsn(config.dsn):
        kwargs["poolclass"] = StaticPool
        return create_async_engine(config.dsn, **kwargs)

    engine = create_async_engine(config.dsn, **kwargs)
    event.listen(engine.sync_engine, "connect", _enable_wal)
    return engine


def _enable_wal(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()
