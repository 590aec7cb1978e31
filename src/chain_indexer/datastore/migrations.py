"""Schema creation helpers.

Production deployments run the Alembic environment under ``alembic/``;
these helpers cover development and tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from chain_indexer.engine.models.base import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


async def run_auto_migrate(engine: AsyncEngine) -> None:
    """Create the block, tx, vout and balance tables if they are missing.

    Args:
        engine: The async SQLAlchemy engine to migrate.
    """
    # Import all models to register them with Base.metadata
    import chain_indexer.engine.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all_tables(engine: AsyncEngine) -> None:
    """Drop all index tables (test/dev utility only).

    Args:
        engine: The async SQLAlchemy engine.
    """
    import chain_indexer.engine.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
