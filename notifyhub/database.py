"""
Database connection and session management.

Provides the SQLAlchemy declarative base, async engine creation and session
factory used by the SQL notification store.
"""

from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

logger = structlog.get_logger(__name__)

# SQLAlchemy declarative base for ORM models
Base = declarative_base()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create async SQLAlchemy engine.

    Args:
        database_url: Async connection string (e.g. sqlite+aiosqlite:///./notifications.db)
        echo: Echo SQL statements

    Returns:
        AsyncEngine: Configured async database engine
    """
    engine = create_async_engine(database_url, echo=echo)

    @event.listens_for(engine.sync_engine, "connect")
    def receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
        """Log successful database connections."""
        logger.debug("database_connection_established")

    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Register ORM models on Base.metadata
    import notifyhub.orm.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
