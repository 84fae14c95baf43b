"""
Database engine configuration for Sol YieldHunter API

Async SQLAlchemy 2.0 setup. Postgres (asyncpg) gets a sized connection
pool; SQLite URLs used for local runs keep SQLAlchemy's defaults.
"""

import logging
from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from config.config import DATABASE_URL, ENVIRONMENT
from src.database.models import Base

logger = logging.getLogger(__name__)


# Global engine and session maker
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def engine_options(database_url: str, environment: str = ENVIRONMENT) -> dict[str, Any]:
    """create_async_engine keyword arguments for the URL's backend"""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"echo": False}

    is_production = environment == "production"
    return {
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": 10 if is_production else 5,
        "max_overflow": 20 if is_production else 10,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "echo": False,
        # pgbouncer in transaction mode cannot hold prepared statements
        "connect_args": {
            "statement_cache_size": 0,
            "server_settings": {"application_name": "sol_yieldhunter"},
        },
    }


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use"""
    global engine

    if engine is None:
        engine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL))
        logger.info(
            f"Database engine created - Environment: {ENVIRONMENT}, "
            f"Backend: {engine.dialect.name}"
        )

    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Create async session maker

    Returns:
        Configured async_sessionmaker instance
    """
    global AsyncSessionLocal

    if AsyncSessionLocal is None:
        AsyncSessionLocal = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info("Session maker created")

    return AsyncSessionLocal


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database session

    Usage in handlers:
        async def handler(session: AsyncSession = Depends(get_session)):
            ...

    Yields:
        AsyncSession instance
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error(f"Session error: {e}", exc_info=True)
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create missing tables on the configured database

    Backs `scripts/seed_opportunities.py --create-tables` for local setups;
    deployed databases are migrated with Alembic.
    """
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created successfully")


async def dispose_engine() -> None:
    """
    Dispose database engine and close all connections

    Call this on application shutdown
    """
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
        engine = None
        AsyncSessionLocal = None


