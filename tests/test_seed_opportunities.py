"""
Tests for the opportunity seed script and table creation
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool

from scripts.seed_opportunities import OPPORTUNITIES, main, seed_opportunities
from src.database import crud
from src.database.engine import engine_options, get_session_maker


@pytest.mark.asyncio
async def test_reseed_keeps_referenced_opportunity(session_maker, db_session, user):
    seeded = OPPORTUNITIES[0]
    held = await crud.create_yield_opportunity(db_session, **{**seeded, "apy": Decimal("1.5")})
    await crud.create_investment(db_session, user.id, held.id, Decimal("2"), "SOL")

    assert await seed_opportunities(session_maker) == len(OPPORTUNITIES) - 1
    assert await seed_opportunities(session_maker) == 0

    async with session_maker() as session:
        opportunities = await crud.get_yield_opportunities(session)

    same_key = [o for o in opportunities if (o.protocol, o.name) == (seeded["protocol"], seeded["name"])]
    assert [o.id for o in same_key] == [held.id]
    assert same_key[0].apy == seeded["apy"]
    assert len(opportunities) == len(OPPORTUNITIES)

    positions = await crud.get_active_positions(db_session, user.id)
    assert positions[0].opportunity_id == held.id


@pytest.mark.asyncio
async def test_create_tables_then_seed(monkeypatch):
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    monkeypatch.setattr("src.database.engine.engine", engine)
    monkeypatch.setattr("src.database.engine.AsyncSessionLocal", None)
    # keep the in-memory database alive for the assertions below
    monkeypatch.setattr("scripts.seed_opportunities.dispose_engine", AsyncMock())

    try:
        await main(create_tables=True)

        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        async with get_session_maker()() as session:
            opportunities = await crud.get_yield_opportunities(session)
    finally:
        await engine.dispose()

    assert {"users", "yield_opportunities", "user_portfolios", "transactions"} <= set(tables)
    assert len(opportunities) == len(OPPORTUNITIES)


def test_engine_options_per_backend():
    assert engine_options("sqlite+aiosqlite:///./local.db") == {"echo": False}

    postgres = engine_options("postgresql+asyncpg://user:pw@db/yield", environment="production")
    assert postgres["poolclass"] is AsyncAdaptedQueuePool
    assert postgres["pool_size"] == 10
    assert postgres["connect_args"]["statement_cache_size"] == 0

    assert engine_options("postgresql+asyncpg://user:pw@db/yield", environment="development")["pool_size"] == 5
