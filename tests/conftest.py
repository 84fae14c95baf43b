"""
Pytest configuration and fixtures for Sol YieldHunter tests
"""

from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.database import crud
from src.database.models import Base, User, YieldOpportunity
from tests.fakes import WALLET

# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(test_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create test database session
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def user(db_session) -> User:
    return await crud.create_user(db_session, wallet_address=WALLET, username="hunter")


@pytest.fixture
async def ray_usdc(db_session) -> YieldOpportunity:
    """Opportunity with pool and farm: all three stages apply"""
    return await crud.create_yield_opportunity(
        db_session,
        name="RAY-USDC LP",
        protocol="Raydium",
        apy=Decimal("12.3"),
        base_apy=Decimal("3.3"),
        reward_apy=Decimal("9.0"),
        risk_level="medium-high",
        tvl=Decimal("18.9"),
        asset_type="Liquidity Pool",
        token_pair=["RAY", "USDC"],
        link="https://raydium.io/pools",
        entry_token="RAY",
        pool_id="pool-ray-usdc",
        lp_token="RAY-USDC-LP",
        farm_id="farm-ray-usdc",
    )


@pytest.fixture
async def msol_staking(db_session) -> YieldOpportunity:
    """Single-token opportunity: swap only"""
    return await crud.create_yield_opportunity(
        db_session,
        name="mSOL Staking",
        protocol="Marinade",
        apy=Decimal("6.8"),
        risk_level="low",
        tvl=Decimal("120.5"),
        asset_type="Staking",
        token_pair=["SOL"],
        entry_token="mSOL",
    )
