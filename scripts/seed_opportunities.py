"""
Seed the yield opportunity catalogue

Removes opportunities nothing references, then upserts the default set by
protocol and name. Opportunities that positions or transactions point at
are kept and refreshed in place.

Usage:
    python scripts/seed_opportunities.py [--create-tables]
"""
import argparse
import asyncio
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database import crud
from src.database.engine import dispose_engine, get_session_maker, init_db


def D(value: str) -> Decimal:
    return Decimal(value)


OPPORTUNITIES = [
    {
        "name": "SOL-USDC LP",
        "protocol": "Raydium",
        "apy": D("8.5"), "base_apy": D("2.5"), "reward_apy": D("6.0"),
        "risk_level": "medium",
        "tvl": D("45.2"),
        "asset_type": "Liquidity Pool",
        "token_pair": ["SOL", "USDC"],
        "deposit_fee": D("0.1"), "withdrawal_fee": D("0.1"),
        "link": "https://raydium.io/pools",
        "entry_token": "SOL",
        "pool_id": "58oQChx4yWmvKdwLLZzBi4ChoCc2fqCUWBkwMihLYQo2",
        "lp_token": "SOL-USDC-LP",
    },
    {
        "name": "mSOL Staking",
        "protocol": "Marinade",
        "apy": D("6.8"), "base_apy": D("6.8"), "reward_apy": D("0"),
        "risk_level": "low",
        "tvl": D("120.5"),
        "asset_type": "Staking",
        "token_pair": ["SOL"],
        "link": "https://marinade.finance",
        "entry_token": "mSOL",
    },
    {
        "name": "USDC-USDT LP",
        "protocol": "Orca",
        "apy": D("3.2"), "base_apy": D("1.2"), "reward_apy": D("2.0"),
        "risk_level": "low",
        "tvl": D("89.7"),
        "asset_type": "Liquidity Pool",
        "token_pair": ["USDC", "USDT"],
        "deposit_fee": D("0.05"), "withdrawal_fee": D("0.05"),
        "link": "https://www.orca.so",
    },
    {
        "name": "SOL Lending",
        "protocol": "Solend",
        "apy": D("4.1"), "base_apy": D("4.1"), "reward_apy": D("0"),
        "risk_level": "medium",
        "tvl": D("32.4"),
        "asset_type": "Lending",
        "token_pair": ["SOL"],
        "link": "https://solend.fi",
    },
    {
        "name": "RAY-USDC LP",
        "protocol": "Raydium",
        "apy": D("12.3"), "base_apy": D("3.3"), "reward_apy": D("9.0"),
        "risk_level": "medium-high",
        "tvl": D("18.9"),
        "asset_type": "Liquidity Pool",
        "token_pair": ["RAY", "USDC"],
        "deposit_fee": D("0.1"), "withdrawal_fee": D("0.1"),
        "link": "https://raydium.io/pools",
        "entry_token": "RAY",
        "pool_id": "6UmmUiYoBjSrhakAobJw8BvkmJtDVxaeBtbt7rxWo1mg",
        "lp_token": "RAY-USDC-LP",
        "farm_id": "CHYrUBX2RKX8iBg7gYTkccoGNBzP44LdaazMHCLcdEgS",
    },
    {
        "name": "ETH-SOL LP",
        "protocol": "Orca",
        "apy": D("7.8"), "base_apy": D("2.8"), "reward_apy": D("5.0"),
        "risk_level": "medium",
        "tvl": D("27.3"),
        "asset_type": "Liquidity Pool",
        "token_pair": ["ETH", "SOL"],
        "deposit_fee": D("0.05"), "withdrawal_fee": D("0.05"),
        "link": "https://www.orca.so",
    },
    {
        "name": "USDC Lending",
        "protocol": "Solend",
        "apy": D("5.2"), "base_apy": D("5.2"), "reward_apy": D("0"),
        "risk_level": "low",
        "tvl": D("156.8"),
        "asset_type": "Lending",
        "token_pair": ["USDC"],
        "link": "https://solend.fi",
    },
    {
        "name": "BTC-SOL LP",
        "protocol": "Raydium",
        "apy": D("9.1"), "base_apy": D("3.1"), "reward_apy": D("6.0"),
        "risk_level": "medium-high",
        "tvl": D("22.5"),
        "asset_type": "Liquidity Pool",
        "token_pair": ["BTC", "SOL"],
        "deposit_fee": D("0.1"), "withdrawal_fee": D("0.1"),
        "link": "https://raydium.io/pools",
    },
    {
        "name": "MNDE-USDC LP",
        "protocol": "Marinade",
        "apy": D("15.2"), "base_apy": D("4.2"), "reward_apy": D("11.0"),
        "risk_level": "high",
        "tvl": D("8.7"),
        "asset_type": "Liquidity Pool",
        "token_pair": ["MNDE", "USDC"],
        "deposit_fee": D("0.1"), "withdrawal_fee": D("0.1"),
        "link": "https://marinade.finance/app/pools",
    },
    {
        "name": "SOL Vault",
        "protocol": "Tulip",
        "apy": D("7.5"), "base_apy": D("7.5"), "reward_apy": D("0"),
        "risk_level": "medium",
        "tvl": D("15.3"),
        "asset_type": "Vault",
        "token_pair": ["SOL"],
        "deposit_fee": D("0.1"), "withdrawal_fee": D("0.1"),
        "link": "https://tulip.garden",
    },
    {
        "name": "SOL Staking",
        "protocol": "Helius",
        "apy": D("6.7"), "base_apy": D("6.7"), "reward_apy": D("0"),
        "risk_level": "low",
        "tvl": D("85.2"),
        "asset_type": "Staking",
        "token_pair": ["SOL"],
        "link": "https://helius.dev",
    },
]


async def seed_opportunities(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> int:
    """
    Bring the catalogue in line with OPPORTUNITIES

    Entries whose protocol and name survived the clear (because a position
    or transaction references them) are updated in place, keeping their id.

    Returns:
        Number of newly inserted opportunities
    """
    logger.info("🌱 Seeding yield opportunities...")

    session_maker = session_maker or get_session_maker()
    created_count = 0
    async with session_maker() as session:
        removed = await crud.clear_unreferenced_opportunities(session)
        logger.info(f"Removed {removed} unreferenced opportunities")

        for fields in OPPORTUNITIES:
            opportunity, created = await crud.upsert_yield_opportunity(session, **fields)
            created_count += created
            action = "✅" if created else "🔄"
            logger.info(f"{action} {opportunity.protocol} / {opportunity.name} ({opportunity.apy}% APY)")

    logger.info(
        f"Seeded {len(OPPORTUNITIES)} yield opportunities "
        f"({created_count} new, {len(OPPORTUNITIES) - created_count} updated)"
    )
    return created_count


async def main(create_tables: bool = False):
    try:
        if create_tables:
            await init_db()
        await seed_opportunities()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the yield opportunity catalogue")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (local databases without Alembic migrations)",
    )
    args = parser.parse_args()
    asyncio.run(main(create_tables=args.create_tables))
