# coding: utf-8
"""
Yield opportunity helpers: serialization, protocol metadata, TVL refresh
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.tokens import PROTOCOLS
from src.database import crud
from src.database.crud import as_utc
from src.database.models import YieldOpportunity
from src.services.defillama_service import DefiLlamaService


def get_protocol_info(protocol: str) -> Dict[str, str]:
    """Display name, logo and url; unknown protocols get a generic entry"""
    info = PROTOCOLS.get((protocol or "").lower())
    if info is None:
        return {"name": protocol, "logo": (protocol or "?")[:1].upper(), "url": ""}
    return {"name": info["name"], "logo": info["logo"], "url": info["url"]}


def opportunity_to_dict(opportunity: YieldOpportunity, with_protocol_info: bool = False) -> Dict[str, Any]:
    data = {
        "id": opportunity.id,
        "name": opportunity.name,
        "protocol": opportunity.protocol,
        "apy": float(opportunity.apy),
        "base_apy": float(opportunity.base_apy) if opportunity.base_apy is not None else None,
        "reward_apy": float(opportunity.reward_apy) if opportunity.reward_apy is not None else None,
        "risk_level": opportunity.risk_level,
        "tvl": float(opportunity.tvl) if opportunity.tvl is not None else None,
        "asset_type": opportunity.asset_type,
        "token_pair": list(opportunity.token_pair or []),
        "deposit_fee": float(opportunity.deposit_fee or 0),
        "withdrawal_fee": float(opportunity.withdrawal_fee or 0),
        "last_updated": as_utc(opportunity.last_updated).isoformat(),
        "link": opportunity.link,
        "supports_liquidity": bool(opportunity.pool_id),
        "supports_staking": bool(opportunity.farm_id),
    }
    if with_protocol_info:
        data["protocol_info"] = get_protocol_info(opportunity.protocol)
    return data


class YieldAnalyzer:
    """Keeps opportunity market data current"""

    def __init__(self, defillama: Optional[DefiLlamaService] = None):
        self.defillama = defillama or DefiLlamaService()

    async def refresh_tvl(self, session: AsyncSession) -> int:
        """
        Update TVL of every listed protocol from DefiLlama

        Protocols whose fetch fails keep their previous values.

        Returns:
            Number of opportunities updated
        """
        protocols = (
            await session.execute(select(func.distinct(YieldOpportunity.protocol)))
        ).scalars().all()

        updated = 0
        for protocol in protocols:
            tvl = await self.defillama.get_protocol_tvl(protocol)
            if tvl is None:
                continue
            updated += await crud.update_protocol_tvl(session, protocol, tvl)
            logger.debug(f"TVL for {protocol}: ${tvl}M")

        logger.info(f"TVL refresh updated {updated} opportunities across {len(protocols)} protocols")
        return updated

    async def refresh_tvl_job(self, session_maker: async_sessionmaker[AsyncSession]) -> int:
        """Scheduled entry point"""
        async with session_maker() as session:
            return await self.refresh_tvl(session)
