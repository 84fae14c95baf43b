"""
Tests for yield serialization and the TVL refresh
"""

from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from src.database import crud
from src.services.yield_service import YieldAnalyzer, get_protocol_info, opportunity_to_dict


def test_protocol_info():
    assert get_protocol_info("raydium") == {"name": "Raydium", "logo": "R", "url": "https://raydium.io"}
    assert get_protocol_info("Kamino") == {"name": "Kamino", "logo": "K", "url": ""}


@pytest.mark.asyncio
async def test_opportunity_to_dict(ray_usdc, msol_staking):
    data = opportunity_to_dict(ray_usdc, with_protocol_info=True)

    assert data["apy"] == 12.3
    assert data["token_pair"] == ["RAY", "USDC"]
    assert data["supports_liquidity"] is True
    assert data["supports_staking"] is True
    assert data["protocol_info"]["name"] == "Raydium"

    single = opportunity_to_dict(msol_staking)
    assert "protocol_info" not in single
    assert single["supports_staking"] is False
    assert single["base_apy"] is None


@pytest.mark.asyncio
async def test_refresh_tvl_keeps_failed_protocols(db_session, ray_usdc, msol_staking):
    defillama = Mock()
    defillama.get_protocol_tvl = AsyncMock(
        side_effect=lambda protocol: Decimal("2100.5") if protocol == "Raydium" else None
    )

    updated = await YieldAnalyzer(defillama).refresh_tvl(db_session)

    assert updated == 1
    refreshed = {o.protocol: o.tvl for o in await crud.get_yield_opportunities(db_session)}
    assert refreshed["Raydium"] == Decimal("2100.5")
    assert refreshed["Marinade"] == Decimal("120.5")


@pytest.mark.asyncio
async def test_refresh_tvl_job_uses_own_session(session_maker, ray_usdc):
    defillama = Mock()
    defillama.get_protocol_tvl = AsyncMock(return_value=Decimal("10"))

    assert await YieldAnalyzer(defillama).refresh_tvl_job(session_maker) == 1
