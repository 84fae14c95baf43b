"""
Unit tests for CRUD operations
"""

import pytest
from datetime import datetime, timedelta, UTC
from decimal import Decimal

from src.database import crud
from src.database.models import Transaction, TransactionType
from tests.fakes import WALLET, count_user_records


async def make_opportunity(db_session, name, protocol="Raydium", apy="5", risk_level="low", tvl="10"):
    return await crud.create_yield_opportunity(
        db_session,
        name=name,
        protocol=protocol,
        apy=Decimal(apy),
        risk_level=risk_level,
        tvl=Decimal(tvl),
        asset_type="Liquidity Pool",
        token_pair=["SOL", "USDC"],
    )


@pytest.mark.asyncio
async def test_create_user_adds_default_preferences(db_session):
    """Test user creation"""
    user = await crud.create_user(db_session, wallet_address=WALLET, username="hunter")

    assert user.wallet_address == WALLET
    assert user.username == "hunter"
    assert user.created_at is not None

    preferences = await crud.get_user_preferences(db_session, user.id)
    assert preferences.risk_tolerance == "moderate-conservative"
    assert preferences.preferred_chains == ["solana"]
    assert preferences.preferred_tokens == ["SOL", "USDC"]
    assert preferences.notifications_enabled is True


@pytest.mark.asyncio
async def test_get_or_create_user(db_session):
    """Test get_or_create_user function"""
    user1, created1 = await crud.get_or_create_user(db_session, wallet_address=WALLET)
    assert created1 is True

    user2, created2 = await crud.get_or_create_user(db_session, wallet_address=WALLET)
    assert created2 is False
    assert user2.id == user1.id

    assert await crud.get_user_by_wallet_address(db_session, "unknown") is None


@pytest.mark.asyncio
async def test_update_preferences_is_partial(db_session, user):
    preferences = await crud.update_user_preferences(
        db_session, user.id, risk_tolerance="aggressive", preferred_tokens=None
    )

    assert preferences.risk_tolerance == "aggressive"
    assert preferences.preferred_tokens == ["SOL", "USDC"]

    profile = await crud.get_user_risk_profile(db_session, user.id)
    assert profile == {"level": "aggressive", "percentage": 90}


@pytest.mark.asyncio
async def test_risk_profile_defaults_without_preferences(db_session):
    profile = await crud.get_user_risk_profile(db_session, 12345)
    assert profile == {"level": "moderate-conservative", "percentage": 35}


@pytest.mark.asyncio
async def test_subscription_gate(db_session, user):
    assert await crud.check_user_is_subscribed(db_session, user.id) is False

    await crud.create_subscription(
        db_session, user.id, transaction_hash="5sigPayment", amount=Decimal("0.000001"), currency="SOL"
    )

    assert await crud.check_user_is_subscribed(db_session, user.id) is True
    subscription = await crud.get_subscription_by_tx_hash(db_session, "5sigPayment")
    assert subscription.currency == "SOL"
    assert subscription.is_active is True


@pytest.mark.asyncio
async def test_yield_opportunity_sorting(db_session):
    await make_opportunity(db_session, "A", apy="4", risk_level="high", tvl="50")
    await make_opportunity(db_session, "B", apy="12", risk_level="Low", tvl="5")
    await make_opportunity(db_session, "C", apy="7", risk_level="exotic", tvl="80")
    await make_opportunity(db_session, "D", apy="9", risk_level="medium", tvl="20", protocol="Orca")

    by_apy = await crud.get_yield_opportunities(db_session, sort_by="apy")
    assert [o.name for o in by_apy] == ["B", "D", "C", "A"]

    by_tvl = await crud.get_yield_opportunities(db_session, sort_by="tvl")
    assert [o.name for o in by_tvl] == ["C", "A", "D", "B"]

    # Unknown levels sort last
    by_risk = await crud.get_yield_opportunities(db_session, sort_by="risk")
    assert [o.name for o in by_risk] == ["B", "D", "A", "C"]

    orca = await crud.get_yield_opportunities(db_session, protocol="orca")
    assert [o.name for o in orca] == ["D"]

    best = await crud.get_best_yield_opportunity(db_session)
    assert best.name == "B"


@pytest.mark.asyncio
async def test_yield_stats(db_session):
    assert await crud.get_yield_stats(db_session) == {
        "avg_apy": 0.0,
        "protocol_count": 0,
        "opportunity_count": 0,
    }

    await make_opportunity(db_session, "A", apy="4")
    await make_opportunity(db_session, "B", apy="5", protocol="Orca")
    await make_opportunity(db_session, "C", apy="6.5", protocol="Orca")

    stats = await crud.get_yield_stats(db_session)
    assert stats == {"avg_apy": 5.17, "protocol_count": 2, "opportunity_count": 3}


@pytest.mark.asyncio
async def test_update_protocol_tvl(db_session):
    await make_opportunity(db_session, "A", protocol="Raydium", tvl="1")
    await make_opportunity(db_session, "B", protocol="raydium", tvl="2")
    await make_opportunity(db_session, "C", protocol="Orca", tvl="3")

    updated = await crud.update_protocol_tvl(db_session, "Raydium", Decimal("1234.56"))

    assert updated == 2
    tvls = {o.name: o.tvl for o in await crud.get_yield_opportunities(db_session)}
    assert tvls["A"] == Decimal("1234.56")
    assert tvls["C"] == Decimal("3")


@pytest.mark.asyncio
async def test_clear_unreferenced_opportunities_keeps_held(db_session, user):
    held = await make_opportunity(db_session, "Held")
    await make_opportunity(db_session, "Free")
    await crud.create_investment(db_session, user.id, held.id, Decimal("1"), "SOL")

    removed = await crud.clear_unreferenced_opportunities(db_session)

    assert removed == 1
    remaining = await crud.get_yield_opportunities(db_session)
    assert [o.name for o in remaining] == ["Held"]


@pytest.mark.asyncio
async def test_create_investment_writes_position_and_log(db_session, user, ray_usdc):
    position, transaction = await crud.create_investment(
        db_session, user.id, ray_usdc.id, Decimal("3.5"), "RAY", transaction_hash="5sig"
    )

    assert position.active is True
    assert transaction.transaction_type == "invest"
    assert transaction.transaction_hash == "5sig"
    assert await count_user_records(db_session, user.id) == (1, 1)


@pytest.mark.asyncio
async def test_withdraw_position(db_session, user, ray_usdc):
    position, _ = await crud.create_investment(db_session, user.id, ray_usdc.id, Decimal("10"), "RAY")

    with pytest.raises(ValueError):
        await crud.withdraw_position(db_session, position, Decimal("11"))

    partial = await crud.withdraw_position(db_session, position, Decimal("4"))
    assert partial.amount == Decimal("4")
    assert partial.details == {"position_id": position.id, "closed": False}
    assert position.amount == Decimal("6")
    assert position.active is True

    final = await crud.withdraw_position(db_session, position)
    assert final.amount == Decimal("6")
    assert position.active is False

    with pytest.raises(ValueError):
        await crud.withdraw_position(db_session, position)

    assert await crud.get_active_positions(db_session, user.id) == []


@pytest.mark.asyncio
async def test_get_position_checks_owner(db_session, user, ray_usdc):
    other = await crud.create_user(db_session, wallet_address="OtherWallet1111111111111111111111111111111")
    position, _ = await crud.create_investment(db_session, user.id, ray_usdc.id, Decimal("1"), "RAY")

    assert (await crud.get_position(db_session, user.id, position.id)).id == position.id
    assert await crud.get_position(db_session, other.id, position.id) is None


@pytest.mark.asyncio
async def test_transactions_filter_and_order(db_session, user, ray_usdc):
    now = datetime.now(UTC)
    await crud.create_transaction(
        db_session, user.id, "swap", Decimal("1"), "SOL", transaction_date=now - timedelta(days=2)
    )
    await crud.create_transaction(
        db_session, user.id, "invest", Decimal("2"), "RAY", opportunity_id=ray_usdc.id,
        transaction_date=now - timedelta(days=1),
    )

    everything = await crud.get_user_transactions(db_session, user.id)
    assert [t.transaction_type for t in everything] == ["invest", "swap"]
    assert everything[0].opportunity.name == "RAY-USDC LP"

    swaps = await crud.get_user_transactions(db_session, user.id, "swap")
    assert len(swaps) == 1


def test_build_chart_data_weekly():
    now = datetime(2026, 3, 10, 12, tzinfo=UTC)
    transactions = [
        Transaction(
            transaction_type=TransactionType.INVEST.value,
            amount=Decimal("10"),
            transaction_date=now - timedelta(days=3),
        ),
        Transaction(
            transaction_type=TransactionType.WITHDRAW.value,
            amount=Decimal("4"),
            transaction_date=now - timedelta(days=1),
        ),
    ]

    chart = crud.build_chart_data(transactions, "1W", now)

    assert [point["value"] for point in chart] == [0, 0, 0, 10, 10, 6, 6]
    assert chart[-1]["timestamp"] == now.isoformat()


def test_build_chart_data_all_range_without_transactions():
    now = datetime(2026, 3, 10, tzinfo=UTC)
    chart = crud.build_chart_data([], "All", now)
    assert len(chart) == crud.ALL_RANGE_POINTS
    assert all(point["value"] == 0 for point in chart)


@pytest.mark.asyncio
async def test_user_portfolio(db_session, user, ray_usdc):
    position, _ = await crud.create_investment(
        db_session, user.id, ray_usdc.id, Decimal("10"), "RAY",
        deposit_date=datetime.now(UTC) - timedelta(days=60),
    )
    await crud.withdraw_position(db_session, position, Decimal("5"))

    portfolio = await crud.get_user_portfolio(db_session, user.id, "1M")

    assert portfolio["total_value"] == 5.0
    assert len(portfolio["chart_data"]) == 30
    assert portfolio["chart_data"][0]["value"] == 10.0
    assert portfolio["chart_data"][-1]["value"] == 5.0
    assert portfolio["change_percentage"] == -50.0
    assert portfolio["positions"][0]["protocol"] == "Raydium"
    assert portfolio["positions"][0]["apy"] == 12.3

    summary = await crud.get_portfolio_summary(db_session, user.id)
    assert summary == {"active_positions": 1, "protocol_count": 1, "protocols": ["Raydium"]}
