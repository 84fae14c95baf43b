"""
CRUD operations for Sol YieldHunter API

Async database operations using SQLAlchemy 2.0
"""

import logging
from datetime import datetime, timedelta, UTC
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.database.models import (
    User,
    UserPreference,
    YieldOpportunity,
    UserPortfolio,
    Transaction,
    SolanaSubscription,
    RiskLevel,
    RiskTolerance,
    TransactionType,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


DEFAULT_PREFERENCES = {
    "risk_tolerance": RiskTolerance.MODERATE_CONSERVATIVE.value,
    "preferred_chains": ["solana"],
    "preferred_tokens": ["SOL", "USDC"],
    "notifications_enabled": True,
}

# time_range -> (points, step)
CHART_RANGES = {
    "1D": (24, timedelta(hours=1)),
    "1W": (7, timedelta(days=1)),
    "1M": (30, timedelta(days=1)),
    "1Y": (12, timedelta(days=30)),
}
ALL_RANGE_POINTS = 10


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ===========================
# USER OPERATIONS
# ===========================


async def get_user(session: AsyncSession, user_id: int) -> Optional[User]:
    """Get user by internal ID"""
    return await session.get(User, user_id)


async def get_user_by_wallet_address(
    session: AsyncSession, wallet_address: str
) -> Optional[User]:
    """
    Get user by wallet address

    Args:
        session: Database session
        wallet_address: Base58 wallet address

    Returns:
        User model or None
    """
    stmt = select(User).where(User.wallet_address == wallet_address)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    wallet_address: str,
    username: Optional[str] = None,
    email: Optional[str] = None,
) -> User:
    """
    Create new user together with default preferences

    Args:
        session: Database session
        wallet_address: Base58 wallet address
        username: Display name
        email: Contact email

    Returns:
        Created User model
    """
    user = User(wallet_address=wallet_address, username=username, email=email)
    session.add(user)
    await session.flush()

    session.add(UserPreference(user_id=user.id, **_default_preferences()))
    await session.commit()
    await session.refresh(user)

    logger.info(f"User created: {user.id} ({wallet_address})")
    return user


async def get_or_create_user(
    session: AsyncSession,
    wallet_address: str,
    username: Optional[str] = None,
) -> tuple[User, bool]:
    """
    Get existing user or create new one

    A concurrent registration of the same wallet loses the unique-constraint
    race; the loser re-reads the winner's row.

    Returns:
        Tuple of (User model, is_created)
    """
    user = await get_user_by_wallet_address(session, wallet_address)
    if user:
        return user, False

    try:
        return await create_user(session, wallet_address, username=username), True
    except IntegrityError:
        await session.rollback()
        user = await get_user_by_wallet_address(session, wallet_address)
        if user is None:
            raise
        logger.info(f"User {wallet_address} registered concurrently, using existing row")
        return user, False


async def touch_last_login(session: AsyncSession, user: User) -> User:
    """Refresh last_login after a verified wallet signature"""
    user.last_login = datetime.now(UTC)
    await session.commit()
    return user


# ===========================
# PREFERENCES OPERATIONS
# ===========================


def _default_preferences() -> dict:
    # fresh lists per row
    return {
        key: list(value) if isinstance(value, list) else value
        for key, value in DEFAULT_PREFERENCES.items()
    }


async def get_user_preferences(
    session: AsyncSession, user_id: int
) -> Optional[UserPreference]:
    """Get preference row for user"""
    stmt = select(UserPreference).where(UserPreference.user_id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def update_user_preferences(
    session: AsyncSession, user_id: int, **updates: Any
) -> UserPreference:
    """
    Partially update preferences, creating the row with defaults if missing

    Args:
        session: Database session
        user_id: User ID
        **updates: Column values to set (None values are ignored)

    Returns:
        Updated UserPreference model
    """
    preferences = await get_user_preferences(session, user_id)
    if preferences is None:
        preferences = UserPreference(user_id=user_id, **_default_preferences())
        session.add(preferences)

    for key, value in updates.items():
        if value is not None and hasattr(UserPreference, key):
            setattr(preferences, key, value)

    await session.commit()
    await session.refresh(preferences)

    logger.info(f"Preferences updated for user {user_id}: {sorted(updates)}")
    return preferences


async def get_user_risk_profile(session: AsyncSession, user_id: int) -> dict:
    """
    Risk profile derived from preferences

    Returns:
        Dict with level and percentage
    """
    preferences = await get_user_preferences(session, user_id)
    if preferences is None:
        level = RiskTolerance.MODERATE_CONSERVATIVE.value
    else:
        level = preferences.risk_tolerance

    return {"level": level, "percentage": RiskTolerance.percentage(level)}


async def get_users_with_preferences(session: AsyncSession) -> List[User]:
    """Users that have a preference row (targets of the AI scan)"""
    stmt = (
        select(User)
        .join(UserPreference, UserPreference.user_id == User.id)
        .options(selectinload(User.preferences))
        .order_by(User.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===========================
# SUBSCRIPTION OPERATIONS
# ===========================


async def get_active_subscription(
    session: AsyncSession, user_id: int
) -> Optional[SolanaSubscription]:
    """Most recent active subscription for user"""
    stmt = (
        select(SolanaSubscription)
        .where(
            SolanaSubscription.user_id == user_id,
            SolanaSubscription.is_active.is_(True),
        )
        .order_by(SolanaSubscription.subscription_date.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def check_user_is_subscribed(session: AsyncSession, user_id: int) -> bool:
    """Subscription gate flag"""
    return await get_active_subscription(session, user_id) is not None


async def get_subscription_by_tx_hash(
    session: AsyncSession, transaction_hash: str
) -> Optional[SolanaSubscription]:
    stmt = select(SolanaSubscription).where(
        SolanaSubscription.transaction_hash == transaction_hash
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_subscription(
    session: AsyncSession,
    user_id: int,
    transaction_hash: str,
    amount: Decimal,
    currency: str = "USDC",
) -> SolanaSubscription:
    """
    Record a subscription payment

    Args:
        session: Database session
        user_id: User ID
        transaction_hash: Payment transaction signature
        amount: Paid amount
        currency: Paid currency

    Returns:
        Created SolanaSubscription model
    """
    subscription = SolanaSubscription(
        user_id=user_id,
        transaction_hash=transaction_hash,
        amount=amount,
        currency=currency,
        is_active=True,
    )
    session.add(subscription)
    await session.commit()
    await session.refresh(subscription)

    logger.info(f"Subscription recorded for user {user_id}: {amount} {currency} ({transaction_hash})")
    return subscription


# ===========================
# YIELD OPPORTUNITY OPERATIONS
# ===========================


async def get_yield_opportunities(
    session: AsyncSession,
    protocol: Optional[str] = None,
    sort_by: Optional[str] = None,
) -> List[YieldOpportunity]:
    """
    List opportunities

    Args:
        session: Database session
        protocol: Case-insensitive protocol filter
        sort_by: apy | tvl | risk (risk is ordered low -> high)

    Returns:
        List of YieldOpportunity models
    """
    stmt = select(YieldOpportunity)
    if protocol:
        stmt = stmt.where(func.lower(YieldOpportunity.protocol) == protocol.lower())

    if sort_by == "apy":
        stmt = stmt.order_by(YieldOpportunity.apy.desc())
    elif sort_by == "tvl":
        stmt = stmt.order_by(YieldOpportunity.tvl.desc())
    else:
        stmt = stmt.order_by(YieldOpportunity.id)

    result = await session.execute(stmt)
    opportunities = list(result.scalars().all())

    if sort_by == "risk":
        # Stable sort keeps id order within a level
        opportunities.sort(key=lambda o: RiskLevel.rank(o.risk_level))

    return opportunities


async def get_yield_opportunity(
    session: AsyncSession, opportunity_id: int
) -> Optional[YieldOpportunity]:
    return await session.get(YieldOpportunity, opportunity_id)


async def get_best_yield_opportunity(session: AsyncSession) -> Optional[YieldOpportunity]:
    """Highest APY opportunity"""
    stmt = select(YieldOpportunity).order_by(YieldOpportunity.apy.desc()).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_yield_stats(session: AsyncSession) -> dict:
    """
    Aggregate opportunity stats

    Returns:
        Dict with avg_apy (2 dp), protocol_count and opportunity_count
    """
    stmt = select(
        func.avg(YieldOpportunity.apy),
        func.count(func.distinct(YieldOpportunity.protocol)),
        func.count(YieldOpportunity.id),
    )
    avg_apy, protocol_count, opportunity_count = (await session.execute(stmt)).one()

    if not opportunity_count:
        return {"avg_apy": 0.0, "protocol_count": 0, "opportunity_count": 0}

    return {
        "avg_apy": round(float(avg_apy), 2),
        "protocol_count": int(protocol_count),
        "opportunity_count": int(opportunity_count),
    }


async def create_yield_opportunity(session: AsyncSession, **fields: Any) -> YieldOpportunity:
    """Insert one opportunity"""
    opportunity = YieldOpportunity(**fields)
    session.add(opportunity)
    await session.commit()
    await session.refresh(opportunity)
    return opportunity


async def upsert_yield_opportunity(
    session: AsyncSession, **fields: Any
) -> tuple[YieldOpportunity, bool]:
    """
    Update the opportunity with the same protocol and name, or insert one

    Returns:
        Tuple of (YieldOpportunity model, is_created)
    """
    stmt = select(YieldOpportunity).where(
        func.lower(YieldOpportunity.protocol) == fields["protocol"].lower(),
        YieldOpportunity.name == fields["name"],
    ).order_by(YieldOpportunity.id).limit(1)
    opportunity = (await session.execute(stmt)).scalar_one_or_none()
    if opportunity is None:
        return await create_yield_opportunity(session, **fields), True

    for key, value in fields.items():
        setattr(opportunity, key, value)
    opportunity.last_updated = datetime.now(UTC)
    await session.commit()
    await session.refresh(opportunity)
    return opportunity, False


async def update_protocol_tvl(
    session: AsyncSession, protocol: str, tvl: Decimal
) -> int:
    """
    Set TVL for every opportunity of a protocol

    Returns:
        Number of updated rows
    """
    stmt = select(YieldOpportunity).where(
        func.lower(YieldOpportunity.protocol) == protocol.lower()
    )
    opportunities = (await session.execute(stmt)).scalars().all()

    now = datetime.now(UTC)
    for opportunity in opportunities:
        opportunity.tvl = tvl
        opportunity.last_updated = now

    await session.commit()
    return len(opportunities)


async def clear_unreferenced_opportunities(session: AsyncSession) -> int:
    """
    Delete opportunities no position or transaction points at

    Returns:
        Number of deleted rows
    """
    referenced = select(UserPortfolio.opportunity_id).union(
        select(Transaction.opportunity_id).where(Transaction.opportunity_id.is_not(None))
    )
    stmt = delete(YieldOpportunity).where(YieldOpportunity.id.not_in(referenced))
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount or 0


# ===========================
# PORTFOLIO OPERATIONS
# ===========================


async def create_investment(
    session: AsyncSession,
    user_id: int,
    opportunity_id: int,
    amount: Decimal,
    token: str,
    transaction_hash: Optional[str] = None,
    details: Optional[dict] = None,
    active: bool = True,
    deposit_date: Optional[datetime] = None,
) -> tuple[UserPortfolio, Transaction]:
    """
    Record a position and its 'invest' log entry in one commit

    Args:
        session: Database session
        user_id: User ID
        opportunity_id: Target opportunity
        amount: Amount of the asset actually held
        token: Symbol of the asset actually held
        transaction_hash: Last confirmed signature, if any
        details: Free-form metadata (stage trail, AI tags)
        active: Position active flag
        deposit_date: Override for the deposit timestamp

    Returns:
        Tuple of (UserPortfolio, Transaction)
    """
    now = deposit_date or datetime.now(UTC)

    position = UserPortfolio(
        user_id=user_id,
        opportunity_id=opportunity_id,
        amount=amount,
        token=token,
        active=active,
        deposit_date=now,
    )
    transaction = Transaction(
        user_id=user_id,
        opportunity_id=opportunity_id,
        transaction_type=TransactionType.INVEST.value,
        amount=amount,
        token=token,
        transaction_date=now,
        status=TransactionStatus.COMPLETED.value,
        transaction_hash=transaction_hash,
        details=details,
    )
    session.add_all([position, transaction])
    await session.commit()
    await session.refresh(position)
    await session.refresh(transaction)

    logger.info(
        f"Investment recorded: user={user_id} opportunity={opportunity_id} "
        f"{amount} {token} tx={transaction_hash}"
    )
    return position, transaction


async def get_position(
    session: AsyncSession, user_id: int, position_id: int
) -> Optional[UserPortfolio]:
    """Position owned by user (None for other users' positions)"""
    stmt = (
        select(UserPortfolio)
        .where(UserPortfolio.id == position_id, UserPortfolio.user_id == user_id)
        .options(selectinload(UserPortfolio.opportunity))
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_positions(session: AsyncSession, user_id: int) -> List[UserPortfolio]:
    stmt = (
        select(UserPortfolio)
        .where(UserPortfolio.user_id == user_id, UserPortfolio.active.is_(True))
        .options(selectinload(UserPortfolio.opportunity))
        .order_by(UserPortfolio.deposit_date.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def withdraw_position(
    session: AsyncSession,
    position: UserPortfolio,
    amount: Optional[Decimal] = None,
    transaction_hash: Optional[str] = None,
) -> Transaction:
    """
    Withdraw (unstake) all or part of a position

    Args:
        session: Database session
        position: Active position owned by the caller
        amount: Amount to withdraw; None withdraws everything
        transaction_hash: Client-supplied signature of the on-chain withdrawal

    Returns:
        Created 'withdraw' Transaction

    Raises:
        ValueError: Position inactive or amount out of range
    """
    if not position.active:
        raise ValueError("Position is not active")

    withdraw_amount = position.amount if amount is None else amount
    if withdraw_amount <= 0 or withdraw_amount > position.amount:
        raise ValueError(
            f"Withdraw amount must be between 0 and {position.amount} {position.token}"
        )

    position.amount = position.amount - withdraw_amount
    if position.amount == 0:
        position.active = False

    transaction = Transaction(
        user_id=position.user_id,
        opportunity_id=position.opportunity_id,
        transaction_type=TransactionType.WITHDRAW.value,
        amount=withdraw_amount,
        token=position.token,
        status=TransactionStatus.COMPLETED.value,
        transaction_hash=transaction_hash,
        details={"position_id": position.id, "closed": not position.active},
    )
    session.add(transaction)
    await session.commit()
    await session.refresh(transaction)

    logger.info(
        f"Withdrawal recorded: user={position.user_id} position={position.id} "
        f"{withdraw_amount} {position.token}"
    )
    return transaction


async def get_user_portfolio(
    session: AsyncSession, user_id: int, time_range: str = "1M"
) -> dict:
    """
    Portfolio overview with a net-invested chart

    The chart is the cumulative invested minus withdrawn amount at each
    bucket end, taken from the user's completed transactions.

    Args:
        session: Database session
        user_id: User ID
        time_range: 1D | 1W | 1M | 1Y | All

    Returns:
        Dict with total_value, change_percentage, positions and chart_data
    """
    positions = await get_active_positions(session, user_id)
    total_value = sum((p.amount for p in positions), Decimal("0"))

    stmt = (
        select(Transaction)
        .where(
            Transaction.user_id == user_id,
            Transaction.status == TransactionStatus.COMPLETED.value,
            Transaction.transaction_type.in_(
                [TransactionType.INVEST.value, TransactionType.WITHDRAW.value]
            ),
        )
        .order_by(Transaction.transaction_date)
    )
    transactions = list((await session.execute(stmt)).scalars().all())

    chart_data = build_chart_data(transactions, time_range, datetime.now(UTC))

    change_percentage = 0.0
    if chart_data:
        first, last = chart_data[0]["value"], chart_data[-1]["value"]
        if first:
            change_percentage = round((last - first) / first * 100, 2)

    return {
        "total_value": float(total_value),
        "change_percentage": change_percentage,
        "positions": [
            {
                "id": p.id,
                "opportunity_id": p.opportunity_id,
                "name": p.opportunity.name if p.opportunity else None,
                "protocol": p.opportunity.protocol if p.opportunity else None,
                "apy": float(p.opportunity.apy) if p.opportunity else None,
                "amount": float(p.amount),
                "token": p.token,
                "deposit_date": as_utc(p.deposit_date).isoformat(),
            }
            for p in positions
        ],
        "chart_data": chart_data,
    }


def build_chart_data(
    transactions: List[Transaction], time_range: str, now: datetime
) -> List[dict]:
    """Cumulative net invested amount sampled at evenly spaced points ending at now"""
    if time_range in CHART_RANGES:
        points, step = CHART_RANGES[time_range]
    else:
        points = ALL_RANGE_POINTS
        if transactions:
            start = as_utc(transactions[0].transaction_date)
            step = max((now - start) / (points - 1), timedelta(seconds=1))
        else:
            step = timedelta(days=1)

    timestamps = [now - step * (points - 1 - i) for i in range(points)]

    chart = []
    index = 0
    running = Decimal("0")
    for ts in timestamps:
        while index < len(transactions) and as_utc(transactions[index].transaction_date) <= ts:
            tx = transactions[index]
            if tx.transaction_type == TransactionType.INVEST.value:
                running += tx.amount
            else:
                running -= tx.amount
            index += 1
        chart.append({"timestamp": ts.isoformat(), "value": float(running)})

    return chart


async def get_portfolio_summary(session: AsyncSession, user_id: int) -> dict:
    """
    Count of active positions and the protocols they span
    """
    positions = await get_active_positions(session, user_id)
    protocols = sorted({p.opportunity.protocol for p in positions if p.opportunity})

    return {
        "active_positions": len(positions),
        "protocol_count": len(protocols),
        "protocols": protocols,
    }


# ===========================
# TRANSACTION OPERATIONS
# ===========================


async def create_transaction(
    session: AsyncSession,
    user_id: int,
    transaction_type: str,
    amount: Decimal,
    token: str,
    opportunity_id: Optional[int] = None,
    status: str = TransactionStatus.COMPLETED.value,
    transaction_hash: Optional[str] = None,
    details: Optional[dict] = None,
    transaction_date: Optional[datetime] = None,
) -> Transaction:
    """
    Append a transaction log entry

    Returns:
        Created Transaction model
    """
    transaction = Transaction(
        user_id=user_id,
        opportunity_id=opportunity_id,
        transaction_type=transaction_type,
        amount=amount,
        token=token,
        status=status,
        transaction_hash=transaction_hash,
        details=details,
        transaction_date=transaction_date or datetime.now(UTC),
    )
    session.add(transaction)
    await session.commit()
    await session.refresh(transaction)

    logger.info(f"Transaction logged: user={user_id} {transaction_type} {amount} {token}")
    return transaction


async def get_user_transactions(
    session: AsyncSession, user_id: int, filter_type: str = "all"
) -> List[Transaction]:
    """
    Transactions newest first, with their opportunity loaded

    Args:
        session: Database session
        user_id: User ID
        filter_type: 'all' or a transaction_type value

    Returns:
        List of Transaction models
    """
    stmt = (
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .options(selectinload(Transaction.opportunity))
        .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    )
    if filter_type and filter_type != "all":
        stmt = stmt.where(Transaction.transaction_type == filter_type)

    result = await session.execute(stmt)
    return list(result.scalars().all())
