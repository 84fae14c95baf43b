"""
Database models for Sol YieldHunter API

SQLAlchemy 2.0 models with full type hints
"""

from datetime import datetime, UTC
from typing import Optional, Any
from enum import Enum
from decimal import Decimal

from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    Numeric,
    JSON,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ===========================
# ENUMS
# ===========================


class RiskLevel(str, Enum):
    """Opportunity risk level, ordered from safest"""

    LOW = "low"
    MEDIUM = "medium"
    MEDIUM_HIGH = "medium-high"
    HIGH = "high"

    @classmethod
    def rank(cls, value: Optional[str]) -> int:
        """Position on the risk ladder; unknown values sort last"""
        order = [member.value for member in cls]
        try:
            return order.index((value or "").lower())
        except ValueError:
            return len(order)


class RiskTolerance(str, Enum):
    """User risk tolerance"""

    CONSERVATIVE = "conservative"
    MODERATE_CONSERVATIVE = "moderate-conservative"
    MODERATE = "moderate"
    MODERATE_AGGRESSIVE = "moderate-aggressive"
    AGGRESSIVE = "aggressive"

    @classmethod
    def percentage(cls, value: Optional[str]) -> int:
        """Share of the portfolio the profile allows in risky positions"""
        return RISK_PERCENTAGES.get(value or "", 35)


RISK_PERCENTAGES = {
    RiskTolerance.CONSERVATIVE.value: 20,
    RiskTolerance.MODERATE_CONSERVATIVE.value: 35,
    RiskTolerance.MODERATE.value: 50,
    RiskTolerance.MODERATE_AGGRESSIVE.value: 70,
    RiskTolerance.AGGRESSIVE.value: 90,
}


class TransactionType(str, Enum):
    """Transaction log entry type"""

    INVEST = "invest"
    WITHDRAW = "withdraw"
    STAKE = "stake"
    UNSTAKE = "unstake"
    SWAP = "swap"
    SUBSCRIPTION = "subscription"


class TransactionStatus(str, Enum):
    """Transaction log entry status"""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# ===========================
# MODELS
# ===========================


class User(Base):
    """
    User model - one row per wallet address
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False, comment="Base58 Solana wallet address"
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Display name"
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Contact email"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        comment="Registration timestamp",
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Last signed wallet login"
    )

    # Relationships
    preferences = relationship(
        "UserPreference",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    positions = relationship(
        "UserPortfolio", back_populates="user", cascade="all, delete-orphan"
    )
    transactions = relationship(
        "Transaction", back_populates="user", cascade="all, delete-orphan"
    )
    subscriptions = relationship(
        "SolanaSubscription", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, wallet_address={self.wallet_address})>"


class UserPreference(Base):
    """
    Per-user investment preferences and notification settings
    """

    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        comment="User ID (one preference row per user)",
    )
    telegram_chat_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    telegram_username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    risk_tolerance: Mapped[str] = mapped_column(
        String(32), default=RiskTolerance.MODERATE.value, nullable=False
    )
    preferred_chains: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    preferred_tokens: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="preferences")

    def __repr__(self) -> str:
        return f"<UserPreference(user_id={self.user_id}, risk_tolerance={self.risk_tolerance})>"


class YieldOpportunity(Base):
    """
    Yield-bearing opportunity (LP pool, staking, lending market)

    Orchestration metadata (entry_token, pool_id, lp_token, farm_id) decides
    which stages of the investment workflow apply:
    - entry_token: token the source is swapped into (defaults to token_pair[0])
    - pool_id: AMM pool for the liquidity stage
    - farm_id: reward pool for the stake stage
    """

    __tablename__ = "yield_opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    protocol: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    apy: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    base_apy: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    reward_apy: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    risk_level: Mapped[str] = mapped_column(String(32), nullable=False)
    tvl: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(20, 2), nullable=True, comment="Total value locked, millions USD"
    )
    asset_type: Mapped[str] = mapped_column(String(64), nullable=False)
    token_pair: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    deposit_fee: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"), nullable=False)
    withdrawal_fee: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0"), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    link: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    entry_token: Mapped[Optional[str]] = mapped_column(
        String(16), nullable=True, comment="Swap target token (defaults to first of token_pair)"
    )
    pool_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="AMM pool id for the liquidity stage"
    )
    lp_token: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="Symbol of the LP share token"
    )
    farm_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="Reward pool id for the stake stage"
    )

    def __repr__(self) -> str:
        return f"<YieldOpportunity(id={self.id}, name='{self.name}', protocol={self.protocol})>"


class UserPortfolio(Base):
    """
    A position held by a user in one opportunity
    """

    __tablename__ = "user_portfolios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    opportunity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("yield_opportunities.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)
    deposit_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    token: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="Asset actually held (swap output, LP or staked receipt)"
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="positions")
    opportunity = relationship("YieldOpportunity")

    __table_args__ = (Index("ix_user_portfolios_user_active", "user_id", "active"),)

    def __repr__(self) -> str:
        return f"<UserPortfolio(id={self.id}, user_id={self.user_id}, amount={self.amount} {self.token})>"


class Transaction(Base):
    """
    Append-only transaction log entry
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    opportunity_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("yield_opportunities.id"), nullable=True
    )
    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)
    token: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        index=True,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(32), default=TransactionStatus.COMPLETED.value, nullable=False
    )
    transaction_hash: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True, comment="Last confirmed on-chain signature"
    )
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType, nullable=True, comment="Stage trail, AI metadata, etc."
    )

    user = relationship("User", back_populates="transactions")
    opportunity = relationship("YieldOpportunity")

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, type={self.transaction_type}, "
            f"amount={self.amount} {self.token}, status={self.status})>"
        )


class SolanaSubscription(Base):
    """
    One-time on-chain subscription payment that unlocks premium AI features
    """

    __tablename__ = "solana_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    subscription_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    transaction_hash: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, comment="Payment transaction signature"
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), default="USDC", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="subscriptions")

    def __repr__(self) -> str:
        return f"<SolanaSubscription(id={self.id}, user_id={self.user_id}, active={self.is_active})>"
