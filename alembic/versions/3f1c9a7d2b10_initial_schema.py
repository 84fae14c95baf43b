"""initial_schema

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_address', sa.String(length=64), nullable=False, comment='Base58 Solana wallet address'),
        sa.Column('username', sa.String(length=255), nullable=True, comment='Display name'),
        sa.Column('email', sa.String(length=255), nullable=True, comment='Contact email'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Registration timestamp'),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True, comment='Last signed wallet login'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_wallet_address'), 'users', ['wallet_address'], unique=True)

    op.create_table(
        'user_preferences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='User ID (one preference row per user)'),
        sa.Column('telegram_chat_id', sa.String(length=64), nullable=True),
        sa.Column('telegram_username', sa.String(length=255), nullable=True),
        sa.Column('risk_tolerance', sa.String(length=32), nullable=False),
        sa.Column('preferred_chains', JSONType, nullable=False),
        sa.Column('preferred_tokens', JSONType, nullable=False),
        sa.Column('notifications_enabled', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table(
        'yield_opportunities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('protocol', sa.String(length=64), nullable=False),
        sa.Column('apy', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('base_apy', sa.Numeric(precision=6, scale=2), nullable=True),
        sa.Column('reward_apy', sa.Numeric(precision=6, scale=2), nullable=True),
        sa.Column('risk_level', sa.String(length=32), nullable=False),
        sa.Column('tvl', sa.Numeric(precision=20, scale=2), nullable=True, comment='Total value locked, millions USD'),
        sa.Column('asset_type', sa.String(length=64), nullable=False),
        sa.Column('token_pair', JSONType, nullable=False),
        sa.Column('deposit_fee', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('withdrawal_fee', sa.Numeric(precision=6, scale=2), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.Column('link', sa.String(length=512), nullable=True),
        sa.Column('entry_token', sa.String(length=16), nullable=True, comment='Swap target token (defaults to first of token_pair)'),
        sa.Column('pool_id', sa.String(length=64), nullable=True, comment='AMM pool id for the liquidity stage'),
        sa.Column('lp_token', sa.String(length=64), nullable=True, comment='Symbol of the LP share token'),
        sa.Column('farm_id', sa.String(length=64), nullable=True, comment='Reward pool id for the stake stage'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_yield_opportunities_protocol'), 'yield_opportunities', ['protocol'], unique=False)

    op.create_table(
        'user_portfolios',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('opportunity_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=9), nullable=False),
        sa.Column('deposit_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False, comment='Asset actually held (swap output, LP or staked receipt)'),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['opportunity_id'], ['yield_opportunities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_user_portfolios_user_id'), 'user_portfolios', ['user_id'], unique=False)
    op.create_index('ix_user_portfolios_user_active', 'user_portfolios', ['user_id', 'active'], unique=False)

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('opportunity_id', sa.Integer(), nullable=True),
        sa.Column('transaction_type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=9), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('transaction_hash', sa.String(length=128), nullable=True, comment='Last confirmed on-chain signature'),
        sa.Column('details', JSONType, nullable=True, comment='Stage trail, AI metadata, etc.'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['opportunity_id'], ['yield_opportunities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_transactions_transaction_date'), 'transactions', ['transaction_date'], unique=False)

    op.create_table(
        'solana_subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('subscription_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transaction_hash', sa.String(length=128), nullable=False, comment='Payment transaction signature'),
        sa.Column('amount', sa.Numeric(precision=20, scale=9), nullable=False),
        sa.Column('currency', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_hash'),
    )
    op.create_index(op.f('ix_solana_subscriptions_user_id'), 'solana_subscriptions', ['user_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_solana_subscriptions_user_id'), table_name='solana_subscriptions')
    op.drop_table('solana_subscriptions')
    op.drop_index(op.f('ix_transactions_transaction_date'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_user_id'), table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_user_portfolios_user_active', table_name='user_portfolios')
    op.drop_index(op.f('ix_user_portfolios_user_id'), table_name='user_portfolios')
    op.drop_table('user_portfolios')
    op.drop_index(op.f('ix_yield_opportunities_protocol'), table_name='yield_opportunities')
    op.drop_table('yield_opportunities')
    op.drop_table('user_preferences')
    op.drop_index(op.f('ix_users_wallet_address'), table_name='users')
    op.drop_table('users')
