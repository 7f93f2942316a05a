"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create subscription, plan catalog and token audit tables."""

    # ========================================================================
    # Create subscription_plans table
    # ========================================================================
    op.create_table(
        'subscription_plans',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('interval', sa.String(20), nullable=False),
        sa.Column('tokens_per_period', sa.BigInteger(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('price >= 0', name='ck_plan_price_non_negative'),
        sa.CheckConstraint('tokens_per_period >= 0', name='ck_plan_tokens_non_negative'),
        sa.CheckConstraint("interval IN ('month', '6months', 'year')", name='ck_plan_interval'),
    )

    op.create_index('idx_subscription_plans_active_price', 'subscription_plans', ['is_active', 'price'])

    # ========================================================================
    # Create subscriptions table
    # ========================================================================
    op.create_table(
        'subscriptions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('plan_type', sa.String(20), nullable=False, server_default='free'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('tokens_limit', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('tokens_used', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('tokens_limit >= 0', name='ck_tokens_limit_non_negative'),
        sa.CheckConstraint('tokens_used >= 0', name='ck_tokens_used_non_negative'),
        sa.CheckConstraint(
            "plan_type IN ('free', 'monthly', 'sixMonth', 'annual')", name='ck_subscription_plan_type'
        ),
        sa.CheckConstraint("status IN ('active', 'cancelled')", name='ck_subscription_status'),
        sa.UniqueConstraint('user_id', name='uq_subscriptions_user_id'),
    )

    op.create_index('idx_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('idx_subscriptions_period_end', 'subscriptions', ['current_period_end'])

    # ========================================================================
    # Create token_transactions table
    # ========================================================================
    op.create_table(
        'token_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint("type IN ('deduct', 'grant', 'reset')", name='ck_token_transaction_type'),
    )

    op.create_index(
        'idx_token_transactions_user_created', 'token_transactions', ['user_id', 'created_at']
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('token_transactions')
    op.drop_table('subscriptions')
    op.drop_table('subscription_plans')
