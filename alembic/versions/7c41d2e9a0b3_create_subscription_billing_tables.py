"""create_subscription_billing_tables

Revision ID: 7c41d2e9a0b3
Revises: 
Create Date: 2026-10-19 09:12:44.508211

Production-safe migration: only creates tables that do not exist yet.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '7c41d2e9a0b3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    """Create tenants, subscription_plans and subscription_events."""
    if not table_exists('tenants'):
        op.create_table('tenants',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('auth_user_id', sa.String(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('first_name', sa.String(), nullable=True),
            sa.Column('last_name', sa.String(), nullable=True),
            sa.Column('stripe_customer_id', sa.String(), nullable=True),
            sa.Column('subscription_id', sa.String(), nullable=True),
            sa.Column('subscription_status', sa.String(), nullable=True),
            sa.Column('subscription_plan', sa.String(), nullable=True),
            sa.Column('subscription_current_period_end', sa.DateTime(), nullable=True),
            sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
            sa.Column('subscription_started_at', sa.DateTime(), nullable=True),
            sa.Column('subscription_ends_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_tenants_id'), 'tenants', ['id'], unique=False)
        op.create_index(op.f('ix_tenants_auth_user_id'), 'tenants', ['auth_user_id'], unique=True)
        op.create_index(op.f('ix_tenants_email'), 'tenants', ['email'], unique=True)
        op.create_index(op.f('ix_tenants_stripe_customer_id'), 'tenants', ['stripe_customer_id'], unique=False)
        op.create_index(op.f('ix_tenants_subscription_id'), 'tenants', ['subscription_id'], unique=False)

    if not table_exists('subscription_plans'):
        op.create_table('subscription_plans',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(), nullable=False),
            sa.Column('display_name', sa.String(), nullable=False),
            sa.Column('stripe_price_id', sa.String(), nullable=False),
            sa.Column('price_monthly', sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False),
            sa.Column('features', sa.JSON(), nullable=False),
            sa.Column('max_clients', sa.Integer(), nullable=True),
            sa.Column('max_meal_plans', sa.Integer(), nullable=True),
            sa.Column('ai_generations_per_month', sa.Integer(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.Column('sort_order', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name')
        )
        op.create_index(op.f('ix_subscription_plans_id'), 'subscription_plans', ['id'], unique=False)
        op.create_index(op.f('ix_subscription_plans_stripe_price_id'), 'subscription_plans', ['stripe_price_id'], unique=True)

    if not table_exists('subscription_events'):
        op.create_table('subscription_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('tenant_id', sa.Integer(), nullable=False),
            sa.Column('event_type', sa.String(), nullable=False),
            sa.Column('stripe_event_id', sa.String(), nullable=True),
            sa.Column('stripe_subscription_id', sa.String(), nullable=True),
            sa.Column('previous_status', sa.String(), nullable=True),
            sa.Column('new_status', sa.String(), nullable=True),
            sa.Column('previous_plan', sa.String(), nullable=True),
            sa.Column('new_plan', sa.String(), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_subscription_events_id'), 'subscription_events', ['id'], unique=False)
        op.create_index(op.f('ix_subscription_events_tenant_id'), 'subscription_events', ['tenant_id'], unique=False)
        op.create_index(op.f('ix_subscription_events_event_type'), 'subscription_events', ['event_type'], unique=False)
        op.create_index(op.f('ix_subscription_events_stripe_subscription_id'), 'subscription_events', ['stripe_subscription_id'], unique=False)


def downgrade() -> None:
    """Drop the billing tables in dependency order."""
    op.drop_table('subscription_events')
    op.drop_table('subscription_plans')
    op.drop_table('tenants')
