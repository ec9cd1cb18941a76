"""Initial schema: users, subscriptions, wills, processed_webhook_events

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('email', sa.String(320), unique=True, index=True),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('phone', sa.String(40)),
        sa.Column('role', sa.String(20), server_default='user', nullable=False),
        sa.Column('last_login_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column(
            'user_id',
            sa.Uuid,
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
            unique=True,
            index=True,
        ),

        # Stripe IDs
        sa.Column('stripe_customer_id', sa.String(255), unique=True, index=True),
        sa.Column('stripe_subscription_id', sa.String(255), unique=True, index=True),
        sa.Column('price_id', sa.String(255)),

        sa.Column('plan', sa.String(20), server_default='essential', nullable=False),
        sa.Column('status', sa.String(20), server_default='inactive', nullable=False),

        # Billing period dates
        sa.Column('current_period_start', sa.DateTime),
        sa.Column('current_period_end', sa.DateTime),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('canceled_at', sa.DateTime),

        # Payment history
        sa.Column('last_payment_date', sa.DateTime),
        sa.Column('last_failed_payment', sa.DateTime),
        sa.Column('last_event_at', sa.DateTime),

        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'wills',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column(
            'owner_id',
            sa.Uuid,
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
            index=True,
        ),
        sa.Column('status', sa.String(20), server_default='draft', nullable=False),
        sa.Column('state_compliance', sa.String(2), nullable=False),
        sa.Column('sections', sa.JSON, nullable=False),
        sa.Column('progress', sa.JSON, nullable=False),
        sa.Column('documents', sa.JSON, nullable=False),
        sa.Column('photos', sa.JSON, nullable=False),
        sa.Column('version', sa.Integer, server_default='1', nullable=False),
        sa.Column('executed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    # Dashboard listing: owner's wills by recency
    op.create_index('ix_wills_owner_updated', 'wills', ['owner_id', 'updated_at'])

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('processed_at', sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_processed_webhook_events_processed_at', table_name='processed_webhook_events')
    op.drop_table('processed_webhook_events')
    op.drop_index('ix_wills_owner_updated', table_name='wills')
    op.drop_table('wills')
    op.drop_table('subscriptions')
    op.drop_table('users')
