"""users, billing records and collections

Revision ID: 0f3c2a9d1e01
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0f3c2a9d1e01'
down_revision = None
branch_labels = None
depends_on = None

_TS = postgresql.TIMESTAMP(timezone=True)


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('updated_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('deleted_at', _TS, nullable=True),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )

    op.create_table(
        'billing_customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('updated_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('deleted_at', _TS, nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete="RESTRICT"),
    )
    op.create_index('ix_billing_customers_user_id', 'billing_customers', ['user_id'])
    op.create_index('ix_billing_customers_customer_id', 'billing_customers', ['customer_id'], unique=True)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('subscription_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default=sa.text("'not_started'")),
        sa.Column('price_id', sa.String(length=64), nullable=True),
        sa.Column('current_period_start', sa.BigInteger(), nullable=True),
        sa.Column('current_period_end', sa.BigInteger(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column('payment_method_brand', sa.String(length=32), nullable=True),
        sa.Column('payment_method_last4', sa.String(length=4), nullable=True),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('updated_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('deleted_at', _TS, nullable=True),
    )
    op.create_index('ix_subscriptions_customer_id', 'subscriptions', ['customer_id'], unique=True)
    op.create_index('ix_subscriptions_subscription_id', 'subscriptions', ['subscription_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('ix_subscriptions_current_period_end', 'subscriptions', ['current_period_end'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('checkout_session_id', sa.String(length=255), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('amount_subtotal', sa.BigInteger(), nullable=True),
        sa.Column('amount_total', sa.BigInteger(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('payment_status', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default=sa.text("'completed'")),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('deleted_at', _TS, nullable=True),
    )
    op.create_index('ix_orders_checkout_session_id', 'orders', ['checkout_session_id'], unique=True)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])

    op.create_table(
        'billing_event_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=80), nullable=False),
        sa.Column('signature_valid', sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('retries', sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('processed_at', _TS, nullable=True),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.text("now()")),
    )
    op.create_index('ix_billing_event_logs_stripe_event_id', 'billing_event_logs', ['stripe_event_id'], unique=True)
    op.create_index('ix_billing_event_logs_type', 'billing_event_logs', ['type'])

    op.create_table(
        'audio_files',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('artist', sa.String(length=255), nullable=True),
        sa.Column('duration', sa.Float(), nullable=True),
        sa.Column('storage_path', sa.String(length=512), nullable=False),
        sa.Column('file_url', sa.String(length=1024), nullable=True),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete="CASCADE"),
    )
    op.create_index('ix_audio_files_user_id', 'audio_files', ['user_id'])

    op.create_table(
        'collections',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column('created_at', _TS, nullable=False, server_default=sa.text("now()")),
        sa.Column('deleted_at', _TS, nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete="CASCADE"),
    )
    op.create_index('ix_collections_user_id', 'collections', ['user_id'])

    op.create_table(
        'collection_tracks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('collection_id', sa.String(length=36), nullable=False),
        sa.Column('audio_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(['collection_id'], ['collections.id'], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(['audio_id'], ['audio_files.id'], ondelete="CASCADE"),
        sa.UniqueConstraint('collection_id', 'audio_id', name='uq_collection_tracks_collection_audio'),
    )
    op.create_index('ix_collection_tracks_collection_id', 'collection_tracks', ['collection_id'])


def downgrade():
    op.drop_index('ix_collection_tracks_collection_id', table_name='collection_tracks')
    op.drop_table('collection_tracks')

    op.drop_index('ix_collections_user_id', table_name='collections')
    op.drop_table('collections')

    op.drop_index('ix_audio_files_user_id', table_name='audio_files')
    op.drop_table('audio_files')

    op.drop_index('ix_billing_event_logs_type', table_name='billing_event_logs')
    op.drop_index('ix_billing_event_logs_stripe_event_id', table_name='billing_event_logs')
    op.drop_table('billing_event_logs')

    op.drop_index('ix_orders_customer_id', table_name='orders')
    op.drop_index('ix_orders_checkout_session_id', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_subscriptions_current_period_end', table_name='subscriptions')
    op.drop_index('ix_subscriptions_status', table_name='subscriptions')
    op.drop_index('ix_subscriptions_subscription_id', table_name='subscriptions')
    op.drop_index('ix_subscriptions_customer_id', table_name='subscriptions')
    op.drop_table('subscriptions')

    op.drop_index('ix_billing_customers_customer_id', table_name='billing_customers')
    op.drop_index('ix_billing_customers_user_id', table_name='billing_customers')
    op.drop_table('billing_customers')

    op.drop_table('users')
