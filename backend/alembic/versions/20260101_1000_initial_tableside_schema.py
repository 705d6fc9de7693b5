"""Initial tableside schema

Revision ID: 20260101_1000
Revises:
Create Date: 2026-01-01 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20260101_1000'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table('restaurants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('payment_gateway_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_provider', sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_restaurants_slug', 'restaurants', ['slug'], unique=True)

    op.create_table('tables',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('table_number', sa.String(length=20), nullable=False),
        sa.Column('table_name', sa.String(length=100), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='available'),
        sa.Column('booked_at', sa.DateTime(), nullable=True),
        sa.Column('active_session_id', sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_id', 'table_number', name='uq_restaurant_table_number'),
    )
    op.create_index('ix_tables_restaurant_id', 'tables', ['restaurant_id'])

    op.create_table('table_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('table_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False),
        sa.Column('closed_reason', sa.String(length=50), nullable=True),
        sa.Column('cart_items', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['table_id'], ['tables.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_table_sessions_restaurant_id', 'table_sessions', ['restaurant_id'])
    op.create_index('ix_table_sessions_table_id', 'table_sessions', ['table_id'])
    # One active session per table
    op.create_index(
        'uq_table_sessions_active_table', 'table_sessions', ['table_id'],
        unique=True, postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table('orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.Integer(), nullable=False),
        sa.Column('order_token', sa.String(length=64), nullable=False),
        sa.Column('order_type', sa.String(length=20), nullable=False, server_default='dine_in'),
        sa.Column('table_id', sa.Integer(), nullable=True),
        sa.Column('table_number', sa.String(length=20), nullable=True),
        sa.Column('session_id', sa.String(length=36), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('special_instructions', sa.Text(), nullable=True),
        sa.Column('customer_name', sa.String(length=200), nullable=True),
        sa.Column('customer_phone', sa.String(length=20), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('discount_type', sa.String(length=20), nullable=True),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=True),
        sa.Column('discount_reason', sa.Text(), nullable=True),
        sa.Column('tax', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=30), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=20), nullable=True),
        sa.Column('payment_split_details', sa.JSON(), nullable=True),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('order_status', sa.String(length=30), nullable=False, server_default='pending_payment'),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['table_id'], ['tables.id']),
        sa.ForeignKeyConstraint(['session_id'], ['table_sessions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_id', 'order_number', name='uq_orders_restaurant_order_number'),
        sa.CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('discount_amount >= 0', name='ck_orders_discount_non_negative'),
        sa.CheckConstraint('tax >= 0', name='ck_orders_tax_non_negative'),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
        sa.CheckConstraint('refund_amount >= 0', name='ck_orders_refund_non_negative'),
    )
    op.create_index('ix_orders_restaurant_id', 'orders', ['restaurant_id'])
    op.create_index('ix_orders_order_token', 'orders', ['order_token'], unique=True)
    op.create_index('ix_orders_table_id', 'orders', ['table_id'])
    op.create_index('ix_orders_session_id', 'orders', ['session_id'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_order_status', 'orders', ['order_status'])
    op.create_index('ix_orders_restaurant_status', 'orders', ['restaurant_id', 'order_status'])

    op.create_table('order_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.String(length=100), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('provider_order_ref', sa.String(length=255), nullable=True),
        sa.Column('provider_payment_id', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='captured'),
        sa.Column('is_split', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refund_method', sa.String(length=20), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'provider_payment_id', name='uq_order_payments_provider_payment'),
        sa.CheckConstraint('amount > 0', name='ck_order_payments_amount_positive'),
        sa.CheckConstraint('refund_amount >= 0 AND refund_amount <= amount',
                           name='ck_order_payments_refund_within_amount'),
    )
    op.create_index('ix_order_payments_id', 'order_payments', ['id'])
    op.create_index('ix_order_payments_payment_id', 'order_payments', ['payment_id'], unique=True)
    op.create_index('ix_order_payments_order_id', 'order_payments', ['order_id'])
    op.create_index('ix_order_payments_restaurant_id', 'order_payments', ['restaurant_id'])
    op.create_index('idx_order_payments_order_created', 'order_payments', ['order_id', 'created_at'])

    op.create_table('payment_gateway_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_test_mode', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('config', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('restaurant_id', 'provider', name='uq_gateway_config_restaurant_provider'),
    )
    op.create_index('ix_payment_gateway_configs_id', 'payment_gateway_configs', ['id'])
    op.create_index('ix_payment_gateway_configs_restaurant_id', 'payment_gateway_configs', ['restaurant_id'])

    op.create_table('complaints',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('restaurant_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('table_id', sa.Integer(), nullable=True),
        sa.Column('table_number', sa.String(length=20), nullable=True),
        sa.Column('issue_type', sa.String(length=30), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('priority', sa.String(length=10), nullable=False, server_default='medium'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        sa.Column('action_taken', sa.Text(), nullable=True),
        sa.Column('reported_by', sa.String(length=100), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['restaurant_id'], ['restaurants.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['table_id'], ['tables.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )
    op.create_index('ix_complaints_id', 'complaints', ['id'])
    op.create_index('ix_complaints_restaurant_id', 'complaints', ['restaurant_id'])
    op.create_index('idx_complaints_restaurant_status', 'complaints', ['restaurant_id', 'status'])
    op.create_index('idx_complaints_restaurant_created', 'complaints', ['restaurant_id', 'created_at'])


def downgrade():
    op.drop_table('complaints')
    op.drop_table('payment_gateway_configs')
    op.drop_table('order_payments')
    op.drop_table('orders')
    op.drop_index('uq_table_sessions_active_table', table_name='table_sessions')
    op.drop_table('table_sessions')
    op.drop_table('tables')
    op.drop_table('restaurants')
