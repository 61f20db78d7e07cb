"""Initial schema: menu items, orders and per-day tracking sequences

Revision ID: 20251031_0001
Revises:
Create Date: 2025-10-31
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20251031_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'menu_items',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('image', sa.Text(), nullable=False),
        sa.Column('dietary', sa.JSON(), nullable=False),
        sa.Column('price_range_label', sa.String(length=50), nullable=False),
        sa.Column('featured', sa.Boolean(), nullable=False),
        sa.Column('seasonal', sa.Boolean(), nullable=False),
        sa.Column('available', sa.Boolean(), nullable=False),
        sa.CheckConstraint('price >= 0', name='check_menu_price_positive'),
    )
    op.create_index('ix_menu_items_name', 'menu_items', ['name'])
    op.create_index('ix_menu_items_category', 'menu_items', ['category'])
    op.create_index('idx_menu_category_available',
                    'menu_items', ['category', 'available'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True, nullable=False),
        sa.Column('tracking_id', sa.String(length=32), nullable=False),
        sa.Column('customer_name', sa.String(length=200), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=False),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('payment_reference', sa.String(length=255)),
        sa.Column('dispatch_ref', sa.String(length=255)),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('total_amount >= 0',
                           name='check_order_total_positive'),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'preparing', 'handed_off', 'delivered', 'cancelled')",
            name='check_valid_order_status'),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'refunded')",
            name='check_valid_payment_status'),
    )
    op.create_index('ix_orders_tracking_id', 'orders',
                    ['tracking_id'], unique=True)
    op.create_index('idx_order_status_created',
                    'orders', ['status', 'created_at'])

    op.create_table(
        'day_sequences',
        sa.Column('date', sa.String(length=8),
                  primary_key=True, nullable=False),
        sa.Column('counter', sa.Integer(), nullable=False,
                  server_default=sa.text('0')),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('length("date") = 8', name='ck_day_seq_date_len'),
        sa.CheckConstraint('counter >= 0', name='ck_day_seq_non_negative'),
    )


def downgrade() -> None:
    op.drop_table('day_sequences')
    op.drop_index('idx_order_status_created', table_name='orders')
    op.drop_index('ix_orders_tracking_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('idx_menu_category_available', table_name='menu_items')
    op.drop_index('ix_menu_items_category', table_name='menu_items')
    op.drop_index('ix_menu_items_name', table_name='menu_items')
    op.drop_table('menu_items')
