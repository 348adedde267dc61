"""
Alembic migration: Initial order lifecycle schema.

Creates the product catalog rows used by checkout, carts and cart items,
orders with their line items and payment, and the ledger of reconciled
payment gateway events.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = ('pending', 'processing', 'shipped', 'delivered', 'cancelled', 'refunded')
PAYMENT_STATUSES = ('pending', 'completed', 'failed', 'refunded')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  comment='Timestamp when record was created'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  comment='Timestamp when record was last updated'),
    ]


def upgrade() -> None:
    """
    Upgrade database schema to the initial order lifecycle tables.

    Monetary columns are NUMERIC(10, 2); check constraints keep stock,
    quantities and amounts non-negative.
    """
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False, comment='Product display name'),
        sa.Column('description', sa.String(2000), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, comment='Current unit price'),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0',
                  comment='Units available for sale'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
    )

    op.create_table(
        'carts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False, comment='Owning user identifier'),
        *_timestamps(),
    )
    op.create_index('ix_carts_user_id', 'carts', ['user_id'], unique=True)

    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('cart_id', sa.Integer(), sa.ForeignKey('carts.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='Requested units (1-100)'),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False,
                  comment='Unit price captured when the item was added'),
        *_timestamps(),
        sa.UniqueConstraint('cart_id', 'product_id', name='uq_cart_items_cart_product'),
        sa.CheckConstraint('quantity >= 1 AND quantity <= 100',
                           name='ck_cart_items_quantity_range'),
        sa.CheckConstraint('unit_price >= 0', name='ck_cart_items_price_non_negative'),
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])
    op.create_index('ix_cart_items_product_id', 'cart_items', ['product_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_number', sa.String(32), nullable=False,
                  comment='Human-readable order number, ORD-YYYYMMDD-NNNN'),
        sa.Column('user_id', sa.String(64), nullable=False, comment='Owning user identifier'),
        sa.Column('status', sa.Enum(*ORDER_STATUSES, name='order_status', create_constraint=True),
                  nullable=False, comment='Current order status'),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('shipping_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('shipping_street', sa.String(200), nullable=False),
        sa.Column('shipping_city', sa.String(100), nullable=False),
        sa.Column('shipping_province', sa.String(100), nullable=False),
        sa.Column('shipping_postal_code', sa.String(20), nullable=False),
        sa.Column('shipping_country', sa.String(100), nullable=False),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('notes', sa.String(1000), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('tax_amount >= 0', name='ck_orders_tax_non_negative'),
        sa.CheckConstraint('shipping_amount >= 0', name='ck_orders_shipping_non_negative'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False,
                  comment='Catalog product identifier (not a foreign key)'),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_order_items_price_non_negative'),
        sa.CheckConstraint('discount >= 0', name='ck_order_items_discount_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=False,
                  comment='Gateway payment intent identifier'),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status',
                  sa.Enum(*PAYMENT_STATUSES, name='payment_status', create_constraint=True),
                  nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=False),
        sa.Column('failure_reason', sa.String(500), nullable=True),
        sa.Column('refunded_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_payments_amount_non_negative'),
    )
    op.create_index('ix_payments_payment_intent_id', 'payments', ['payment_intent_id'])

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True,
                  comment='Gateway event identifier'),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('payment_intent_id', sa.String(255), nullable=True,
                  comment='Payment intent the event refers to'),
        sa.Column('outcome', sa.String(50), nullable=False,
                  comment='applied, unchanged, ignored, dropped or deferred'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_processed_webhook_events_order_id', 'processed_webhook_events',
                    ['order_id'])
    op.create_index('ix_processed_webhook_events_payment_intent_id', 'processed_webhook_events',
                    ['payment_intent_id'])


def downgrade() -> None:
    """Drop every table created by this revision, children first."""
    op.drop_table('processed_webhook_events')
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_table('products')

    sa.Enum(name='payment_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='order_status').drop(op.get_bind(), checkfirst=True)
