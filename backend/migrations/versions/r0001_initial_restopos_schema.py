"""initial restopos schema

Revision ID: r0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the order engine schema from scratch:
- branches: tenant scope (timezone decides the business day)
- users / session_tokens: staff accounts and hashed bearer tokens
- products: menu catalog with the guarded stock counter
- dining_tables: 1:1 occupancy with the active order
- orders / order_items / order_item_attributes: order aggregate
- order_sequences: per-day order number counter
- payment_transactions: SALE / VOID money movements
- inventory_logs: append-only stock change log
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'r0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # branches
    # ============================================================================
    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_branches'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_branches_code', 'branches', ['code'], unique=True)
    op.create_index('ix_branches_is_active', 'branches', ['is_active'])

    # ============================================================================
    # users / session_tokens
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='cashier'),
        sa.Column('can_void', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_users_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_branch_id', 'users', ['branch_id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_branch_role', 'users', ['branch_id', 'role'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_session_tokens_user_id_users'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_session_tokens_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_session_tokens'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_branch_id', 'session_tokens', ['branch_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # products: stock is only changed by conditional UPDATEs; CHECK is the backstop
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False, server_default='General'),
        sa.Column('price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_stock', sa.Integer(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_products_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('branch_id', 'sku', name='uq_products_branch_sku'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_branch_id', 'products', ['branch_id'])
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_products_branch_active', 'products', ['branch_id', 'is_active'])

    # ============================================================================
    # dining_tables: current_order_id is a plain column (no FK cycle with orders)
    # ============================================================================
    op.create_table(
        'dining_tables',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Available'),
        sa.Column('current_order_id', sa.Integer(), nullable=True),
        sa.Column('reserved_name', sa.String(length=100), nullable=True),
        sa.Column('reserved_whatsapp', sa.String(length=32), nullable=True),
        sa.Column('reserved_pax', sa.Integer(), nullable=True),
        sa.Column('reservation_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_dining_tables_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_dining_tables'),
        sa.UniqueConstraint('branch_id', 'number', name='uq_dining_tables_branch_number'),
        sa.CheckConstraint('capacity >= 1', name='ck_dining_tables_capacity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_dining_tables_branch_id', 'dining_tables', ['branch_id'])
    op.create_index('ix_dining_tables_status', 'dining_tables', ['status'])
    op.create_index('ix_dining_tables_current_order_id', 'dining_tables', ['current_order_id'])

    # ============================================================================
    # orders aggregate
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('order_source', sa.String(length=8), nullable=False, server_default='POS'),
        sa.Column('table_id', sa.Integer(), nullable=True),
        sa.Column('table_number', sa.String(length=16), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('guest_name', sa.String(length=100), nullable=True),
        sa.Column('guest_whatsapp', sa.String(length=32), nullable=True),
        sa.Column('guest_pax', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('subtotal', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('service_charge', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_orders_branch_id_branches'),
        sa.ForeignKeyConstraint(['table_id'], ['dining_tables.id'], name='fk_orders_table_id_dining_tables'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_orders_user_id_users'),
        sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id'], name='fk_orders_voided_by_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sa.CheckConstraint('total = subtotal - discount + tax + service_charge',
                           name='ck_orders_total_arithmetic'),
        sa.CheckConstraint('subtotal >= 0 AND discount >= 0 AND tax >= 0 AND service_charge >= 0',
                           name='ck_orders_amounts_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_branch_id', 'orders', ['branch_id'])
    op.create_index('ix_orders_table_id', 'orders', ['table_id'])
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_branch_status_created', 'orders', ['branch_id', 'status', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('price_at_moment', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=200), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order_id_orders',
                                ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_order_items_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.UniqueConstraint('order_id', 'line_no', name='uq_order_items_order_line'),
        sa.CheckConstraint('qty >= 1', name='ck_order_items_qty_positive'),
        sa.CheckConstraint('price_at_moment >= 0', name='ck_order_items_price_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'order_item_attributes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('selected', sa.String(length=64), nullable=False),
        sa.Column('price_modifier', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'],
                                name='fk_order_item_attributes_order_item_id_order_items',
                                ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_order_item_attributes'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_item_attributes_order_item_id', 'order_item_attributes', ['order_item_id'])

    # ============================================================================
    # order_sequences: one counter row per business day, shared by all branches
    # ============================================================================
    op.create_table(
        'order_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name='pk_order_sequences'),
        sa.UniqueConstraint('business_date', name='uq_order_sequences_business_date'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # payment_transactions
    # ============================================================================
    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('service_charge', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'],
                                name='fk_payment_transactions_branch_id_branches'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_payment_transactions_order_id_orders'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_payment_transactions_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_payment_transactions'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payment_transactions_branch_id', 'payment_transactions', ['branch_id'])
    op.create_index('ix_payment_transactions_order_id', 'payment_transactions', ['order_id'])
    op.create_index('ix_payment_transactions_transaction_type', 'payment_transactions', ['transaction_type'])
    op.create_index('ix_payment_transactions_branch_created', 'payment_transactions',
                    ['branch_id', 'created_at'])

    # ============================================================================
    # inventory_logs: append-only; qty_after = qty_before + qty_change
    # ============================================================================
    op.create_table(
        'inventory_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=100), nullable=False),
        sa.Column('qty_change', sa.Integer(), nullable=False),
        sa.Column('qty_before', sa.Integer(), nullable=False),
        sa.Column('qty_after', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=16), nullable=False),
        sa.Column('reference_order_id', sa.Integer(), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_inventory_logs_branch_id_branches'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_inventory_logs_product_id_products'),
        sa.ForeignKeyConstraint(['reference_order_id'], ['orders.id'],
                                name='fk_inventory_logs_reference_order_id_orders'),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], name='fk_inventory_logs_actor_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_logs'),
        sa.CheckConstraint('qty_after = qty_before + qty_change', name='ck_inventory_logs_arithmetic'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_logs_branch_id', 'inventory_logs', ['branch_id'])
    op.create_index('ix_inventory_logs_product_id', 'inventory_logs', ['product_id'])
    op.create_index('ix_inventory_logs_reason', 'inventory_logs', ['reason'])
    op.create_index('ix_inventory_logs_reference_order_id', 'inventory_logs', ['reference_order_id'])
    op.create_index('ix_inventory_logs_created_at', 'inventory_logs', ['created_at'])
    op.create_index('ix_inventory_logs_product_created', 'inventory_logs', ['product_id', 'created_at'])
    op.create_index('ix_inventory_logs_branch_reason', 'inventory_logs', ['branch_id', 'reason'])


def downgrade():
    for table in (
        'inventory_logs',
        'payment_transactions',
        'order_sequences',
        'order_item_attributes',
        'order_items',
        'orders',
        'dining_tables',
        'products',
        'session_tokens',
        'users',
        'branches',
    ):
        op.drop_table(table)
