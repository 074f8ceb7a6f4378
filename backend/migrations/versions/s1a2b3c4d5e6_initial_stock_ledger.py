"""initial stock ledger

Revision ID: s1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the stock-flow schema from scratch:
- users: staff identities (admin, cashier) for attribution and role gating
- products: product master plus four cached stock buckets
- product_distributions: storage -> cashier batches with a forward-only workflow
- stock_adjustments: append-only ledger; the buckets are its running totals
- sales, sale_items: checkouts; each item links the sale adjustment that drew its units
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Create all tables with CHECK constraints on enums and counters.

    Bucket columns carry the same non-negative rule the ledger's conditional
    UPDATE enforces.
    """

    # ============================================================================
    # users: Staff identities
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("role IN ('admin', 'cashier')", name='ck_users_role'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    # ============================================================================
    # products: Product master + cached buckets
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('storage_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('distribution_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('returned_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rejected_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('storage_stock >= 0', name='ck_products_storage_nonneg'),
        sa.CheckConstraint('distribution_stock >= 0', name='ck_products_distribution_nonneg'),
        sa.CheckConstraint('returned_stock >= 0', name='ck_products_returned_nonneg'),
        sa.CheckConstraint('rejected_stock >= 0', name='ck_products_rejected_nonneg'),
        sa.CheckConstraint('price_cents >= 0', name='ck_products_price_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)
    op.create_index('ix_products_category_name', 'products', ['category', 'name'])

    # ============================================================================
    # product_distributions: storage -> cashier batches
    # ============================================================================
    op.create_table(
        'product_distributions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('distributed_by_user_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('distributed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['distributed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['completed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_product_distributions_qty_positive'),
        sa.CheckConstraint(
            "status IN ('pending', 'distributed', 'completed', 'cancelled')",
            name='ck_product_distributions_status'
        ),
        sa.CheckConstraint(
            'cashier_id <> distributed_by_user_id',
            name='ck_product_distributions_distinct_users'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_distributions_product_id', 'product_distributions', ['product_id'])
    op.create_index('ix_product_distributions_status', 'product_distributions', ['status'])
    op.create_index('ix_product_distributions_cashier_status', 'product_distributions',
                    ['cashier_id', 'status'])

    # ============================================================================
    # stock_adjustments: Append-only ledger
    # ============================================================================
    # quantity is always positive; direction comes from adjustment_type.
    # reversal_of_id is unique: an entry can be reversed at most once.
    op.create_table(
        'stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('adjustment_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('source_location', sa.String(length=16), nullable=False),
        sa.Column('target_location', sa.String(length=16), nullable=False),
        sa.Column('condition', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reversal_of_id', sa.Integer(), nullable=True),
        sa.Column('distribution_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['reversal_of_id'], ['stock_adjustments.id'], ),
        sa.ForeignKeyConstraint(['distribution_id'], ['product_distributions.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reversal_of_id'),
        sa.CheckConstraint('quantity > 0', name='ck_stock_adjustments_qty_positive'),
        sa.CheckConstraint(
            "adjustment_type IN ('production', 'distribution', 'return', 'reject', 'disposal', 'sale')",
            name='ck_stock_adjustments_type'
        ),
        sa.CheckConstraint(
            "source_location IN ('production', 'storage', 'cashier', 'customer', 'disposal')",
            name='ck_stock_adjustments_source'
        ),
        sa.CheckConstraint(
            "target_location IN ('production', 'storage', 'cashier', 'customer', 'disposal')",
            name='ck_stock_adjustments_target'
        ),
        sa.CheckConstraint(
            "condition IN ('good', 'damaged', 'expired', 'rejected')",
            name='ck_stock_adjustments_condition'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_adjustments_product_id', 'stock_adjustments', ['product_id'])
    op.create_index('ix_stock_adjustments_adjustment_type', 'stock_adjustments', ['adjustment_type'])
    op.create_index('ix_stock_adjustments_distribution_id', 'stock_adjustments', ['distribution_id'])
    op.create_index('ix_stock_adjustments_created_by_user_id', 'stock_adjustments', ['created_by_user_id'])
    op.create_index('ix_stock_adjustments_created_at', 'stock_adjustments', ['created_at'])
    op.create_index('ix_stock_adjustments_product_created', 'stock_adjustments',
                    ['product_id', 'created_at'])

    # ============================================================================
    # sales / sale_items: Checkouts drawing from distribution stock
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('completed', 'voided')", name='ck_sales_status'),
        sa.CheckConstraint(
            "payment_method IN ('cash', 'card', 'transfer')",
            name='ck_sales_payment_method'
        ),
        sa.CheckConstraint('subtotal_cents >= 0', name='ck_sales_subtotal_nonneg'),
        sa.CheckConstraint('tax_cents >= 0', name='ck_sales_tax_nonneg'),
        sa.CheckConstraint('total_cents = subtotal_cents + tax_cents', name='ck_sales_total'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_cashier_id', 'sales', ['cashier_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_cashier_created', 'sales', ['cashier_id', 'created_at'])

    # adjustment_id is unique: each sale adjustment belongs to exactly one item.
    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('adjustment_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['adjustment_id'], ['stock_adjustments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('adjustment_id'),
        sa.CheckConstraint('quantity > 0', name='ck_sale_items_qty_positive'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_sale_items_price_nonneg'),
        sa.CheckConstraint(
            'line_total_cents = quantity * unit_price_cents',
            name='ck_sale_items_line_total'
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_product_id', 'sale_items', ['product_id'])


def downgrade():
    op.drop_index('ix_sale_items_product_id', table_name='sale_items')
    op.drop_index('ix_sale_items_sale_id', table_name='sale_items')
    op.drop_table('sale_items')

    op.drop_index('ix_sales_cashier_created', table_name='sales')
    op.drop_index('ix_sales_created_at', table_name='sales')
    op.drop_index('ix_sales_status', table_name='sales')
    op.drop_index('ix_sales_cashier_id', table_name='sales')
    op.drop_table('sales')

    op.drop_index('ix_stock_adjustments_product_created', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_created_at', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_created_by_user_id', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_distribution_id', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_adjustment_type', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_product_id', table_name='stock_adjustments')
    op.drop_table('stock_adjustments')

    op.drop_index('ix_product_distributions_cashier_status', table_name='product_distributions')
    op.drop_index('ix_product_distributions_status', table_name='product_distributions')
    op.drop_index('ix_product_distributions_product_id', table_name='product_distributions')
    op.drop_table('product_distributions')

    op.drop_index('ix_products_category_name', table_name='products')
    op.drop_index('ix_products_sku', table_name='products')
    op.drop_table('products')

    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
