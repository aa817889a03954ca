"""initial inventory schema

Revision ID: fg0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the complete frozen-goods inventory schema:
- products: Product master with on-hand quantity (never negative)
- ledger_entries: Append-only inventory ledger
- sales: Payment tracking rows for sale ledger entries
- reservations: Stock held against pending orders
- reorder_settings / reorder_draft_items: Active reorder cycle
- reorder_snapshots / reorder_snapshot_items: Saved reorder lists
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'fg0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products: Product master + on-hand stock
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('distributor_price_cents', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('image_url', sa.String(length=1024), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_products_active_name', 'products', ['is_active', 'name'])

    # ============================================================================
    # ledger_entries: Append-only (ORM listeners reject UPDATE/DELETE)
    # ============================================================================
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.String(length=128), nullable=False),
        sa.Column('actor_name', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reservation_id', sa.Integer(), nullable=True),
        sa.Column('compensates_entry_id', sa.Integer(), nullable=True),
        sa.Column('unit_price_cents', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['compensates_entry_id'], ['ledger_entries.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_entries_entry_type', 'ledger_entries', ['entry_type'])
    op.create_index('ix_ledger_entries_product_id', 'ledger_entries', ['product_id'])
    op.create_index('ix_ledger_entries_actor_id', 'ledger_entries', ['actor_id'])
    op.create_index('ix_ledger_entries_occurred_at', 'ledger_entries', ['occurred_at'])
    op.create_index('ix_ledger_entries_reservation_id', 'ledger_entries', ['reservation_id'])
    op.create_index('ix_ledger_entries_compensates_entry_id', 'ledger_entries', ['compensates_entry_id'])
    op.create_index('ix_ledger_entries_payment_method', 'ledger_entries', ['payment_method'])
    op.create_index('ix_ledger_product_occurred', 'ledger_entries', ['product_id', 'occurred_at'])
    op.create_index('ix_ledger_type_occurred', 'ledger_entries', ['entry_type', 'occurred_at'])

    # ============================================================================
    # sales: mutable payment state for an immutable sale entry
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ledger_entry_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='paid'),
        sa.Column('original_amount_cents', sa.Integer(), nullable=True),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reservation_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('actor_id', sa.String(length=128), nullable=False),
        sa.Column('actor_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by_id', sa.String(length=128), nullable=True),
        sa.Column('restored_stock', sa.Boolean(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['ledger_entry_id'], ['ledger_entries.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ledger_entry_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_product_id', 'sales', ['product_id'])
    op.create_index('ix_sales_payment_method', 'sales', ['payment_method'])
    op.create_index('ix_sales_payment_status', 'sales', ['payment_status'])
    op.create_index('ix_sales_reservation_id', 'sales', ['reservation_id'])
    op.create_index('ix_sales_status_created', 'sales', ['payment_status', 'created_at'])

    # ============================================================================
    # reservations: held -> converted | released
    # ============================================================================
    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='held'),
        sa.Column('hold_entry_id', sa.Integer(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.String(length=128), nullable=False),
        sa.Column('actor_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity > 0', name='ck_reservations_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['hold_entry_id'], ['ledger_entries.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reservations_product_id', 'reservations', ['product_id'])
    op.create_index('ix_reservations_status', 'reservations', ['status'])
    op.create_index('ix_reservations_status_created', 'reservations', ['status', 'created_at'])

    # ============================================================================
    # reorder planner
    # ============================================================================
    op.create_table(
        'reorder_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('max_total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('undo_snapshot_json', sa.JSON(), nullable=True),
        sa.Column('updated_by_id', sa.String(length=128), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'reorder_draft_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity > 0', name='ck_reorder_draft_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reorder_draft_items_product_id', 'reorder_draft_items', ['product_id'])

    op.create_table(
        'reorder_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('cap_at_save_time_cents', sa.Integer(), nullable=False),
        sa.Column('created_by_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reorder_snapshots_created', 'reorder_snapshots', ['created_at'])

    op.create_table(
        'reorder_snapshot_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('snapshot_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_reorder_snapshot_item_quantity_positive'),
        sa.ForeignKeyConstraint(['snapshot_id'], ['reorder_snapshots.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reorder_snapshot_items_snapshot_id', 'reorder_snapshot_items', ['snapshot_id'])


def downgrade():
    op.drop_table('reorder_snapshot_items')
    op.drop_table('reorder_snapshots')
    op.drop_table('reorder_draft_items')
    op.drop_table('reorder_settings')
    op.drop_table('reservations')
    op.drop_table('sales')
    op.drop_table('ledger_entries')
    op.drop_table('products')
