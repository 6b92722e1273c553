"""initial tiretrack schema

Revision ID: a7c3e91d2f40
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete tiretrack schema from scratch:
- users, user_permissions: actors and their capability grants
- document_sequences, activity_events: numbering and the append-only activity trail
- suppliers, purchase_orders, purchase_order_items: purchasing
- goods_received_notes, goods_received_note_items: receiving
- inventory_catalog: per (size, brand, model, kind) stock counter
- tires, tire_movements: the asset register and its append-only history
- vehicles, wheel_positions, tire_assignments: fitment
- retread_orders, retread_order_items, retread_receipts, retread_receipt_items
- chart_of_accounts, accounting_transactions, journal_entries, supplier_ledger_entries

tires <-> retread_order_items and retread_receipts <-> accounting_transactions
reference each other; those two foreign keys are added after both sides exist.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a7c3e91d2f40'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # users / user_permissions
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'])

    op.create_table(
        'user_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('permission_code', sa.String(length=64), nullable=False),
        sa.Column('granted_by_user_id', sa.Integer(), nullable=True),
        sa.Column('granted_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['granted_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'permission_code', name='uq_user_permissions_user_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_permissions_user_id', 'user_permissions', ['user_id'])
    op.create_index('ix_user_permissions_permission_code', 'user_permissions', ['permission_code'])

    # ============================================================================
    # document_sequences / activity_events
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('period', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'period', name='uq_document_sequences_type_period'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'activity_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        _created_at(),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_activity_events_event_type', 'activity_events', ['event_type'])
    op.create_index('ix_activity_events_actor_user_id', 'activity_events', ['actor_user_id'])
    op.create_index('ix_activity_events_entity', 'activity_events', ['entity_type', 'entity_id'])
    op.create_index('ix_activity_events_occurred', 'activity_events', ['occurred_at'])

    # ============================================================================
    # suppliers / vehicles / wheel_positions / chart_of_accounts
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('contact_person', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        # Cached payable; recomputable from supplier_ledger_entries
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_suppliers_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'vehicles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vehicle_number', sa.String(length=32), nullable=False),
        sa.Column('make', sa.String(length=64), nullable=True),
        sa.Column('model', sa.String(length=64), nullable=True),
        sa.Column('current_odometer', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vehicle_number', name='uq_vehicles_number'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'wheel_positions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=False),
        sa.Column('position_code', sa.String(length=16), nullable=False),
        sa.Column('position_name', sa.String(length=64), nullable=True),
        sa.Column('axle_number', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vehicle_id', 'position_code', name='uq_wheel_positions_vehicle_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_wheel_positions_vehicle_id', 'wheel_positions', ['vehicle_id'])

    op.create_table(
        'chart_of_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_code', sa.String(length=16), nullable=False),
        sa.Column('account_name', sa.String(length=128), nullable=False),
        sa.Column('account_type', sa.String(length=32), nullable=False),
        sa.Column('normal_balance', sa.String(length=8), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_code', name='uq_chart_of_accounts_code'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # purchasing and receiving
    # ============================================================================
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('po_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('po_date', sa.Date(), nullable=False),
        sa.Column('expected_delivery_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('terms', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('po_number', name='uq_purchase_orders_po_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_supplier_status', 'purchase_orders', ['supplier_id', 'status'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('po_id', sa.Integer(), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('brand', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('model', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('kind', sa.String(length=32), nullable=False, server_default='NEW'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('received_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_po_items_quantity_positive'),
        sa.CheckConstraint('received_quantity >= 0', name='ck_po_items_received_nonneg'),
        sa.CheckConstraint('received_quantity <= quantity', name='ck_po_items_received_le_quantity'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_po_items_unit_price_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_order_items_po_id', 'purchase_order_items', ['po_id'])

    op.create_table(
        'goods_received_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('grn_number', sa.String(length=32), nullable=False),
        sa.Column('po_id', sa.Integer(), nullable=False),
        sa.Column('receipt_date', sa.Date(), nullable=False),
        sa.Column('received_by_user_id', sa.Integer(), nullable=False),
        sa.Column('supplier_invoice_number', sa.String(length=64), nullable=True),
        sa.Column('delivery_note_number', sa.String(length=64), nullable=True),
        sa.Column('vehicle_number', sa.String(length=32), nullable=True),
        sa.Column('driver_name', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='COMPLETED'),
        _created_at(),
        sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['received_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('grn_number', name='uq_grn_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_goods_received_notes_po_id', 'goods_received_notes', ['po_id'])

    op.create_table(
        'goods_received_note_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('grn_id', sa.Integer(), nullable=False),
        sa.Column('po_item_id', sa.Integer(), nullable=False),
        sa.Column('quantity_received', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('batch_number', sa.String(length=64), nullable=True),
        sa.Column('serial_numbers', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['grn_id'], ['goods_received_notes.id'], ),
        sa.ForeignKeyConstraint(['po_item_id'], ['purchase_order_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity_received > 0', name='ck_grn_items_quantity_positive'),
        sa.CheckConstraint('unit_cost_cents >= 0', name='ck_grn_items_unit_cost_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_goods_received_note_items_grn_id', 'goods_received_note_items', ['grn_id'])
    op.create_index('ix_goods_received_note_items_po_item_id', 'goods_received_note_items', ['po_item_id'])

    op.create_table(
        'inventory_catalog',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('brand', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('model', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('kind', sa.String(length=32), nullable=False),
        # Cached count of in-stock tires; moved only by relative updates
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_stock', sa.Integer(), nullable=True),
        sa.Column('reorder_point', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_purchase_date', sa.Date(), nullable=True),
        sa.Column('last_purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('average_cost_cents', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('size', 'brand', 'model', 'kind', name='uq_inventory_catalog_key'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # tires: asset register
    # ============================================================================
    op.create_table(
        'tires',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=64), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('brand', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('model', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('kind', sa.String(length=32), nullable=False, server_default='NEW'),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('acquired_on', sa.Date(), nullable=True),

        # Lineage: exactly one source per tire, immutable after insert
        sa.Column('source_purchase_item_id', sa.Integer(), nullable=True),
        sa.Column('source_grn_item_id', sa.Integer(), nullable=True),
        sa.Column('source_retread_item_id', sa.Integer(), nullable=True),
        sa.Column('retread_count', sa.Integer(), nullable=False, server_default='0'),

        sa.Column('superseded_by_tire_id', sa.Integer(), nullable=True),
        sa.Column('superseded_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('disposed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disposal_method', sa.String(length=32), nullable=True),
        sa.Column('disposal_reason', sa.Text(), nullable=True),
        sa.Column('disposal_authorized_by_user_id', sa.Integer(), nullable=True),

        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['source_purchase_item_id'], ['purchase_order_items.id'], ),
        sa.ForeignKeyConstraint(['source_grn_item_id'], ['goods_received_note_items.id'], ),
        sa.ForeignKeyConstraint(['superseded_by_tire_id'], ['tires.id'], ),
        sa.ForeignKeyConstraint(['disposal_authorized_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('serial_number', name='uq_tires_serial_number'),
        sa.CheckConstraint('retread_count >= 0', name='ck_tires_retread_count_nonneg'),
        sa.CheckConstraint('cost_cents >= 0', name='ck_tires_cost_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tires_status', 'tires', ['status'])
    op.create_index('ix_tires_supplier_id', 'tires', ['supplier_id'])
    op.create_index('ix_tires_source_purchase_item_id', 'tires', ['source_purchase_item_id'])
    op.create_index('ix_tires_source_grn_item_id', 'tires', ['source_grn_item_id'])
    op.create_index('ix_tires_source_retread_item_id', 'tires', ['source_retread_item_id'])
    op.create_index('ix_tires_catalog_key', 'tires', ['size', 'brand', 'model', 'kind'])
    op.create_index('ix_tires_status_size', 'tires', ['status', 'size'])

    op.create_table(
        'tire_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tire_id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=False),
        sa.Column('position_id', sa.Integer(), nullable=False),
        sa.Column('installed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('install_odometer', sa.Integer(), nullable=False),
        sa.Column('installed_by_user_id', sa.Integer(), nullable=False),
        sa.Column('removed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('removal_odometer', sa.Integer(), nullable=True),
        sa.Column('removal_reason', sa.Text(), nullable=True),
        sa.Column('removed_by_user_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['tire_id'], ['tires.id'], ),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ),
        sa.ForeignKeyConstraint(['position_id'], ['wheel_positions.id'], ),
        sa.ForeignKeyConstraint(['installed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['removed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'removal_odometer IS NULL OR removal_odometer >= install_odometer',
            name='ck_tire_assignments_odometer_order',
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tire_assignments_vehicle_id', 'tire_assignments', ['vehicle_id'])
    op.create_index('ix_tire_assignments_tire_removed', 'tire_assignments', ['tire_id', 'removed_at'])
    op.create_index('ix_tire_assignments_position_removed', 'tire_assignments', ['position_id', 'removed_at'])

    # ============================================================================
    # retreads
    # ============================================================================
    op.create_table(
        'retread_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='DRAFT'),
        sa.Column('order_date', sa.Date(), nullable=False),
        sa.Column('expected_return_date', sa.Date(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_by_user_id', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('total_tires', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['sent_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_retread_orders_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_retread_orders_status', 'retread_orders', ['status'])
    op.create_index('ix_retread_orders_supplier_status', 'retread_orders', ['supplier_id', 'status'])

    op.create_table(
        'retread_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('tire_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('quoted_cost_cents', sa.Integer(), nullable=True),
        sa.Column('retread_cost_cents', sa.Integer(), nullable=True),
        sa.Column('new_tire_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['order_id'], ['retread_orders.id'], ),
        sa.ForeignKeyConstraint(['tire_id'], ['tires.id'], ),
        sa.ForeignKeyConstraint(['new_tire_id'], ['tires.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'tire_id', name='uq_retread_items_order_tire'),
        sa.CheckConstraint(
            'quoted_cost_cents IS NULL OR quoted_cost_cents >= 0',
            name='ck_retread_items_quote_nonneg',
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_retread_order_items_order_id', 'retread_order_items', ['order_id'])
    op.create_index('ix_retread_order_items_tire_id', 'retread_order_items', ['tire_id'])

    op.create_table(
        'retread_receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('received_date', sa.Date(), nullable=False),
        sa.Column('received_by_user_id', sa.Integer(), nullable=False),
        sa.Column('supplier_invoice_number', sa.String(length=64), nullable=True),
        sa.Column('delivery_note_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('accepted_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rejected_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('accounting_transaction_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['order_id'], ['retread_orders.id'], ),
        sa.ForeignKeyConstraint(['received_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number', name='uq_retread_receipts_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_retread_receipts_order_id', 'retread_receipts', ['order_id'])

    op.create_table(
        'retread_receipt_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=False),
        sa.Column('outcome', sa.String(length=32), nullable=False),
        sa.Column('new_serial_number', sa.String(length=64), nullable=True),
        sa.Column('new_tire_id', sa.Integer(), nullable=True),
        sa.Column('retread_cost_cents', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['receipt_id'], ['retread_receipts.id'], ),
        sa.ForeignKeyConstraint(['order_item_id'], ['retread_order_items.id'], ),
        sa.ForeignKeyConstraint(['new_tire_id'], ['tires.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_item_id', name='uq_retread_receipt_items_order_item'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_retread_receipt_items_receipt_id', 'retread_receipt_items', ['receipt_id'])

    # ============================================================================
    # tire_movements: append-only history
    # ============================================================================
    op.create_table(
        'tire_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tire_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=32), nullable=True),
        sa.Column('to_status', sa.String(length=32), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('purchase_item_id', sa.Integer(), nullable=True),
        sa.Column('grn_id', sa.Integer(), nullable=True),
        sa.Column('retread_order_id', sa.Integer(), nullable=True),
        sa.Column('retread_item_id', sa.Integer(), nullable=True),
        sa.Column('assignment_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['tire_id'], ['tires.id'], ),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['purchase_item_id'], ['purchase_order_items.id'], ),
        sa.ForeignKeyConstraint(['grn_id'], ['goods_received_notes.id'], ),
        sa.ForeignKeyConstraint(['retread_order_id'], ['retread_orders.id'], ),
        sa.ForeignKeyConstraint(['retread_item_id'], ['retread_order_items.id'], ),
        sa.ForeignKeyConstraint(['assignment_id'], ['tire_assignments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tire_movements_actor_user_id', 'tire_movements', ['actor_user_id'])
    op.create_index('ix_tire_movements_grn_id', 'tire_movements', ['grn_id'])
    op.create_index('ix_tire_movements_retread_order_id', 'tire_movements', ['retread_order_id'])
    op.create_index('ix_tire_movements_tire_id_id', 'tire_movements', ['tire_id', 'id'])
    op.create_index('ix_tire_movements_type_occurred', 'tire_movements', ['movement_type', 'occurred_at'])

    # ============================================================================
    # accounting
    # ============================================================================
    op.create_table(
        'accounting_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=32), nullable=False),
        sa.Column('transaction_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='POSTED'),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('po_id', sa.Integer(), nullable=True),
        # One posting per GRN / retread receipt
        sa.Column('grn_id', sa.Integer(), nullable=True),
        sa.Column('retread_order_id', sa.Integer(), nullable=True),
        sa.Column('retread_receipt_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['grn_id'], ['goods_received_notes.id'], ),
        sa.ForeignKeyConstraint(['retread_order_id'], ['retread_orders.id'], ),
        sa.ForeignKeyConstraint(['retread_receipt_id'], ['retread_receipts.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_number', name='uq_accounting_transactions_number'),
        sa.UniqueConstraint('grn_id', name='uq_accounting_transactions_grn_id'),
        sa.UniqueConstraint('retread_receipt_id', name='uq_accounting_transactions_retread_receipt_id'),
        sa.CheckConstraint('total_amount_cents > 0', name='ck_accounting_transactions_amount_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accounting_transactions_transaction_type', 'accounting_transactions', ['transaction_type'])
    op.create_index(
        'ix_accounting_transactions_supplier_date', 'accounting_transactions', ['supplier_id', 'transaction_date']
    )

    op.create_table(
        'journal_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('account_code', sa.String(length=16), nullable=False),
        sa.Column('debit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['transaction_id'], ['accounting_transactions.id'], ),
        sa.ForeignKeyConstraint(['account_code'], ['chart_of_accounts.account_code'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('debit_cents >= 0 AND credit_cents >= 0', name='ck_journal_entries_nonneg'),
        sa.CheckConstraint(
            '(debit_cents = 0 AND credit_cents > 0) OR (credit_cents = 0 AND debit_cents > 0)',
            name='ck_journal_entries_one_side',
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_journal_entries_transaction_id', 'journal_entries', ['transaction_id'])
    op.create_index('ix_journal_entries_account', 'journal_entries', ['account_code'])

    op.create_table(
        'supplier_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('po_id', sa.Integer(), nullable=True),
        sa.Column('grn_id', sa.Integer(), nullable=True),
        sa.Column('retread_order_id', sa.Integer(), nullable=True),
        sa.Column('accounting_transaction_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['grn_id'], ['goods_received_notes.id'], ),
        sa.ForeignKeyConstraint(['retread_order_id'], ['retread_orders.id'], ),
        sa.ForeignKeyConstraint(['accounting_transaction_id'], ['accounting_transactions.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_cents > 0', name='ck_supplier_ledger_amount_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_supplier_ledger_supplier_date', 'supplier_ledger_entries', ['supplier_id', 'entry_date'])
    op.create_index(
        'ix_supplier_ledger_entries_accounting_transaction_id', 'supplier_ledger_entries', ['accounting_transaction_id']
    )

    # ============================================================================
    # cyclic foreign keys
    # ============================================================================
    with op.batch_alter_table('tires', schema=None) as batch_op:
        batch_op.create_foreign_key(
            'fk_tires_source_retread_item', 'retread_order_items', ['source_retread_item_id'], ['id']
        )
    with op.batch_alter_table('retread_receipts', schema=None) as batch_op:
        batch_op.create_foreign_key(
            'fk_retread_receipts_transaction', 'accounting_transactions', ['accounting_transaction_id'], ['id']
        )


def downgrade():
    """Drop all tables (destructive operation)."""
    with op.batch_alter_table('retread_receipts', schema=None) as batch_op:
        batch_op.drop_constraint('fk_retread_receipts_transaction', type_='foreignkey')
    with op.batch_alter_table('tires', schema=None) as batch_op:
        batch_op.drop_constraint('fk_tires_source_retread_item', type_='foreignkey')

    op.drop_table('supplier_ledger_entries')
    op.drop_table('journal_entries')
    op.drop_table('accounting_transactions')
    op.drop_table('tire_movements')
    op.drop_table('retread_receipt_items')
    op.drop_table('retread_receipts')
    op.drop_table('retread_order_items')
    op.drop_table('retread_orders')
    op.drop_table('tire_assignments')
    op.drop_table('tires')
    op.drop_table('inventory_catalog')
    op.drop_table('goods_received_note_items')
    op.drop_table('goods_received_notes')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('chart_of_accounts')
    op.drop_table('wheel_positions')
    op.drop_table('vehicles')
    op.drop_table('suppliers')
    op.drop_table('activity_events')
    op.drop_table('document_sequences')
    op.drop_table('user_permissions')
    op.drop_table('users')
