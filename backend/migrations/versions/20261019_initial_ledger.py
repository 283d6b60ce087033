"""Initial stock ledger schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Creates:
1. Staff users, catalog (categories, suppliers, products), customers
2. Purchase batches and the cached inventory summary
3. Invoices, sale lines, sale serials, warranty claims
4. Repairs and their accessory items
5. Supplier returns
6. Purchase / sale undo logs (append-only)
7. Notifications and the post-commit outbox
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)


def upgrade():
    # ==========================================================================
    # 1. STAFF, CATALOG, CUSTOMERS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_role', ['role'], unique=False)

    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_categories'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sqlite_autoincrement=True
    )

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('shop_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name='pk_suppliers'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('suppliers', schema=None) as batch_op:
        batch_op.create_index('ix_suppliers_name', ['name'], unique=False)

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name='pk_customers'),
        sa.UniqueConstraint('phone', name='uq_customers_phone'),
        sa.UniqueConstraint('email', name='uq_customers_email'),
        sqlite_autoincrement=True
    )

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('requires_serial', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name='fk_products_category_id_categories'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], name='fk_products_supplier_id_suppliers'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_name', ['name'], unique=False)
        batch_op.create_index('ix_products_category_id', ['category_id'], unique=False)
        batch_op.create_index('ix_products_supplier_id', ['supplier_id'], unique=False)

    # ==========================================================================
    # 2. PURCHASE BATCHES + INVENTORY CACHE
    # ==========================================================================
    op.create_table('purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('remaining_quantity', sa.Integer(), nullable=False),
        sa.Column('buying_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('warranty_months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint('quantity >= 0', name='ck_purchases_quantity_non_negative'),
        sa.CheckConstraint(
            'remaining_quantity >= 0 AND remaining_quantity <= quantity',
            name='ck_purchases_remaining_within_quantity',
        ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_purchases_product_id_products'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], name='fk_purchases_created_by_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_purchases'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchases', schema=None) as batch_op:
        batch_op.create_index('ix_purchases_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_purchases_purchased_at', ['purchased_at'], unique=False)
        batch_op.create_index('ix_purchases_created_by_user_id', ['created_by_user_id'], unique=False)
        batch_op.create_index('ix_purchases_product_date', ['product_id', 'purchased_at', 'id'], unique=False)

    op.create_table('inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_inventory_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory'),
        sa.UniqueConstraint('product_id', name='uq_inventory_product_id'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 3. SALES
    # ==========================================================================
    op.create_table('invoices',
        sa.Column('invoice_no', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('sale_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='Cash'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PAID'),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name='fk_invoices_customer_id_customers'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], name='fk_invoices_created_by_user_id_users'),
        sa.PrimaryKeyConstraint('invoice_no', name='pk_invoices'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoices', schema=None) as batch_op:
        batch_op.create_index('ix_invoices_customer_id', ['customer_id'], unique=False)
        batch_op.create_index('ix_invoices_created_by_user_id', ['created_by_user_id'], unique=False)
        batch_op.create_index('ix_invoices_sale_date', ['sale_date'], unique=False)

    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_no', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sales_quantity_positive'),
        sa.CheckConstraint('discount_percent >= 0 AND discount_percent <= 100', name='ck_sales_discount_range'),
        sa.ForeignKeyConstraint(['invoice_no'], ['invoices.invoice_no'], name='fk_sales_invoice_no_invoices'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_sales_product_id_products'),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], name='fk_sales_purchase_id_purchases'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name='fk_sales_customer_id_customers'),
        sa.PrimaryKeyConstraint('id', name='pk_sales'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_invoice_no', ['invoice_no'], unique=False)
        batch_op.create_index('ix_sales_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_sales_purchase_id', ['purchase_id'], unique=False)

    op.create_table('sale_serials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_line_id', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['sale_line_id'], ['sales.id'], name='fk_sale_serials_sale_line_id_sales'),
        sa.PrimaryKeyConstraint('id', name='pk_sale_serials'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_serials', schema=None) as batch_op:
        batch_op.create_index('ix_sale_serials_sale_line_id', ['sale_line_id'], unique=False)
        batch_op.create_index('ix_sale_serials_serial_number', ['serial_number'], unique=False)

    # ==========================================================================
    # 4. REPAIRS (before warranty_claims, which references them)
    # ==========================================================================
    op.create_table('repairs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('device_type', sa.String(length=64), nullable=False),
        sa.Column('device_model', sa.String(length=128), nullable=True),
        sa.Column('serial_number', sa.String(length=255), nullable=True),
        sa.Column('issue_description', sa.Text(), nullable=False),
        sa.Column('technician', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='Pending'),
        sa.Column('date_received', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_completed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('estimated_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('advance_payment_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra_expenses_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('is_under_warranty', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name='fk_repairs_customer_id_customers'),
        sa.PrimaryKeyConstraint('id', name='pk_repairs'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('repairs', schema=None) as batch_op:
        batch_op.create_index('ix_repairs_customer_id', ['customer_id'], unique=False)
        batch_op.create_index('ix_repairs_serial_number', ['serial_number'], unique=False)
        batch_op.create_index('ix_repairs_technician', ['technician'], unique=False)
        batch_op.create_index('ix_repairs_status', ['status'], unique=False)

    op.create_table('repair_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repair_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('specifications', sa.String(length=255), nullable=True),
        sa.Column('condition_notes', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['repair_id'], ['repairs.id'], name='fk_repair_products_repair_id_repairs'),
        sa.PrimaryKeyConstraint('id', name='pk_repair_products'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('repair_products', schema=None) as batch_op:
        batch_op.create_index('ix_repair_products_repair_id', ['repair_id'], unique=False)

    op.create_table('warranty_claims',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_line_id', sa.Integer(), nullable=False),
        sa.Column('repair_id', sa.Integer(), nullable=True),
        sa.Column('serial_number', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('claim_date', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['sale_line_id'], ['sales.id'], name='fk_warranty_claims_sale_line_id_sales'),
        sa.ForeignKeyConstraint(['repair_id'], ['repairs.id'], name='fk_warranty_claims_repair_id_repairs'),
        sa.PrimaryKeyConstraint('id', name='pk_warranty_claims'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('warranty_claims', schema=None) as batch_op:
        batch_op.create_index('ix_warranty_claims_sale_line_id', ['sale_line_id'], unique=False)
        batch_op.create_index('ix_warranty_claims_repair_id', ['repair_id'], unique=False)

    # ==========================================================================
    # 5. SUPPLIER RETURNS
    # ==========================================================================
    op.create_table('supplier_returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('return_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('return_reason', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('refund_cents', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint('quantity > 0', name='ck_supplier_returns_quantity_positive'),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], name='fk_supplier_returns_purchase_id_purchases'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_supplier_returns_product_id_products'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], name='fk_supplier_returns_supplier_id_suppliers'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], name='fk_supplier_returns_created_by_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_supplier_returns'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('supplier_returns', schema=None) as batch_op:
        batch_op.create_index('ix_supplier_returns_purchase_id', ['purchase_id'], unique=False)
        batch_op.create_index('ix_supplier_returns_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_supplier_returns_supplier_id', ['supplier_id'], unique=False)

    # ==========================================================================
    # 6. UNDO LOGS (append-only)
    # ==========================================================================
    op.create_table('purchase_undo_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('remaining_quantity', sa.Integer(), nullable=False),
        sa.Column('buying_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('warranty_months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('date_purchased', sa.DateTime(timezone=True), nullable=False),
        sa.Column('date_undone', sa.DateTime(timezone=True), nullable=False),
        sa.Column('undone_by_user_id', sa.Integer(), nullable=True),
        sa.Column('undone_by', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_purchase_undo_logs_product_id_products'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], name='fk_purchase_undo_logs_supplier_id_suppliers'),
        sa.ForeignKeyConstraint(['undone_by_user_id'], ['users.id'], name='fk_purchase_undo_logs_undone_by_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_purchase_undo_logs'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_undo_logs', schema=None) as batch_op:
        batch_op.create_index('ix_purchase_undo_logs_purchase_id', ['purchase_id'], unique=False)
        batch_op.create_index('ix_purchase_undo_logs_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_purchase_undo_logs_supplier_id', ['supplier_id'], unique=False)
        batch_op.create_index('ix_purchase_undo_logs_date_undone', ['date_undone'], unique=False)

    op.create_table('sale_undo_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_no', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('undo_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason_type', sa.String(length=32), nullable=False),
        sa.Column('reason_details', sa.Text(), nullable=True),
        sa.Column('sale_data', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_sale_undo_logs_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_sale_undo_logs'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_undo_logs', schema=None) as batch_op:
        batch_op.create_index('ix_sale_undo_logs_invoice_no', ['invoice_no'], unique=False)
        batch_op.create_index('ix_sale_undo_logs_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_sale_undo_logs_reason_type', ['reason_type'], unique=False)
        batch_op.create_index('ix_sale_undo_logs_undo_date', ['undo_date'], unique=False)

    # ==========================================================================
    # 7. NOTIFICATIONS + OUTBOX
    # ==========================================================================
    op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('data', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='0'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_notifications_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_notifications'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.create_index('ix_notifications_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_notifications_type', ['type'], unique=False)
        batch_op.create_index('ix_notifications_read_created', ['is_read', 'created_at'], unique=False)

    op.create_table('outbox_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.String(length=512), nullable=True),
        sa.Column('result', sa.Text(), nullable=True),
        _created_at(),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_outbox_events'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('outbox_events', schema=None) as batch_op:
        batch_op.create_index('ix_outbox_events_event_type', ['event_type'], unique=False)
        batch_op.create_index('ix_outbox_events_status_created', ['status', 'created_at'], unique=False)


def downgrade():
    op.drop_table('outbox_events')
    op.drop_table('notifications')
    op.drop_table('sale_undo_logs')
    op.drop_table('purchase_undo_logs')
    op.drop_table('supplier_returns')
    op.drop_table('warranty_claims')
    op.drop_table('repair_products')
    op.drop_table('repairs')
    op.drop_table('sale_serials')
    op.drop_table('sales')
    op.drop_table('invoices')
    op.drop_table('inventory')
    op.drop_table('purchases')
    op.drop_table('products')
    op.drop_table('customers')
    op.drop_table('suppliers')
    op.drop_table('categories')
    op.drop_table('users')
