"""Stock & debt ledger schema: tenants, catalog, parties, consignment, sales, purchases, payments, journals

Revision ID: 20261019_ledger_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_ledger_schema"
down_revision = None
branch_labels = None
depends_on = None


def _money(name, nullable=False, server_default=None):
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable, server_default=server_default)


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False)


def _actor_columns():
    return [
        sa.Column("created_by_type", sa.String(length=16), nullable=False),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
    ]


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("owner_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("plan", sa.String(length=32), nullable=False, server_default="free"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_tenants_phone", "tenants", ["phone"], unique=True)
    op.create_index("ix_tenants_is_active", "tenants", ["is_active"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=16), nullable=False, server_default="dona"),
        _money("price"),
        _money("cost_price", server_default="0"),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_stock", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("image_url", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"], unique=False)
    op.create_index("ix_products_tenant_active", "products", ["tenant_id", "is_active"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("address", sa.String(length=512), nullable=True),
        _money("debt", server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
        sa.CheckConstraint("debt >= 0", name="ck_customers_debt_nonnegative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"], unique=False)

    op.create_table(
        "dealers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("region", sa.String(length=128), nullable=True),
        _money("debt", server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "phone", name="uq_dealers_tenant_phone"),
        sa.CheckConstraint("debt >= 0", name="ck_dealers_debt_nonnegative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_dealers_tenant_id", "dealers", ["tenant_id"], unique=False)

    op.create_table(
        "dealer_customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("dealer_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        _money("debt", server_default="0"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("debt >= 0", name="ck_dealer_customers_debt_nonnegative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_dealer_customers_tenant_id", "dealer_customers", ["tenant_id"], unique=False)
    op.create_index("ix_dealer_customers_dealer_id", "dealer_customers", ["dealer_id"], unique=False)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("company", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_suppliers_tenant_id", "suppliers", ["tenant_id"], unique=False)

    op.create_table(
        "dealer_inventory",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("dealer_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("dealer_id", "product_id", name="uq_dealer_inventory_dealer_product"),
        sa.CheckConstraint("quantity >= 0", name="ck_dealer_inventory_quantity_nonnegative"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_dealer_inventory_tenant_id", "dealer_inventory", ["tenant_id"], unique=False)
    op.create_index("ix_dealer_inventory_dealer_id", "dealer_inventory", ["dealer_id"], unique=False)
    op.create_index("ix_dealer_inventory_product_id", "dealer_inventory", ["product_id"], unique=False)

    op.create_table(
        "dealer_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("dealer_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("batch_ref", sa.String(length=32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("price"),
        _money("total"),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=32), nullable=True),
        sa.Column("dealer_customer_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=512), nullable=True),
        *_actor_columns(),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["dealer_customer_id"], ["dealer_customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_dealer_transactions_tenant_id", "dealer_transactions", ["tenant_id"], unique=False)
    op.create_index("ix_dealer_transactions_dealer_id", "dealer_transactions", ["dealer_id"], unique=False)
    op.create_index("ix_dealer_transactions_product_id", "dealer_transactions", ["product_id"], unique=False)
    op.create_index("ix_dealer_transactions_type", "dealer_transactions", ["type"], unique=False)
    op.create_index("ix_dealer_transactions_batch_ref", "dealer_transactions", ["batch_ref"], unique=False)
    op.create_index("ix_dealer_tx_dealer_created", "dealer_transactions", ["dealer_id", "created_at"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("channel", sa.String(length=16), nullable=False, server_default="pos"),
        sa.Column("status", sa.String(length=16), nullable=False),
        _money("subtotal_amount"),
        _money("discount", server_default="0"),
        _money("total_amount"),
        _money("paid_amount"),
        _money("debt_amount", server_default="0"),
        sa.Column("payment_type", sa.String(length=16), nullable=False, server_default="cash"),
        *_actor_columns(),
        _created_at(),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sales_tenant_id", "sales", ["tenant_id"], unique=False)
    op.create_index("ix_sales_customer_id", "sales", ["customer_id"], unique=False)
    op.create_index("ix_sales_status", "sales", ["status"], unique=False)
    op.create_index("ix_sales_tenant_status_created", "sales", ["tenant_id", "status", "created_at"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("price"),
        _money("total"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"], unique=False)

    op.create_table(
        "deliveries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("dealer_id", sa.Integer(), nullable=True),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.String(length=512), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_id", name="uq_deliveries_sale"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_deliveries_tenant_id", "deliveries", ["tenant_id"], unique=False)
    op.create_index("ix_deliveries_dealer_id", "deliveries", ["dealer_id"], unique=False)

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        _money("total_amount"),
        _money("paid_amount", server_default="0"),
        sa.Column("notes", sa.String(length=512), nullable=True),
        *_actor_columns(),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchases_tenant_id", "purchases", ["tenant_id"], unique=False)
    op.create_index("ix_purchases_supplier_id", "purchases", ["supplier_id"], unique=False)

    op.create_table(
        "purchase_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _money("cost_price"),
        _money("total"),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_items_purchase_id", "purchase_items", ["purchase_id"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("dealer_id", sa.Integer(), nullable=True),
        sa.Column("dealer_customer_id", sa.Integer(), nullable=True),
        _money("amount"),
        sa.Column("method", sa.String(length=16), nullable=False, server_default="cash"),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="payment"),
        sa.Column("reference", sa.String(length=32), nullable=True),
        sa.Column("notes", sa.String(length=512), nullable=True),
        *_actor_columns(),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["dealer_id"], ["dealers.id"]),
        sa.ForeignKeyConstraint(["dealer_customer_id"], ["dealer_customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payments_tenant_id", "payments", ["tenant_id"], unique=False)
    op.create_index("ix_payments_type", "payments", ["type"], unique=False)
    op.create_index("ix_payments_customer_id", "payments", ["customer_id"], unique=False)
    op.create_index("ix_payments_dealer_id", "payments", ["dealer_id"], unique=False)
    op.create_index("ix_payments_dealer_customer_id", "payments", ["dealer_customer_id"], unique=False)
    op.create_index("ix_payments_created_at", "payments", ["created_at"], unique=False)
    op.create_index("ix_payments_tenant_type_created", "payments", ["tenant_id", "type", "created_at"], unique=False)

    op.create_table(
        "debt_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("debtor_type", sa.String(length=16), nullable=False),
        sa.Column("debtor_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=24), nullable=False),
        _money("amount"),
        _money("balance_after"),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("reference", sa.String(length=32), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_debt_entries_tenant_id", "debt_entries", ["tenant_id"], unique=False)
    op.create_index("ix_debt_entries_debtor", "debt_entries", ["tenant_id", "debtor_type", "debtor_id", "id"], unique=False)

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_type", sa.String(length=16), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ledger_events_tenant_id", "ledger_events", ["tenant_id"], unique=False)
    op.create_index("ix_ledger_events_event_type", "ledger_events", ["event_type"], unique=False)
    op.create_index("ix_ledger_events_tenant_occurred", "ledger_events", ["tenant_id", "occurred_at"], unique=False)


def downgrade():
    for table in (
        "ledger_events",
        "debt_entries",
        "payments",
        "purchase_items",
        "purchases",
        "deliveries",
        "sale_items",
        "sales",
        "dealer_transactions",
        "dealer_inventory",
        "suppliers",
        "dealer_customers",
        "dealers",
        "customers",
        "products",
        "tenants",
    ):
        op.drop_table(table)
