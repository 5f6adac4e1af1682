"""Initial schema: shops, catalog, sales, stock ledger, receipt sequences

Revision ID: sl001
Revises:
Create Date: 2026-02-12

Creates:
1. shops (tenant root with usage counters)
2. products (cents pricing, authoritative quantity, optimistic version,
   barcode unique per shop)
3. stock_log_entries (append-only ledger with delta-chain check)
4. receipt_sequences (atomic per-shop, per-day counters)
5. sales and sale_items (with offline-sync idempotency key)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "sl001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. SHOPS
    # ==========================================================================
    op.create_table(
        "shops",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="SZL"),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="Africa/Mbabane"),
        sa.Column("tier", sa.String(length=16), nullable=False, server_default="FREE"),
        sa.Column("monthly_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_stock_moves", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_billing_reset", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_shops_is_active", "shops", ["is_active"], unique=False)

    # ==========================================================================
    # 2. PRODUCTS
    # ==========================================================================
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=True),
        sa.Column("barcode", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("unit", sa.String(length=32), nullable=False, server_default="each"),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sell_price_cents", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reorder_at", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("track_stock", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_nonneg"),
        sa.CheckConstraint("sell_price_cents >= 0", name="ck_products_sell_nonneg"),
        sa.UniqueConstraint("shop_id", "barcode", name="uq_products_shop_barcode"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_shop_id", "products", ["shop_id"], unique=False)
    op.create_index("ix_products_barcode", "products", ["barcode"], unique=False)
    op.create_index("ix_products_shop_name", "products", ["shop_id", "name"], unique=False)
    op.create_index("ix_products_shop_status", "products", ["shop_id", "status"], unique=False)

    # ==========================================================================
    # 3. STOCK LOG ENTRIES (append-only)
    # ==========================================================================
    op.create_table(
        "stock_log_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_qty", sa.Integer(), nullable=False),
        sa.Column("new_qty", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=64), nullable=True),
        sa.Column("note", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.CheckConstraint("new_qty = previous_qty + quantity", name="ck_stock_log_delta_chain"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_log_entries_shop_id", "stock_log_entries", ["shop_id"], unique=False)
    op.create_index("ix_stock_log_entries_product_id", "stock_log_entries", ["product_id"], unique=False)
    op.create_index("ix_stock_log_entries_type", "stock_log_entries", ["type"], unique=False)
    op.create_index("ix_stock_log_entries_reference", "stock_log_entries", ["reference"], unique=False)
    op.create_index("ix_stock_log_entries_created_at", "stock_log_entries", ["created_at"], unique=False)
    op.create_index(
        "ix_stock_log_shop_product_created",
        "stock_log_entries",
        ["shop_id", "product_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_stock_log_shop_type_created",
        "stock_log_entries",
        ["shop_id", "type", "created_at"],
        unique=False,
    )

    # ==========================================================================
    # 4. RECEIPT SEQUENCES
    # ==========================================================================
    op.create_table(
        "receipt_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.UniqueConstraint("shop_id", "business_date", name="uq_receipt_sequences_shop_date"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_receipt_sequences_shop_id", "receipt_sequences", ["shop_id"], unique=False)

    # ==========================================================================
    # 5. SALES + SALE ITEMS
    # ==========================================================================
    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shop_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("receipt_number", sa.String(length=32), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("local_id", sa.String(length=64), nullable=True),
        sa.Column("offline_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("change_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="COMPLETED"),
        sa.Column("void_reason", sa.String(length=500), nullable=True),
        sa.Column("voided_by_user_id", sa.Integer(), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.id"]),
        sa.UniqueConstraint("shop_id", "receipt_number", name="uq_sales_shop_receipt"),
        sa.UniqueConstraint("shop_id", "local_id", name="uq_sales_shop_local_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sales_shop_id", "sales", ["shop_id"], unique=False)
    op.create_index("ix_sales_user_id", "sales", ["user_id"], unique=False)
    op.create_index("ix_sales_customer_id", "sales", ["customer_id"], unique=False)
    op.create_index("ix_sales_payment_method", "sales", ["payment_method"], unique=False)
    op.create_index("ix_sales_status", "sales", ["status"], unique=False)
    op.create_index("ix_sales_shop_status_created", "sales", ["shop_id", "status", "created_at"], unique=False)
    op.create_index("ix_sales_shop_business_date", "sales", ["shop_id", "business_date"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.UniqueConstraint("sale_id", "line_number", name="uq_sale_items_sale_line"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"], unique=False)
    op.create_index("ix_sale_items_product_id", "sale_items", ["product_id"], unique=False)


def downgrade():
    op.drop_index("ix_sale_items_product_id", table_name="sale_items")
    op.drop_index("ix_sale_items_sale_id", table_name="sale_items")
    op.drop_table("sale_items")

    for name in (
        "ix_sales_shop_business_date",
        "ix_sales_shop_status_created",
        "ix_sales_status",
        "ix_sales_payment_method",
        "ix_sales_customer_id",
        "ix_sales_user_id",
        "ix_sales_shop_id",
    ):
        op.drop_index(name, table_name="sales")
    op.drop_table("sales")

    op.drop_index("ix_receipt_sequences_shop_id", table_name="receipt_sequences")
    op.drop_table("receipt_sequences")

    for name in (
        "ix_stock_log_shop_type_created",
        "ix_stock_log_shop_product_created",
        "ix_stock_log_entries_created_at",
        "ix_stock_log_entries_reference",
        "ix_stock_log_entries_type",
        "ix_stock_log_entries_product_id",
        "ix_stock_log_entries_shop_id",
    ):
        op.drop_index(name, table_name="stock_log_entries")
    op.drop_table("stock_log_entries")

    for name in ("ix_products_shop_status", "ix_products_shop_name", "ix_products_barcode", "ix_products_shop_id"):
        op.drop_index(name, table_name="products")
    op.drop_table("products")

    op.drop_index("ix_shops_is_active", table_name="shops")
    op.drop_table("shops")
