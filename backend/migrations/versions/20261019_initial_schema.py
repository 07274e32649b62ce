"""Initial back-office schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("price", sa.Numeric(12, 3), nullable=False),
        sa.Column("quantity_in_stock", sa.Integer(), nullable=False),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=True),
        sa.Column("low_stock_price", sa.Numeric(12, 3), nullable=True),
        sa.Column("is_demand_notice_product", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("quantity_in_stock >= 0", name="ck_products_stock_nonnegative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_name", "products", ["name"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.String(64), nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_product_time", ["product_id", "occurred_at"], unique=False)
        batch_op.create_index("ix_stock_movements_reference", ["reference_type", "reference_id"], unique=False)

    op.create_table(
        "demand_notices",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("salesperson_id", sa.String(64), nullable=True),
        sa.Column("customer_contact_number", sa.String(64), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_sku", sa.String(64), nullable=True),
        sa.Column("is_new_product", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_requested", sa.Integer(), nullable=False),
        sa.Column("quantity_fulfilled", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("agreed_price", sa.Numeric(12, 3), nullable=False),
        sa.Column("expected_availability_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("linked_order_id", sa.String(32), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("quantity_requested > 0", name="ck_demand_notices_quantity_positive"),
        sa.CheckConstraint(
            "quantity_fulfilled >= 0 AND quantity_fulfilled <= quantity_requested",
            name="ck_demand_notices_fulfilled_range",
        ),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("demand_notices", schema=None) as batch_op:
        batch_op.create_index("ix_demand_notices_salesperson_id", ["salesperson_id"], unique=False)
        batch_op.create_index("ix_demand_notices_linked_order_id", ["linked_order_id"], unique=False)
        batch_op.create_index("ix_demand_notices_product_status", ["product_id", "status"], unique=False)

    op.create_table(
        "demand_notice_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("demand_notice_id", sa.String(32), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("recorded_by", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_demand_notice_payments_amount_positive"),
        sa.ForeignKeyConstraint(["demand_notice_id"], ["demand_notices.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_demand_notice_payments_demand_notice_id", "demand_notice_payments", ["demand_notice_id"], unique=False
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_phone", sa.String(64), nullable=True),
        sa.Column("delivery_address", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("primary_salesperson_id", sa.String(64), nullable=True),
        sa.Column("secondary_salesperson_id", sa.String(64), nullable=True),
        sa.Column("primary_commission_share", sa.Numeric(5, 4), nullable=True),
        sa.Column("secondary_commission_share", sa.Numeric(5, 4), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 3), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("linked_demand_notice_id", sa.String(32), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["linked_demand_notice_id"], ["demand_notices.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_status_created", ["status", "created_at"], unique=False)
        batch_op.create_index("ix_orders_primary_salesperson", ["primary_salesperson_id"], unique=False)
        batch_op.create_index("ix_orders_linked_demand_notice_id", ["linked_demand_notice_id"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(32), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_per_unit", sa.Numeric(12, 3), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 3), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_items_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "order_taxes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(32), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("amount", sa.Numeric(12, 3), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_taxes_order_id", "order_taxes", ["order_id"], unique=False)

    op.create_table(
        "order_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(32), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("recorded_by", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_order_payments_amount_positive"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_payments_order_id", "order_payments", ["order_id"], unique=False)

    op.create_table(
        "return_transactions",
        sa.Column("id", sa.String(40), nullable=False),
        sa.Column("order_id", sa.String(32), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("exchange_notes", sa.Text(), nullable=True),
        sa.Column("total_value_of_returned_items", sa.Numeric(12, 3), nullable=False),
        sa.Column("net_refund_amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("processed_by", sa.String(64), nullable=True),
        sa.Column("returned_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_return_transactions_order_id", "return_transactions", ["order_id"], unique=False)

    op.create_table(
        "returned_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("return_transaction_id", sa.String(40), nullable=False),
        sa.Column("order_item_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_per_unit", sa.Numeric(12, 3), nullable=False),
        sa.Column("line_value", sa.Numeric(12, 3), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_returned_items_quantity_positive"),
        sa.ForeignKeyConstraint(["return_transaction_id"], ["return_transactions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_item_id"], ["order_items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("returned_items", schema=None) as batch_op:
        batch_op.create_index("ix_returned_items_return_transaction_id", ["return_transaction_id"], unique=False)
        batch_op.create_index("ix_returned_items_order_item_id", ["order_item_id"], unique=False)

    op.create_table(
        "refund_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("return_transaction_id", sa.String(40), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.CheckConstraint("amount >= 0", name="ck_refund_payments_amount_nonnegative"),
        sa.ForeignKeyConstraint(["return_transaction_id"], ["return_transactions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_refund_payments_return_transaction_id", "refund_payments", ["return_transaction_id"], unique=False
    )

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("supplier_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("advance_paid", sa.Numeric(12, 3), nullable=False),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("expected_delivery", sa.Date(), nullable=True),
        sa.Column("transport_vehicle_number", sa.String(64), nullable=True),
        sa.Column("transport_driver_contact", sa.String(64), nullable=True),
        sa.Column("transport_notes", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("purchase_orders", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_purchase_orders_supplier_id", ["supplier_id"], unique=False)

    op.create_table(
        "purchase_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.String(32), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_cost", sa.Numeric(12, 3), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_po_items_ordered_positive"),
        sa.CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity_ordered",
            name="ck_po_items_received_range",
        ),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_order_items_purchase_order_id", ["purchase_order_id"], unique=False)
        batch_op.create_index("ix_purchase_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "series_number_settings",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("next_number >= 1", name="ck_series_next_number_positive"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "commission_settings",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("sales_target", sa.Numeric(12, 3), nullable=False),
        sa.Column("commission_interval", sa.Numeric(12, 3), nullable=False),
        sa.Column("commission_percentage", sa.Numeric(7, 4), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_by", sa.String(64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade():
    op.drop_table("commission_settings")
    op.drop_table("series_number_settings")
    op.drop_table("purchase_order_items")
    op.drop_table("purchase_orders")
    op.drop_table("refund_payments")
    op.drop_table("returned_items")
    op.drop_table("return_transactions")
    op.drop_table("order_payments")
    op.drop_table("order_taxes")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("demand_notice_payments")
    op.drop_table("demand_notices")
    op.drop_table("stock_movements")
    op.drop_table("products")
