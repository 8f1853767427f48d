"""Fulfillment schema: catalog, stock ledger, orders, delivery tracking, notifications

Revision ID: 20260301_fulfillment
Revises:
Create Date: 2026-03-01 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_fulfillment"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "staff_users",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("family_name", sa.String(length=100), nullable=False),
        sa.Column("mobile", sa.String(length=32), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="staff"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_staff_users_role", "staff_users", ["role"])

    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("family_name", sa.String(length=100), nullable=False),
        sa.Column("mobile", sa.String(length=32), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("preferred_language", sa.String(length=2), nullable=False, server_default="en"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "addresses",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("customer_id", sa.String(length=40), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("label", sa.String(length=50), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("mobile", sa.String(length=32), nullable=False),
        sa.Column("emirate", sa.String(length=64), nullable=False),
        sa.Column("area", sa.String(length=100), nullable=False),
        sa.Column("street", sa.String(length=200), nullable=False),
        sa.Column("building", sa.String(length=100), nullable=False),
        sa.Column("floor", sa.String(length=20), nullable=True),
        sa.Column("apartment", sa.String(length=20), nullable=True),
        sa.Column("landmark", sa.String(length=200), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_addresses_customer_id", "addresses", ["customer_id"])

    for table, owner_column, owner_table in (
        ("staff_sessions", "user_id", "staff_users"),
        ("customer_sessions", "customer_id", "customers"),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.String(length=40), primary_key=True),
            sa.Column(owner_column, sa.String(length=40), sa.ForeignKey(f"{owner_table}.id"), nullable=False),
            sa.Column("token_hash", sa.String(length=64), nullable=False, unique=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index(f"ix_{table}_{owner_column}", table, [owner_column])
        op.create_index(f"ix_{table}_expires_at", table, ["expires_at"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("sku", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("name_ar", sa.String(length=255), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(length=16), nullable=False, server_default="piece"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "stock",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("product_id", sa.String(length=40), sa.ForeignKey("products.id"), nullable=False, unique=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("reorder_point", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("reorder_quantity", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("last_restocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("reserved_quantity >= 0", name="ck_stock_reserved_non_negative"),
        sa.CheckConstraint("reserved_quantity <= quantity", name="ck_stock_reserved_within_quantity"),
        sa.CheckConstraint(
            "available_quantity = quantity - reserved_quantity",
            name="ck_stock_available_matches",
        ),
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("product_id", sa.String(length=40), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_quantity", sa.Integer(), nullable=False),
        sa.Column("new_quantity", sa.Integer(), nullable=False),
        sa.Column("previous_reserved", sa.Integer(), nullable=False),
        sa.Column("new_reserved", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("reference_type", sa.String(length=32), nullable=True),
        sa.Column("reference_id", sa.String(length=40), nullable=True),
        sa.Column("performed_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_stock_movements_type", "stock_movements", ["type"])
    op.create_index("ix_stock_movements_created_at", "stock_movements", ["created_at"])
    op.create_index("ix_stock_movements_product_created", "stock_movements", ["product_id", "created_at"])
    op.create_index(
        "ix_stock_movements_reference",
        "stock_movements",
        ["reference_type", "reference_id", "product_id", "type"],
    )

    op.create_table(
        "delivery_zones",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("name_ar", sa.String(length=100), nullable=True),
        sa.Column("emirate", sa.String(length=64), nullable=False),
        sa.Column("areas", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("delivery_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("minimum_order_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("estimated_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("express_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("express_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_delivery_zones_emirate", "delivery_zones", ["emirate"])

    op.create_table(
        "discount_codes",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("code", sa.String(length=50), nullable=False, unique=True),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("minimum_order_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("maximum_discount_cents", sa.Integer(), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("type IN ('percentage', 'fixed')", name="ck_discount_codes_type"),
        sa.CheckConstraint("usage_count >= 0", name="ck_discount_codes_usage_non_negative"),
    )

    op.create_table(
        "document_sequences",
        sa.Column("document_type", sa.String(length=32), primary_key=True),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
    )
    op.bulk_insert(
        sa.table(
            "document_sequences",
            sa.column("document_type", sa.String),
            sa.column("next_number", sa.Integer),
        ),
        [{"document_type": "ORDER", "next_number": 1}],
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("order_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("customer_id", sa.String(length=40), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_mobile", sa.String(length=32), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discount_code", sa.String(length=50), nullable=True),
        sa.Column("delivery_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("vat_amount_cents", sa.Integer(), nullable=False),
        sa.Column("vat_rate_bps", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(length=16), nullable=False),
        sa.Column("gateway_transaction_id", sa.String(length=128), nullable=True),
        sa.Column("address_id", sa.String(length=40), sa.ForeignKey("addresses.id"), nullable=True),
        sa.Column("delivery_address", sa.JSON(), nullable=False),
        sa.Column("delivery_notes", sa.Text(), nullable=True),
        sa.Column("delivery_zone_id", sa.String(length=40), sa.ForeignKey("delivery_zones.id"), nullable=True),
        sa.Column("is_express", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("estimated_delivery_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_delivery_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_history", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="web"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(
            "total_cents = subtotal_cents - discount_cents + delivery_fee_cents + vat_amount_cents",
            name="ck_orders_total_reconciles",
        ),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_payment_status", "orders", ["payment_status"])
    op.create_index("ix_orders_customer_created", "orders", ["customer_id", "created_at"])
    op.create_index("ix_orders_status_created", "orders", ["status", "created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("order_id", sa.String(length=40), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_id", sa.String(length=40), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("product_name_ar", sa.String(length=255), nullable=True),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "delivery_tracking",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("order_id", sa.String(length=40), sa.ForeignKey("orders.id"), nullable=False, unique=True),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("driver_id", sa.String(length=40), sa.ForeignKey("staff_users.id"), nullable=False),
        sa.Column("driver_name", sa.String(length=255), nullable=False),
        sa.Column("driver_mobile", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="assigned"),
        sa.Column("current_location", sa.JSON(), nullable=True),
        sa.Column("estimated_arrival", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_arrival", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_proof", sa.JSON(), nullable=True),
        sa.Column("timeline", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_delivery_tracking_order_number", "delivery_tracking", ["order_number"])
    op.create_index("ix_delivery_tracking_driver_id", "delivery_tracking", ["driver_id"])
    op.create_index("ix_delivery_tracking_status", "delivery_tracking", ["status"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=40), primary_key=True),
        sa.Column("staff_user_id", sa.String(length=40), nullable=True),
        sa.Column("customer_id", sa.String(length=40), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("title_ar", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("message_ar", sa.Text(), nullable=False),
        sa.Column("link", sa.String(length=255), nullable=True),
        sa.Column("link_tab", sa.String(length=50), nullable=True),
        sa.Column("link_id", sa.String(length=40), nullable=True),
        sa.Column("unread", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(staff_user_id IS NULL) <> (customer_id IS NULL)",
            name="ck_notifications_single_owner",
        ),
    )
    op.create_index("ix_notifications_staff_created", "notifications", ["staff_user_id", "created_at"])
    op.create_index("ix_notifications_customer_created", "notifications", ["customer_id", "created_at"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("delivery_tracking")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("document_sequences")
    op.drop_table("discount_codes")
    op.drop_table("delivery_zones")
    op.drop_table("stock_movements")
    op.drop_table("stock")
    op.drop_table("products")
    op.drop_table("customer_sessions")
    op.drop_table("staff_sessions")
    op.drop_table("addresses")
    op.drop_table("customers")
    op.drop_table("staff_users")
