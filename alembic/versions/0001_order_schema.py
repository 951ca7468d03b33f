from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


revision = "0001_order_schema"
down_revision = None
branch_labels = None
depends_on = None


def _json_type(bind):
    if bind.dialect.name == "sqlite":
        return sa.JSON()
    return postgresql.JSONB(astext_type=sa.Text())


def _timestamps(with_updated: bool = False) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if with_updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def _user_fk(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id"), nullable=True)


def upgrade() -> None:
    bind = op.get_bind()
    json_type = _json_type(bind)
    existing = set(inspect(bind).get_table_names())

    if "companies" not in existing:
        op.create_table(
            "companies",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=100), nullable=False),
            *_timestamps(),
        )

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("auth_subject", sa.String(length=255), nullable=True),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=254), nullable=False),
            sa.Column("mobile", sa.String(length=100), nullable=True),
            sa.Column("is_rider", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("permissions", json_type, nullable=False),
            sa.Column("shopify_user_ids", json_type, nullable=False),
            sa.Column("coupon_codes", json_type, nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("company_id", "email", name="uq_users_company_email"),
        )
        op.create_index("ix_users_id", "users", ["id"], unique=False)
        op.create_index("ix_users_company_id", "users", ["company_id"], unique=False)
        op.create_index("ix_users_auth_subject", "users", ["auth_subject"], unique=True)

    if "company_locations" not in existing:
        op.create_table(
            "company_locations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("shopify_location_id", sa.String(length=64), nullable=True),
            sa.Column("shopify_shop_name", sa.String(length=255), nullable=True),
            sa.Column("default_merchant_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_company_locations_company_id", "company_locations", ["company_id"], unique=False)
        op.create_index(
            "ix_company_locations_shopify_location_id", "company_locations", ["shopify_location_id"], unique=True
        )

    if "shopify_webhook_secrets" not in existing:
        op.create_table(
            "shopify_webhook_secrets",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("label", sa.String(length=100), nullable=False),
            sa.Column("secret", sa.Text(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("company_id", "label", name="uq_shopify_webhook_secrets_company_label"),
        )
        op.create_index(
            "ix_shopify_webhook_secrets_company_id", "shopify_webhook_secrets", ["company_id"], unique=False
        )

    if "customers" not in existing:
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("shopify_customer_id", sa.String(length=64), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=254), nullable=True),
            sa.Column("phone", sa.String(length=100), nullable=True),
            sa.Column("default_address", json_type, nullable=True),
            sa.Column("order_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_purchase_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(with_updated=True),
            sa.UniqueConstraint("company_id", "shopify_customer_id", name="uq_customers_company_shopify_customer"),
        )
        op.create_index("ix_customers_company_id", "customers", ["company_id"], unique=False)
        op.create_index("ix_customers_phone", "customers", ["phone"], unique=False)

    for table_name, name_length in (("vendors", 255), ("categories", 255)):
        if table_name in existing:
            continue
        extra = [sa.Column("full_name", sa.String(length=500), nullable=True)] if table_name == "categories" else []
        op.create_table(
            table_name,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("name", sa.String(length=name_length), nullable=False),
            *extra,
            *_timestamps(),
            sa.UniqueConstraint("company_id", "name", name=f"uq_{table_name}_company_name"),
        )
        op.create_index(f"ix_{table_name}_company_id", table_name, ["company_id"], unique=False)

    if "product_items" not in existing:
        op.create_table(
            "product_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_location_id", sa.Integer(), sa.ForeignKey("company_locations.id"), nullable=False),
            sa.Column("shopify_product_id", sa.String(length=64), nullable=True),
            sa.Column("shopify_variant_id", sa.String(length=64), nullable=False),
            sa.Column("product_title", sa.String(length=255), nullable=False),
            sa.Column("variant_title", sa.String(length=255), nullable=True),
            sa.Column("sku", sa.String(length=255), nullable=True),
            sa.Column("barcode", sa.String(length=255), nullable=True),
            sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("compare_at_price", sa.Numeric(12, 2), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=True),
            sa.Column("product_type", sa.String(length=255), nullable=True),
            sa.Column("handle", sa.String(length=255), nullable=True),
            sa.Column("image_url", sa.Text(), nullable=True),
            sa.Column("tags", json_type, nullable=True),
            sa.Column("inventory_quantity", sa.Integer(), nullable=True),
            sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=True),
            sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
            *_timestamps(with_updated=True),
            sa.UniqueConstraint(
                "company_location_id", "shopify_variant_id", name="uq_product_items_location_variant"
            ),
        )
        op.create_index("ix_product_items_company_location_id", "product_items", ["company_location_id"], unique=False)
        op.create_index("ix_product_items_shopify_product_id", "product_items", ["shopify_product_id"], unique=False)

    if "package_hold_reasons" not in existing:
        op.create_table(
            "package_hold_reasons",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index("ix_package_hold_reasons_company_id", "package_hold_reasons", ["company_id"], unique=False)

    if "courier_services" not in existing:
        op.create_table(
            "courier_services",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("phone", sa.String(length=100), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index("ix_courier_services_company_id", "courier_services", ["company_id"], unique=False)

    if "sample_free_issue_items" not in existing:
        op.create_table(
            "sample_free_issue_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False, server_default="sample"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index(
            "ix_sample_free_issue_items_company_id", "sample_free_issue_items", ["company_id"], unique=False
        )

    if "orders" not in existing:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("company_location_id", sa.Integer(), sa.ForeignKey("company_locations.id"), nullable=False),
            sa.Column("shopify_order_id", sa.String(length=64), nullable=False),
            sa.Column("order_number", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=64), nullable=True),
            sa.Column("source_name", sa.String(length=20), nullable=False, server_default="web"),
            sa.Column("shopify_user_id", sa.String(length=64), nullable=True),
            sa.Column("shopify_created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("subtotal_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("total_tax", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("total_discounts", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("total_shipping", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("total_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("currency", sa.String(length=10), nullable=True),
            sa.Column("financial_status", sa.String(length=50), nullable=True),
            sa.Column("fulfillment_status", sa.String(length=50), nullable=True),
            sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
            sa.Column("customer_email", sa.String(length=254), nullable=True),
            sa.Column("customer_phone", sa.String(length=100), nullable=True),
            sa.Column("customer_first_name", sa.String(length=100), nullable=True),
            sa.Column("customer_last_name", sa.String(length=100), nullable=True),
            sa.Column("shipping_address", json_type, nullable=True),
            sa.Column("billing_address", json_type, nullable=True),
            sa.Column("discount_codes", json_type, nullable=True),
            sa.Column("discount_applications", json_type, nullable=True),
            sa.Column("shipping_lines", json_type, nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("tags", sa.Text(), nullable=True),
            sa.Column("raw_payload", json_type, nullable=True),
            _user_fk("assigned_merchant_id"),
            sa.Column("fulfillment_stage", sa.String(length=30), nullable=False, server_default="order_received"),
            sa.Column("sample_free_issue_complete_at", sa.DateTime(timezone=True), nullable=True),
            _user_fk("sample_free_issue_complete_by_id"),
            sa.Column("print_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_printed_at", sa.DateTime(timezone=True), nullable=True),
            _user_fk("last_printed_by_id"),
            sa.Column("package_ready_at", sa.DateTime(timezone=True), nullable=True),
            _user_fk("package_ready_by_id"),
            sa.Column("package_on_hold_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column(
                "package_hold_reason_id", sa.Integer(), sa.ForeignKey("package_hold_reasons.id"), nullable=True
            ),
            sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
            _user_fk("dispatched_by_id"),
            _user_fk("dispatched_by_rider_id"),
            sa.Column(
                "dispatched_by_courier_service_id",
                sa.Integer(),
                sa.ForeignKey("courier_services.id"),
                nullable=True,
            ),
            sa.Column("rider_delivery_token", sa.String(length=64), nullable=True),
            sa.Column("rider_delivery_token_used", sa.String(length=64), nullable=True),
            sa.Column("delivery_complete_at", sa.DateTime(timezone=True), nullable=True),
            _user_fk("delivery_complete_by_id"),
            sa.Column("invoice_complete_at", sa.DateTime(timezone=True), nullable=True),
            _user_fk("invoice_complete_by_id"),
            *_timestamps(with_updated=True),
            sa.UniqueConstraint("company_id", "shopify_order_id", name="uq_orders_company_shopify_order"),
        )
        op.create_index("ix_orders_company_id", "orders", ["company_id"], unique=False)
        op.create_index("ix_orders_company_location_id", "orders", ["company_location_id"], unique=False)
        op.create_index("ix_orders_fulfillment_stage", "orders", ["fulfillment_stage"], unique=False)
        op.create_index("ix_orders_rider_delivery_token", "orders", ["rider_delivery_token"], unique=True)
        op.create_index("ix_orders_rider_delivery_token_used", "orders", ["rider_delivery_token_used"], unique=False)

    if "order_line_items" not in existing:
        op.create_table(
            "order_line_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
            sa.Column("product_item_id", sa.Integer(), sa.ForeignKey("product_items.id"), nullable=False),
            sa.Column("shopify_line_item_id", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=True),
            sa.Column("variant_title", sa.String(length=255), nullable=True),
            sa.Column("sku", sa.String(length=255), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("total_discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.UniqueConstraint("order_id", "shopify_line_item_id", name="uq_order_line_items_order_line_item"),
        )
        op.create_index("ix_order_line_items_order_id", "order_line_items", ["order_id"], unique=False)
        op.create_index("ix_order_line_items_product_item_id", "order_line_items", ["product_item_id"], unique=False)

    if "order_sample_free_issues" not in existing:
        op.create_table(
            "order_sample_free_issues",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "sample_free_issue_item_id",
                sa.Integer(),
                sa.ForeignKey("sample_free_issue_items.id"),
                nullable=False,
            ),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("added_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint(
                "order_id", "sample_free_issue_item_id", name="uq_order_sample_free_issues_order_item"
            ),
        )
        op.create_index(
            "ix_order_sample_free_issues_order_id", "order_sample_free_issues", ["order_id"], unique=False
        )

    if "order_remarks" not in existing:
        op.create_table(
            "order_remarks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
            sa.Column("stage", sa.String(length=30), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False, server_default="internal"),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("show_on_invoice", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("added_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            *_timestamps(with_updated=True),
        )
        op.create_index("ix_order_remarks_order_id", "order_remarks", ["order_id"], unique=False)

    if "failed_order_webhooks" not in existing:
        op.create_table(
            "failed_order_webhooks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("company_location_id", sa.Integer(), sa.ForeignKey("company_locations.id"), nullable=False),
            sa.Column("shopify_order_id", sa.String(length=64), nullable=True),
            sa.Column("topic", sa.String(length=100), nullable=True),
            sa.Column("payload", json_type, nullable=False),
            sa.Column("error_message", sa.Text(), nullable=False),
            sa.Column("error_stack", sa.Text(), nullable=True),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(with_updated=True),
        )
        op.create_index("ix_failed_order_webhooks_company_id", "failed_order_webhooks", ["company_id"], unique=False)
        op.create_index(
            "ix_failed_order_webhooks_company_resolved",
            "failed_order_webhooks",
            ["company_id", "resolved_at"],
            unique=False,
        )
        op.create_index(
            "ix_failed_order_webhooks_shopify_order",
            "failed_order_webhooks",
            ["company_id", "shopify_order_id"],
            unique=False,
        )

    if "sms_portal_configs" not in existing:
        op.create_table(
            "sms_portal_configs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False, unique=True),
            sa.Column("auth_url", sa.String(length=500), nullable=False),
            sa.Column("sms_url", sa.String(length=500), nullable=False),
            sa.Column("username", sa.String(length=255), nullable=False),
            sa.Column("password", sa.String(length=255), nullable=False),
            sa.Column("campaign_name", sa.String(length=100), nullable=False),
            sa.Column("mask", sa.String(length=50), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )

    if "sms_notification_configs" not in existing:
        op.create_table(
            "sms_notification_configs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("trigger", sa.String(length=50), nullable=False),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("template", sa.Text(), nullable=False, server_default=""),
            sa.Column("send_to_customer", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("send_to_rider", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("additional_recipients", json_type, nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("company_id", "trigger", name="uq_sms_notification_configs_company_trigger"),
        )
        op.create_index(
            "ix_sms_notification_configs_company_id", "sms_notification_configs", ["company_id"], unique=False
        )

    if "sms_logs" not in existing:
        op.create_table(
            "sms_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=False),
            sa.Column("phone_number", sa.String(length=30), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("sent_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="sent"),
            *_timestamps(),
        )
        op.create_index("ix_sms_logs_company_id", "sms_logs", ["company_id"], unique=False)
        op.create_index("ix_sms_logs_company_created", "sms_logs", ["company_id", "created_at"], unique=False)


def downgrade() -> None:
    for table_name in (
        "sms_logs",
        "sms_notification_configs",
        "sms_portal_configs",
        "failed_order_webhooks",
        "order_remarks",
        "order_sample_free_issues",
        "order_line_items",
        "orders",
        "sample_free_issue_items",
        "courier_services",
        "package_hold_reasons",
        "product_items",
        "categories",
        "vendors",
        "customers",
        "shopify_webhook_secrets",
        "company_locations",
        "users",
        "companies",
    ):
        op.drop_table(table_name)
