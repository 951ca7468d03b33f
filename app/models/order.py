import sqlalchemy as sa
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base

# Fulfillment stages, in lifecycle order
STAGE_ORDER_RECEIVED = "order_received"
STAGE_SAMPLE_FREE_ISSUE = "sample_free_issue"
STAGE_PRINT = "print"
STAGE_READY_TO_DISPATCH = "ready_to_dispatch"
STAGE_DISPATCHED = "dispatched"
STAGE_DELIVERY_COMPLETE = "delivery_complete"

FULFILLMENT_STAGES = (
    STAGE_ORDER_RECEIVED,
    STAGE_SAMPLE_FREE_ISSUE,
    STAGE_PRINT,
    STAGE_READY_TO_DISPATCH,
    STAGE_DISPATCHED,
    STAGE_DELIVERY_COMPLETE,
)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("company_id", "shopify_order_id", name="uq_orders_company_shopify_order"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    company_location_id = Column(Integer, ForeignKey("company_locations.id"), nullable=False, index=True)

    shopify_order_id = Column(String(64), nullable=False)
    order_number = Column(Integer, nullable=True)
    name = Column(String(64), nullable=True)  # "#1001"
    source_name = Column(String(20), nullable=False, default="web")
    shopify_user_id = Column(String(64), nullable=True)
    shopify_created_at = Column(DateTime(timezone=True), nullable=True)

    # Totals mirrored from Shopify
    subtotal_price = Column(Numeric(12, 2), nullable=False, default=0)
    total_tax = Column(Numeric(12, 2), nullable=False, default=0)
    total_discounts = Column(Numeric(12, 2), nullable=False, default=0)
    total_shipping = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(10), nullable=True)
    financial_status = Column(String(50), nullable=True)
    fulfillment_status = Column(String(50), nullable=True)

    # Customer snapshot
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    customer_email = Column(String(254), nullable=True)
    customer_phone = Column(String(100), nullable=True)
    customer_first_name = Column(String(100), nullable=True)
    customer_last_name = Column(String(100), nullable=True)

    shipping_address = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    billing_address = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    discount_codes = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    discount_applications = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    shipping_lines = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    note = Column(Text, nullable=True)
    tags = Column(Text, nullable=True)
    raw_payload = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    assigned_merchant_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Fulfillment workflow
    fulfillment_stage = Column(String(30), nullable=False, default=STAGE_ORDER_RECEIVED, index=True)

    sample_free_issue_complete_at = Column(DateTime(timezone=True), nullable=True)
    sample_free_issue_complete_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    print_count = Column(Integer, nullable=False, default=0)
    last_printed_at = Column(DateTime(timezone=True), nullable=True)
    last_printed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    package_ready_at = Column(DateTime(timezone=True), nullable=True)
    package_ready_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    package_on_hold_at = Column(DateTime(timezone=True), nullable=True)
    package_hold_reason_id = Column(Integer, ForeignKey("package_hold_reasons.id"), nullable=True)

    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    dispatched_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    dispatched_by_rider_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    dispatched_by_courier_service_id = Column(Integer, ForeignKey("courier_services.id"), nullable=True)
    rider_delivery_token = Column(String(64), nullable=True, unique=True, index=True)
    # Consumed token, so a replayed link can still be answered
    rider_delivery_token_used = Column(String(64), nullable=True, index=True)

    delivery_complete_at = Column(DateTime(timezone=True), nullable=True)
    delivery_complete_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    invoice_complete_at = Column(DateTime(timezone=True), nullable=True)
    invoice_complete_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="orders")
    company_location = relationship("CompanyLocation")
    assigned_merchant = relationship("User", foreign_keys=[assigned_merchant_id])
    rider = relationship("User", foreign_keys=[dispatched_by_rider_id])
    courier_service = relationship("CourierService")
    hold_reason = relationship("PackageHoldReason")
    line_items = relationship(
        "OrderLineItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineItem.id",
    )
    remarks = relationship("OrderRemark", back_populates="order", cascade="all, delete-orphan")
    sample_free_issues = relationship("OrderSampleFreeIssue", back_populates="order", cascade="all, delete-orphan")

    @property
    def is_on_hold(self) -> bool:
        return self.package_on_hold_at is not None

    @property
    def is_pos(self) -> bool:
        return (self.source_name or "").lower() == "pos"


class OrderLineItem(Base):
    __tablename__ = "order_line_items"
    __table_args__ = (
        UniqueConstraint("order_id", "shopify_line_item_id", name="uq_order_line_items_order_line_item"),
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_item_id = Column(Integer, ForeignKey("product_items.id"), nullable=False, index=True)
    shopify_line_item_id = Column(String(64), nullable=False)

    title = Column(String(255), nullable=True)
    variant_title = Column(String(255), nullable=True)
    sku = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    total_discount = Column(Numeric(12, 2), nullable=False, default=0)

    order = relationship("Order", back_populates="line_items")
    product_item = relationship("ProductItem")
