from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class OrderLineItemResponse(_OrmModel):
    id: int
    shopify_line_item_id: str
    product_item_id: int
    title: Optional[str] = None
    variant_title: Optional[str] = None
    sku: Optional[str] = None
    quantity: int
    price: Decimal
    total_discount: Decimal


class OrderRemarkResponse(_OrmModel):
    id: int
    order_id: int
    stage: str
    type: str
    content: str
    show_on_invoice: bool
    added_by_id: Optional[int] = None
    created_at: Optional[datetime] = None


class OrderResponse(_OrmModel):
    id: int
    company_id: int
    company_location_id: int
    shopify_order_id: str
    order_number: Optional[int] = None
    name: Optional[str] = None
    source_name: str
    currency: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    subtotal_price: Decimal
    total_tax: Decimal
    total_discounts: Decimal
    total_shipping: Decimal
    total_price: Decimal
    customer_id: Optional[int] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    assigned_merchant_id: Optional[int] = None

    fulfillment_stage: str
    sample_free_issue_complete_at: Optional[datetime] = None
    print_count: int
    last_printed_at: Optional[datetime] = None
    package_ready_at: Optional[datetime] = None
    package_on_hold_at: Optional[datetime] = None
    package_hold_reason_id: Optional[int] = None
    dispatched_at: Optional[datetime] = None
    dispatched_by_rider_id: Optional[int] = None
    dispatched_by_courier_service_id: Optional[int] = None
    delivery_complete_at: Optional[datetime] = None
    invoice_complete_at: Optional[datetime] = None

    line_items: list[OrderLineItemResponse] = Field(default_factory=list)


class RiderDeliveryResponse(BaseModel):
    status: str
    message: Optional[str] = None
    order_name: Optional[str] = None
    order_number: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    total_price: Optional[Decimal] = None
    currency: Optional[str] = None
    delivery_complete_at: Optional[datetime] = None


class FailedWebhookSummary(_OrmModel):
    id: int
    company_location_id: int
    shopify_order_id: Optional[str] = None
    topic: Optional[str] = None
    error_message: str
    attempts: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class FailedWebhookDetail(FailedWebhookSummary):
    payload: Any = None
    error_stack: Optional[str] = None
    shopify_admin_url: Optional[str] = None
