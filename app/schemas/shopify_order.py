from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import Money, ShopifyId


class _ShopifyModel(BaseModel):
    # Unknown Shopify fields are ignored
    model_config = ConfigDict(extra="ignore")


class ShopifyCustomer(_ShopifyModel):
    id: ShopifyId
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    default_address: Optional[dict[str, Any]] = None


class ShopifyDiscountCode(_ShopifyModel):
    code: str
    amount: Optional[Money] = None
    type: Optional[str] = None


class ShopifyShippingLine(_ShopifyModel):
    title: Optional[str] = None
    code: Optional[str] = None
    price: Optional[Money] = None
    discounted_price: Optional[Money] = None

    @property
    def charged_price(self) -> Decimal:
        if self.price is not None:
            return self.price
        return self.discounted_price if self.discounted_price is not None else Decimal("0")


class ShopifyLineItem(_ShopifyModel):
    id: ShopifyId
    variant_id: ShopifyId
    product_id: Optional[ShopifyId] = None
    title: Optional[str] = None
    variant_title: Optional[str] = None
    name: Optional[str] = None
    sku: Optional[str] = None
    vendor: Optional[str] = None
    quantity: int = Field(ge=1)
    price: Money
    total_discount: Optional[Money] = None


class ShopifyOrderPayload(_ShopifyModel):
    id: ShopifyId
    order_number: Optional[int] = None
    name: Optional[str] = None
    source_name: Optional[str] = None
    user_id: Optional[ShopifyId] = None
    location_id: Optional[ShopifyId] = None
    created_at: Optional[datetime] = None

    currency: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None

    total_price: Money
    subtotal_price: Optional[Money] = None
    total_tax: Optional[Money] = None
    total_discounts: Optional[Money] = None
    current_total_price: Optional[Money] = None
    current_subtotal_price: Optional[Money] = None
    current_total_tax: Optional[Money] = None
    current_total_discounts: Optional[Money] = None

    email: Optional[str] = None
    contact_email: Optional[str] = None
    phone: Optional[str] = None
    customer: Optional[ShopifyCustomer] = None
    shipping_address: Optional[dict[str, Any]] = None
    billing_address: Optional[dict[str, Any]] = None

    discount_codes: list[ShopifyDiscountCode] = Field(default_factory=list)
    discount_applications: list[dict[str, Any]] = Field(default_factory=list)
    shipping_lines: list[ShopifyShippingLine] = Field(default_factory=list)
    line_items: list[ShopifyLineItem]

    note: Optional[str] = None
    tags: Optional[str] = None
