from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import unit_of_work
from app.models.company import CompanyLocation
from app.models.failed_order_webhook import FailedOrderWebhook
from app.models.order import STAGE_ORDER_RECEIVED, Order
from app.schemas.shopify_order import ShopifyOrderPayload
from app.services.datetime_utils import ensure_utc, utc_now
from app.services.order_assignment import resolve_assigned_merchant
from app.services.order_customers import ensure_customer
from app.services.order_events import NotificationRequest
from app.services.order_line_items import upsert_line_item
from app.services.text_utils import truncate

logger = logging.getLogger(__name__)

SOURCE_NAME_MAX_LENGTH = 20
MAX_ATTEMPTS = 2


class IngestionError(RuntimeError):
    """Raised when an order delivery could not be persisted."""


@dataclass
class IngestionResult:
    order: Order
    created: bool
    notifications: list[NotificationRequest] = field(default_factory=list)


def _money(primary: Optional[Decimal], fallback: Optional[Decimal]) -> Decimal:
    if primary is not None:
        return primary
    if fallback is not None:
        return fallback
    return Decimal("0")


def _source_name(payload: ShopifyOrderPayload) -> str:
    source = (payload.source_name or "").strip() or "web"
    return source[:SOURCE_NAME_MAX_LENGTH]


def _apply_order_fields(order: Order, payload: ShopifyOrderPayload, raw_payload: dict[str, Any]) -> None:
    customer = payload.customer

    order.order_number = payload.order_number
    order.name = truncate(payload.name, 64)
    order.source_name = _source_name(payload)
    order.shopify_user_id = truncate(payload.user_id, 64)
    order.shopify_created_at = ensure_utc(payload.created_at)

    order.subtotal_price = _money(payload.subtotal_price, payload.current_subtotal_price)
    order.total_tax = _money(payload.total_tax, payload.current_total_tax)
    order.total_discounts = _money(payload.total_discounts, payload.current_total_discounts)
    order.total_shipping = sum((line.charged_price for line in payload.shipping_lines), Decimal("0"))
    order.total_price = _money(payload.total_price, payload.current_total_price)
    order.currency = truncate(payload.currency, 10)
    order.financial_status = truncate(payload.financial_status, 50)
    order.fulfillment_status = truncate(payload.fulfillment_status, 50)

    email = payload.contact_email or payload.email or (customer.email if customer else None)
    order.customer_email = truncate(email, 254)
    order.customer_phone = truncate(payload.phone or (customer.phone if customer else None), 100)
    order.customer_first_name = truncate(customer.first_name, 100) if customer else None
    order.customer_last_name = truncate(customer.last_name, 100) if customer else None

    order.shipping_address = payload.shipping_address
    order.billing_address = payload.billing_address
    order.discount_codes = [code.model_dump(mode="json") for code in payload.discount_codes]
    order.discount_applications = payload.discount_applications
    order.shipping_lines = [line.model_dump(mode="json") for line in payload.shipping_lines]
    order.note = payload.note
    order.tags = payload.tags
    order.raw_payload = raw_payload


def _resolve_pending_failures(db: Session, company_id: int, shopify_order_id: str) -> int:
    pending = (
        db.query(FailedOrderWebhook)
        .filter(
            FailedOrderWebhook.company_id == company_id,
            FailedOrderWebhook.shopify_order_id == shopify_order_id,
            FailedOrderWebhook.resolved_at.is_(None),
        )
        .all()
    )
    now = utc_now()
    for entry in pending:
        entry.resolved_at = now
    return len(pending)


def _ingest(
    db: Session,
    payload: ShopifyOrderPayload,
    location: CompanyLocation,
    raw_payload: dict[str, Any],
) -> IngestionResult:
    company_id = location.company_id
    order = (
        db.query(Order)
        .filter(Order.company_id == company_id, Order.shopify_order_id == payload.id)
        .first()
    )
    created = order is None
    if created:
        order = Order(
            company_id=company_id,
            company_location_id=location.id,
            shopify_order_id=payload.id,
            fulfillment_stage=STAGE_ORDER_RECEIVED,
            assigned_merchant_id=resolve_assigned_merchant(db, payload, location),
        )
        db.add(order)

    _apply_order_fields(order, payload, raw_payload)

    customer = ensure_customer(db, payload, company_id, is_new_order=created)
    order.customer_id = customer.id if customer else None
    db.flush()

    delivered_ids = set()
    for line_item in payload.line_items:
        upsert_line_item(db, order, line_item, location)
        delivered_ids.add(line_item.id)
    for stale in [row for row in order.line_items if row.shopify_line_item_id not in delivered_ids]:
        order.line_items.remove(stale)

    resolved = _resolve_pending_failures(db, company_id, payload.id)
    db.flush()

    notifications = []
    if created:
        notifications.append(NotificationRequest(company_id=company_id, order_id=order.id, trigger="order_received"))

    logger.info(
        "order ingested order=%s created=%s line_items=%s resolved_failures=%s",
        order.id,
        created,
        len(payload.line_items),
        resolved,
        extra={"company_id": company_id, "order_id": order.id, "shopify_order_id": payload.id},
    )
    return IngestionResult(order=order, created=created, notifications=notifications)


def ingest_order(
    db: Session,
    payload: ShopifyOrderPayload,
    location: CompanyLocation,
    *,
    raw_payload: dict[str, Any],
) -> IngestionResult:
    """Create or refresh the order described by ``payload`` in one transaction.

    Re-delivering the same payload updates the existing order in place. A
    unique-key collision with a concurrent delivery rolls back and the whole
    unit is replayed once, which then takes the update path.
    """
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            with unit_of_work(db):
                return _ingest(db, payload, location, raw_payload)
        except IntegrityError:
            if attempt >= MAX_ATTEMPTS:
                raise
            logger.warning(
                "concurrent delivery collided, replaying order=%s attempt=%s",
                payload.id,
                attempt,
                extra={"company_id": location.company_id, "shopify_order_id": payload.id},
            )
    raise IngestionError(f"Order {payload.id} could not be ingested")
