from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.schemas.shopify_order import ShopifyOrderPayload
from app.services.datetime_utils import ensure_utc, utc_now
from app.services.text_utils import truncate


def ensure_customer(
    db: Session,
    payload: ShopifyOrderPayload,
    company_id: int,
    *,
    is_new_order: bool,
) -> Customer | None:
    """Upsert the customer of an order keyed by (company, Shopify customer id).

    ``is_new_order`` is False for a re-delivered webhook: the purchase counter
    is left alone and ``last_purchase_at`` only moves forward.
    """
    source = payload.customer
    if source is None:
        return None

    purchased_at: datetime = ensure_utc(payload.created_at) or utc_now()
    email = source.email or payload.contact_email or payload.email
    phone = source.phone or payload.phone

    customer = (
        db.query(Customer)
        .filter(Customer.company_id == company_id, Customer.shopify_customer_id == source.id)
        .first()
    )

    if customer is None:
        customer = Customer(
            company_id=company_id,
            shopify_customer_id=source.id,
            order_count=1 if is_new_order else 0,
            last_purchase_at=purchased_at if is_new_order else None,
        )
        db.add(customer)
    elif is_new_order:
        customer.order_count = (customer.order_count or 0) + 1
        customer.last_purchase_at = purchased_at
    else:
        current = ensure_utc(customer.last_purchase_at)
        if current is None or purchased_at > current:
            customer.last_purchase_at = purchased_at

    customer.first_name = truncate(source.first_name, 100)
    customer.last_name = truncate(source.last_name, 100)
    customer.email = truncate(email, 254)
    customer.phone = truncate(phone, 100)
    if source.default_address is not None:
        customer.default_address = source.default_address

    db.flush()
    return customer
