from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from sqlalchemy.orm import Session

from app.core.config import APP_PUBLIC_URL
from app.models.company import CompanyLocation
from app.models.order import Order
from app.models.sms import SmsNotificationConfig
from app.models.user import User
from app.services.sms_gateway import format_phone_number, send_sms

logger = logging.getLogger(__name__)

RIDER_TRIGGER = "rider_dispatched"
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{name}`` placeholders; unknown or empty ones render as ''."""

    def _replace(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, template or "")


def get_delivery_url(token: str | None, base_url: str = APP_PUBLIC_URL) -> str:
    if not token:
        return ""
    base = base_url.rstrip("/")
    if not base.startswith("http"):
        base = f"https://{base}"
    return f"{base}/r/d/{token}"


def build_order_sms_context(db: Session, order: Order) -> dict[str, str]:
    location = db.get(CompanyLocation, order.company_location_id)
    rider = db.get(User, order.dispatched_by_rider_id) if order.dispatched_by_rider_id else None
    customer_name = " ".join(
        part for part in (order.customer_first_name, order.customer_last_name) if part
    ).strip()
    customer_phone = order.customer_phone or (order.customer.phone if order.customer else None)
    return {
        "orderNumber": str(order.order_number) if order.order_number is not None else (order.name or ""),
        "orderName": order.name or "",
        "customerName": customer_name,
        "customerPhone": customer_phone or "",
        "locationName": location.name if location else "",
        "deliveryUrl": get_delivery_url(order.rider_delivery_token),
        "riderName": rider.name if rider else "",
        "riderPhone": (rider.mobile or "") if rider else "",
    }


def select_recipients(config: SmsNotificationConfig, trigger: str, variables: Mapping[str, Any]) -> list[str]:
    candidates: list[str] = []
    if trigger == RIDER_TRIGGER:
        if config.send_to_rider:
            candidates.append(str(variables.get("riderPhone") or ""))
    elif config.send_to_customer:
        candidates.append(str(variables.get("customerPhone") or ""))
    candidates.extend(str(phone or "") for phone in (config.additional_recipients or []))

    recipients: list[str] = []
    seen: set[str] = set()
    for phone in candidates:
        phone = phone.strip()
        key = format_phone_number(phone)
        if not key or key in seen:
            continue
        seen.add(key)
        recipients.append(phone)
    return recipients


def dispatch_order_sms(
    db: Session,
    *,
    company_id: int,
    order_id: int,
    trigger: str,
    context: Mapping[str, Any] | None = None,
    sent_by_id: int | None = None,
) -> list[str]:
    """Send the configured SMS for ``trigger`` and return the numbers it reached.

    Best effort: a missing or disabled configuration, an order without
    recipients or a failing recipient is logged and never raised.
    """
    config = (
        db.query(SmsNotificationConfig)
        .filter(SmsNotificationConfig.company_id == company_id, SmsNotificationConfig.trigger == trigger)
        .first()
    )
    log_extra = {"company_id": company_id, "order_id": order_id, "trigger": trigger}
    if config is None:
        logger.warning("no SMS config for trigger=%s, skipping", trigger, extra=log_extra)
        return []
    if not config.enabled:
        logger.warning("SMS trigger=%s disabled, skipping", trigger, extra=log_extra)
        return []

    order = db.query(Order).filter(Order.id == order_id, Order.company_id == company_id).first()
    if order is None:
        logger.warning("order not found for SMS trigger=%s", trigger, extra=log_extra)
        return []

    variables = build_order_sms_context(db, order)
    variables.update({key: value for key, value in (context or {}).items() if value is not None})
    message = render_template(config.template, variables)

    recipients = select_recipients(config, trigger, variables)
    if not recipients:
        logger.warning("no SMS recipients for trigger=%s", trigger, extra=log_extra)
        return []

    delivered: list[str] = []
    for phone in recipients:
        try:
            result = send_sms(db, company_id=company_id, phone_number=phone, message=message, sent_by_id=sent_by_id)
        except Exception:
            db.rollback()
            logger.exception("SMS send crashed recipient=%s", phone, extra=log_extra)
            continue
        if result.success:
            delivered.append(phone)
        else:
            logger.error("SMS send failed recipient=%s reason=%s", phone, result.message, extra=log_extra)
    return delivered
