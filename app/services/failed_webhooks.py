from __future__ import annotations

import logging
import traceback
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import WEBHOOK_ERROR_MAX_LENGTH
from app.models.company import CompanyLocation
from app.models.failed_order_webhook import FailedOrderWebhook
from app.services.order_ingestion import IngestionResult, ingest_order
from app.services.order_validation import validate_order_payload

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
ORDER_TOPIC = "orders/create"


class InvalidStoredPayload(ValueError):
    def __init__(self, errors: dict[str, list[str]]):
        super().__init__("Stored payload is no longer a valid order")
        self.errors = errors


class RetryFailed(RuntimeError):
    def __init__(self, entry: FailedOrderWebhook, message: str):
        super().__init__(message)
        self.entry = entry


def _truncate(value: str | None) -> str | None:
    if value is None:
        return None
    return value[:WEBHOOK_ERROR_MAX_LENGTH]


def _shopify_order_id(payload: Any) -> str | None:
    if isinstance(payload, dict) and payload.get("id") is not None and not isinstance(payload.get("id"), bool):
        return str(payload["id"]).strip() or None
    return None


def record_failed_webhook(
    db: Session,
    *,
    location: CompanyLocation,
    payload: Any,
    error: BaseException,
    topic: str | None = None,
) -> FailedOrderWebhook:
    """Persist an ingestion failure, reusing the open entry of the same order."""
    shopify_order_id = _shopify_order_id(payload)
    message = _truncate(str(error) or error.__class__.__name__)
    stack = _truncate("".join(traceback.format_exception(type(error), error, error.__traceback__)))

    entry = None
    if shopify_order_id:
        entry = (
            db.query(FailedOrderWebhook)
            .filter(
                FailedOrderWebhook.company_id == location.company_id,
                FailedOrderWebhook.shopify_order_id == shopify_order_id,
                FailedOrderWebhook.resolved_at.is_(None),
            )
            .order_by(FailedOrderWebhook.id.desc())
            .first()
        )

    if entry is None:
        entry = FailedOrderWebhook(
            company_id=location.company_id,
            company_location_id=location.id,
            shopify_order_id=shopify_order_id,
            attempts=1,
        )
        db.add(entry)
    else:
        entry.attempts = (entry.attempts or 0) + 1

    entry.payload = payload
    entry.topic = topic or entry.topic
    entry.error_message = message
    entry.error_stack = stack
    db.commit()
    db.refresh(entry)

    logger.error(
        "order webhook failed entry=%s attempts=%s error=%s",
        entry.id,
        entry.attempts,
        message,
        extra={"company_id": location.company_id, "shopify_order_id": shopify_order_id},
    )
    return entry


def list_unresolved(
    db: Session, company_id: int, *, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
) -> tuple[list[FailedOrderWebhook], int]:
    query = db.query(FailedOrderWebhook).filter(
        FailedOrderWebhook.company_id == company_id,
        FailedOrderWebhook.resolved_at.is_(None),
    )
    total = query.count()
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    items = (
        query.order_by(FailedOrderWebhook.created_at.desc(), FailedOrderWebhook.id.desc())
        .offset(max(offset, 0))
        .limit(limit)
        .all()
    )
    return items, total


def get_failed_webhook(db: Session, company_id: int, entry_id: int) -> FailedOrderWebhook | None:
    return (
        db.query(FailedOrderWebhook)
        .filter(FailedOrderWebhook.id == entry_id, FailedOrderWebhook.company_id == company_id)
        .first()
    )


def shopify_admin_order_url(location: CompanyLocation | None, shopify_order_id: str | None) -> str | None:
    if location is None or not location.shopify_shop_name or not shopify_order_id:
        return None
    handle = location.shopify_shop_name.strip().lower()
    for prefix in ("https://", "http://"):
        if handle.startswith(prefix):
            handle = handle[len(prefix):]
    handle = handle.split("/")[0].replace(".myshopify.com", "")
    return f"https://admin.shopify.com/store/{handle}/orders/{shopify_order_id}"


def retry_failed_webhook(db: Session, entry: FailedOrderWebhook) -> IngestionResult:
    """Run a stored payload through ingestion again.

    Success resolves the entry (and any other open entry of the same order)
    inside the ingestion transaction. Failure updates the entry in place.
    """
    location = db.get(CompanyLocation, entry.company_location_id)
    if location is None:
        raise RetryFailed(entry, "Company location no longer exists")

    validation = validate_order_payload(entry.payload)
    if not validation.ok:
        raise InvalidStoredPayload(validation.errors)

    payload = entry.payload
    topic = entry.topic
    try:
        return ingest_order(db, validation.payload, location, raw_payload=payload)
    except Exception as exc:
        updated = record_failed_webhook(db, location=location, payload=payload, error=exc, topic=topic)
        raise RetryFailed(updated, str(exc) or exc.__class__.__name__) from exc
