from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_any_permission
from app.models.company import CompanyLocation
from app.models.user import User
from app.schemas.order import FailedWebhookDetail, FailedWebhookSummary
from app.services.failed_webhooks import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    InvalidStoredPayload,
    RetryFailed,
    get_failed_webhook,
    list_unresolved,
    retry_failed_webhook,
    shopify_admin_order_url,
)
from app.services.order_events import schedule_notifications

router = APIRouter(prefix="/api/admin/orders/failed-webhooks", tags=["failed-webhooks"])
logger = logging.getLogger(__name__)


def _get_entry(db: Session, user: User, entry_id: int):
    entry = get_failed_webhook(db, user.company_id, entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Failed webhook not found")
    return entry


@router.get("")
def list_failed_webhooks(
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.read", "orders.manage")),
):
    items, total = list_unresolved(db, user.company_id, limit=limit, offset=offset)
    return {
        "items": [FailedWebhookSummary.model_validate(item) for item in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{entry_id}")
def get_failed_webhook_detail(
    entry_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.read", "orders.manage")),
):
    entry = _get_entry(db, user, entry_id)
    location = db.get(CompanyLocation, entry.company_location_id)
    detail = FailedWebhookDetail.model_validate(entry)
    return detail.model_copy(update={"shopify_admin_url": shopify_admin_order_url(location, entry.shopify_order_id)})


@router.post("/{entry_id}/retry")
def retry_failed_webhook_entry(
    entry_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.manage")),
):
    entry = _get_entry(db, user, entry_id)
    if entry.resolved_at is not None:
        raise HTTPException(status_code=400, detail="Webhook already resolved")

    try:
        result = retry_failed_webhook(db, entry)
    except InvalidStoredPayload as exc:
        raise HTTPException(status_code=400, detail={"error": str(exc), "details": exc.errors})
    except RetryFailed as exc:
        raise HTTPException(status_code=500, detail={"error": "Retry failed", "details": str(exc)})

    logger.info(
        "failed webhook retried entry=%s order=%s",
        entry_id,
        result.order.id,
        extra={"company_id": user.company_id, "order_id": result.order.id},
    )
    schedule_notifications(background_tasks, result.notifications)
    return {"ok": True, "order_id": result.order.id, "created": result.created}
