from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import ensure_any_permission, get_current_user, require_any_permission
from app.models.order import Order
from app.models.user import User
from app.schemas.fulfillment import fulfillment_action_adapter
from app.schemas.order import OrderResponse
from app.services.fulfillment import (
    FulfillmentError,
    apply_fulfillment_action,
    required_permissions,
    resend_rider_sms,
)
from app.services.order_events import schedule_notifications
from app.services.order_validation import field_errors
from app.services.shopify_fulfillment import ShopifyFulfillmentClient, ShopifySyncError

router = APIRouter(prefix="/api/admin/orders", tags=["fulfillment"])
logger = logging.getLogger(__name__)


def get_shopify_client() -> ShopifyFulfillmentClient:
    return ShopifyFulfillmentClient()


def get_order_for_company(db: Session, order_id: int, company_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.company_id == company_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.read", "orders.manage")),
):
    return get_order_for_company(db, order_id, user.company_id)


@router.patch("/{order_id}/fulfillment")
def update_fulfillment(
    order_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    body: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    shopify_client: ShopifyFulfillmentClient = Depends(get_shopify_client),
):
    try:
        action = fulfillment_action_adapter.validate_python(body)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail={"error": "Validation failed", "details": field_errors(exc)})

    ensure_any_permission(request, user, required_permissions(action.action))
    order = get_order_for_company(db, order_id, user.company_id)

    try:
        outcome = apply_fulfillment_action(db, order, action, user, shopify_client=shopify_client)
    except FulfillmentError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    except ShopifySyncError as exc:
        logger.error(
            "Shopify fulfillment sync failed order=%s error=%s",
            order_id,
            exc,
            extra={"company_id": user.company_id, "order_id": order_id},
        )
        raise HTTPException(status_code=exc.status_code, detail=str(exc))

    schedule_notifications(background_tasks, outcome.notifications)
    return {"success": True, "order": OrderResponse.model_validate(outcome.order)}


@router.post("/{order_id}/resend-rider-sms")
def resend_rider_sms_endpoint(
    order_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.manage", "fulfillment.ready_dispatch.dispatch")),
):
    order = get_order_for_company(db, order_id, user.company_id)
    try:
        notifications = resend_rider_sms(db, order, user)
    except FulfillmentError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    schedule_notifications(background_tasks, notifications)
    return {"success": True}
