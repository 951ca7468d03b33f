from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.order import Order
from app.schemas.fulfillment import RiderConfirmation
from app.schemas.order import RiderDeliveryResponse
from app.services.fulfillment import RiderLinkError, confirm_rider_delivery, lookup_rider_delivery
from app.services.order_events import schedule_notifications

router = APIRouter(prefix="/api/public/rider-delivery", tags=["rider-delivery"])


def _order_view(order: Order, status: str, message: str | None = None) -> RiderDeliveryResponse:
    customer_name = " ".join(
        part for part in (order.customer_first_name, order.customer_last_name) if part
    ).strip()
    return RiderDeliveryResponse(
        status=status,
        message=message,
        order_name=order.name,
        order_number=order.order_number,
        customer_name=customer_name or None,
        customer_phone=order.customer_phone,
        shipping_address=order.shipping_address,
        total_price=order.total_price,
        currency=order.currency,
        delivery_complete_at=order.delivery_complete_at,
    )


@router.get("/{token}", response_model=RiderDeliveryResponse)
def get_rider_delivery(token: str, db: Session = Depends(get_db)):
    try:
        order, already_confirmed = lookup_rider_delivery(db, token)
    except RiderLinkError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    if already_confirmed:
        return _order_view(order, "already_confirmed", "Delivery already confirmed")
    return _order_view(order, "pending")


@router.post("/{token}", response_model=RiderDeliveryResponse)
def post_rider_delivery(
    token: str,
    body: RiderConfirmation,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    try:
        outcome = confirm_rider_delivery(db, token, body.confirmed)
    except RiderLinkError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    schedule_notifications(background_tasks, outcome.notifications)
    if outcome.already_confirmed:
        status = "already_confirmed"
    elif outcome.confirmed:
        status = "confirmed"
    else:
        status = "pending"
    return _order_view(outcome.order, status, outcome.message)
