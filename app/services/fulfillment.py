from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.config import RIDER_TOKEN_MIN_LENGTH
from app.core.database import unit_of_work
from app.models.fulfillment_settings import (
    CourierService,
    OrderSampleFreeIssue,
    PackageHoldReason,
    SampleFreeIssueItem,
)
from app.models.order import (
    FULFILLMENT_STAGES,
    STAGE_DELIVERY_COMPLETE,
    STAGE_DISPATCHED,
    STAGE_ORDER_RECEIVED,
    STAGE_PRINT,
    STAGE_READY_TO_DISPATCH,
    STAGE_SAMPLE_FREE_ISSUE,
    Order,
)
from app.models.order_remark import OrderRemark
from app.models.user import User
from app.schemas.fulfillment import (
    AddSamplesAction,
    DispatchAction,
    PutOnHoldAction,
    RemarkInput,
    RevertToStageAction,
)
from app.services.datetime_utils import utc_now
from app.services.order_events import NotificationRequest
from app.services.shopify_fulfillment import ShopifyFulfillmentClient

logger = logging.getLogger(__name__)

ORDERS_MANAGE = "orders.manage"
INVOICE_COMPLETE = "invoice_complete"
REVERT_PERMISSION_PREFIX = "fulfillment.revert_to."

# Invoice completion sits after delivery for revert purposes
REVERT_SEQUENCE = FULFILLMENT_STAGES + (INVOICE_COMPLETE,)

ACTION_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "add_samples": (ORDERS_MANAGE, "fulfillment.sample_free_issue.manage"),
    "advance_to_print": (ORDERS_MANAGE, "fulfillment.sample_free_issue.manage"),
    "record_print": (ORDERS_MANAGE, "fulfillment.order_print.print"),
    "put_on_hold": (ORDERS_MANAGE, "fulfillment.ready_dispatch.put_on_hold"),
    "revert_hold": (ORDERS_MANAGE, "fulfillment.ready_dispatch.revert_hold"),
    "mark_ready": (ORDERS_MANAGE, "fulfillment.ready_dispatch.package_ready"),
    "dispatch": (ORDERS_MANAGE, "fulfillment.ready_dispatch.dispatch"),
    "mark_delivered": (ORDERS_MANAGE, "fulfillment.delivery_invoice.mark_delivered"),
    "mark_invoice_complete": (ORDERS_MANAGE, "fulfillment.delivery_invoice.mark_complete"),
    "complete_pos": (ORDERS_MANAGE,),
    "revert_to_stage": (ORDERS_MANAGE,),
}

# Stage a remark sent along with an action is filed under
ACTION_REMARK_STAGE = {
    "add_samples": STAGE_SAMPLE_FREE_ISSUE,
    "advance_to_print": STAGE_SAMPLE_FREE_ISSUE,
    "record_print": STAGE_PRINT,
    "put_on_hold": STAGE_READY_TO_DISPATCH,
    "revert_hold": STAGE_READY_TO_DISPATCH,
    "mark_ready": STAGE_READY_TO_DISPATCH,
    "dispatch": STAGE_READY_TO_DISPATCH,
    "mark_delivered": STAGE_DELIVERY_COMPLETE,
    "mark_invoice_complete": INVOICE_COMPLETE,
    "complete_pos": STAGE_DELIVERY_COMPLETE,
}


class FulfillmentError(Exception):
    """An action that is not valid for the order in its current state."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RiderLinkError(Exception):
    def __init__(self, message: str, status_code: int = 404):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class FulfillmentOutcome:
    order: Order
    notifications: list[NotificationRequest] = field(default_factory=list)


@dataclass
class RiderConfirmationOutcome:
    order: Order
    message: str
    confirmed: bool = False
    already_confirmed: bool = False
    notifications: list[NotificationRequest] = field(default_factory=list)


@dataclass
class _ActionContext:
    db: Session
    order: Order
    actor: User
    now: datetime
    shopify_client: ShopifyFulfillmentClient

    def notify(self, trigger: str) -> NotificationRequest:
        return NotificationRequest(
            company_id=self.order.company_id,
            order_id=self.order.id,
            trigger=trigger,
            sent_by_id=self.actor.id,
        )


def required_permissions(action_name: str) -> tuple[str, ...]:
    return ACTION_PERMISSIONS.get(action_name, (ORDERS_MANAGE,))


def _stage_position(order: Order) -> int:
    if order.fulfillment_stage == STAGE_DELIVERY_COMPLETE and order.invoice_complete_at is not None:
        return REVERT_SEQUENCE.index(INVOICE_COMPLETE)
    return REVERT_SEQUENCE.index(order.fulfillment_stage)


def _stage_permission_key(stage: str) -> str:
    return "ready_dispatch" if stage == STAGE_READY_TO_DISPATCH else stage


def required_revert_permissions(order: Order, target_stage: str) -> list[str]:
    """Revert permission keys for every stage being undone, starting at the target."""
    target = REVERT_SEQUENCE.index(target_stage)
    current = _stage_position(order)
    return [
        f"{REVERT_PERMISSION_PREFIX}{_stage_permission_key(stage)}"
        for stage in REVERT_SEQUENCE[target:current]
    ]


def _require_stage(order: Order, allowed: tuple[str, ...], message: str) -> None:
    if order.fulfillment_stage not in allowed:
        raise FulfillmentError(message)


def _clear_hold(order: Order) -> None:
    order.package_on_hold_at = None
    order.package_hold_reason_id = None


def _add_samples(ctx: _ActionContext, action: AddSamplesAction) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(
        order,
        (STAGE_ORDER_RECEIVED, STAGE_SAMPLE_FREE_ISSUE),
        "Samples can only be added at sample/free issue stage",
    )
    item_ids = {sample.sample_free_issue_item_id for sample in action.samples}
    known = {
        row.id
        for row in ctx.db.query(SampleFreeIssueItem)
        .filter(SampleFreeIssueItem.company_id == order.company_id, SampleFreeIssueItem.id.in_(item_ids))
        .all()
    }
    missing = sorted(item_ids - known)
    if missing:
        raise FulfillmentError(f"Sample/free issue item not found: {missing[0]}")

    existing = {row.sample_free_issue_item_id: row for row in order.sample_free_issues}
    for sample in action.samples:
        row = existing.get(sample.sample_free_issue_item_id)
        if row is None:
            row = OrderSampleFreeIssue(
                sample_free_issue_item_id=sample.sample_free_issue_item_id,
                quantity=sample.quantity,
                added_by_id=ctx.actor.id,
            )
            order.sample_free_issues.append(row)
            existing[sample.sample_free_issue_item_id] = row
        else:
            row.quantity = sample.quantity

    if order.fulfillment_stage == STAGE_ORDER_RECEIVED:
        order.fulfillment_stage = STAGE_SAMPLE_FREE_ISSUE
    return []


def _advance_to_print(ctx: _ActionContext, action) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(
        order,
        (STAGE_ORDER_RECEIVED, STAGE_SAMPLE_FREE_ISSUE),
        "Can only advance to print from sample/free issue stage",
    )
    order.fulfillment_stage = STAGE_PRINT
    order.sample_free_issue_complete_at = ctx.now
    order.sample_free_issue_complete_by_id = ctx.actor.id
    return []


def _record_print(ctx: _ActionContext, action) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(
        order,
        (STAGE_PRINT, STAGE_READY_TO_DISPATCH, STAGE_DISPATCHED, STAGE_DELIVERY_COMPLETE),
        "Order must reach the print stage before printing",
    )
    order.print_count = (order.print_count or 0) + 1
    order.last_printed_at = ctx.now
    order.last_printed_by_id = ctx.actor.id
    return []


def _put_on_hold(ctx: _ActionContext, action: PutOnHoldAction) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(order, (STAGE_PRINT, STAGE_READY_TO_DISPATCH), "Can only put on hold at ready to dispatch stage")
    reason = (
        ctx.db.query(PackageHoldReason)
        .filter(PackageHoldReason.id == action.hold_reason_id, PackageHoldReason.company_id == order.company_id)
        .first()
    )
    if reason is None:
        raise FulfillmentError("Hold reason not found")
    order.fulfillment_stage = STAGE_READY_TO_DISPATCH
    order.package_on_hold_at = ctx.now
    order.package_hold_reason_id = reason.id
    order.package_ready_at = None
    order.package_ready_by_id = None
    return []


def _revert_hold(ctx: _ActionContext, action) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(order, (STAGE_PRINT, STAGE_READY_TO_DISPATCH), "Can only revert hold at ready to dispatch stage")
    if order.package_on_hold_at is None:
        raise FulfillmentError("Package is not on hold")
    _clear_hold(order)
    return []


def _mark_ready(ctx: _ActionContext, action) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(
        order,
        (STAGE_PRINT, STAGE_READY_TO_DISPATCH),
        "Can only mark ready at print or ready to dispatch stage",
    )
    order.fulfillment_stage = STAGE_READY_TO_DISPATCH
    order.package_ready_at = ctx.now
    order.package_ready_by_id = ctx.actor.id
    _clear_hold(order)
    return [ctx.notify("package_ready")]


def _dispatch(ctx: _ActionContext, action: DispatchAction) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(order, (STAGE_READY_TO_DISPATCH,), "Order must be at ready to dispatch stage")
    if order.package_on_hold_at is not None:
        raise FulfillmentError("Package is on hold")
    if order.package_ready_at is None:
        raise FulfillmentError("Package must be marked ready before dispatch")
    if action.rider_id and action.courier_service_id:
        raise FulfillmentError("Select either rider or courier service, not both")
    if not action.rider_id and not action.courier_service_id:
        raise FulfillmentError("Select either rider or courier service")

    token = None
    if action.rider_id:
        rider = (
            ctx.db.query(User)
            .filter(User.id == action.rider_id, User.company_id == order.company_id, User.is_active.is_(True))
            .first()
        )
        if rider is None or not rider.is_rider:
            raise FulfillmentError("Selected user is not a rider")
        token = secrets.token_hex(16)
    else:
        courier = (
            ctx.db.query(CourierService)
            .filter(CourierService.id == action.courier_service_id, CourierService.company_id == order.company_id)
            .first()
        )
        if courier is None:
            raise FulfillmentError("Courier service not found")

    order.fulfillment_stage = STAGE_DISPATCHED
    order.dispatched_at = ctx.now
    order.dispatched_by_id = ctx.actor.id
    order.dispatched_by_rider_id = action.rider_id
    order.dispatched_by_courier_service_id = action.courier_service_id
    order.rider_delivery_token = token
    order.rider_delivery_token_used = None

    notifications = [ctx.notify("dispatched")]
    if token:
        notifications.append(ctx.notify("rider_dispatched"))
    return notifications


def _consume_rider_token(order: Order) -> None:
    if order.rider_delivery_token:
        order.rider_delivery_token_used = order.rider_delivery_token
    order.rider_delivery_token = None


def _mark_delivered(ctx: _ActionContext, action) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(order, (STAGE_DISPATCHED,), "Can only mark delivered when order is dispatched")
    order.fulfillment_stage = STAGE_DELIVERY_COMPLETE
    order.delivery_complete_at = ctx.now
    order.delivery_complete_by_id = ctx.actor.id
    _consume_rider_token(order)
    return [ctx.notify("delivery_complete")]


def invoice_number(order: Order) -> str:
    """Search term for the Shopify order: numeric name, then order number, then any name."""
    name = (order.name or "").strip().lstrip("#").strip()
    if name.isdigit():
        return name
    if order.order_number is not None:
        return str(order.order_number)
    if name:
        return name
    return order.shopify_order_id


def _mark_invoice_complete(ctx: _ActionContext, action) -> list[NotificationRequest]:
    order = ctx.order
    _require_stage(
        order,
        (STAGE_DELIVERY_COMPLETE,),
        "Delivery must be marked complete before invoice complete",
    )
    if order.invoice_complete_at is not None:
        raise FulfillmentError("Invoice already marked complete")

    if ctx.shopify_client.enabled:
        shop = ((order.company_location.shopify_shop_name if order.company_location else None) or "").strip()
        if not shop:
            raise FulfillmentError("Shopify shop name is not set for this location")
        ctx.shopify_client.fulfill_order(shop=shop, invoice_no=invoice_number(order))
    else:
        logger.info(
            "Shopify admin token not configured, skipping fulfillment sync order=%s",
            order.id,
            extra={"company_id": order.company_id, "order_id": order.id},
        )

    order.fulfillment_status = "fulfilled"
    order.invoice_complete_at = ctx.now
    order.invoice_complete_by_id = ctx.actor.id
    return []


def _complete_pos(ctx: _ActionContext, action) -> list[NotificationRequest]:
    order = ctx.order
    if not order.is_pos:
        raise FulfillmentError("Complete POS is only for POS orders")
    if order.fulfillment_stage == STAGE_DELIVERY_COMPLETE:
        raise FulfillmentError("Order is already complete")
    actor_id = ctx.actor.id
    order.fulfillment_stage = STAGE_DELIVERY_COMPLETE
    if order.sample_free_issue_complete_at is None:
        order.sample_free_issue_complete_at = ctx.now
        order.sample_free_issue_complete_by_id = actor_id
    order.print_count = (order.print_count or 0) + 1
    order.last_printed_at = ctx.now
    order.last_printed_by_id = actor_id
    order.package_ready_at = ctx.now
    order.package_ready_by_id = actor_id
    _clear_hold(order)
    order.dispatched_at = ctx.now
    order.dispatched_by_id = actor_id
    order.dispatched_by_rider_id = None
    order.dispatched_by_courier_service_id = None
    order.rider_delivery_token = None
    order.delivery_complete_at = ctx.now
    order.delivery_complete_by_id = actor_id
    order.invoice_complete_at = ctx.now
    order.invoice_complete_by_id = actor_id
    return []


def _clear_markers_after(order: Order, target_stage: str) -> None:
    first_cleared = REVERT_SEQUENCE.index(target_stage) + 1

    def clears(stage: str) -> bool:
        return first_cleared <= REVERT_SEQUENCE.index(stage)

    if clears(STAGE_SAMPLE_FREE_ISSUE):
        order.sample_free_issue_complete_at = None
        order.sample_free_issue_complete_by_id = None
    if clears(STAGE_PRINT):
        order.print_count = 0
        order.last_printed_at = None
        order.last_printed_by_id = None
    if clears(STAGE_READY_TO_DISPATCH):
        order.package_ready_at = None
        order.package_ready_by_id = None
        _clear_hold(order)
    if clears(STAGE_DISPATCHED):
        order.dispatched_at = None
        order.dispatched_by_id = None
        order.dispatched_by_rider_id = None
        order.dispatched_by_courier_service_id = None
        order.rider_delivery_token = None
        order.rider_delivery_token_used = None
    if clears(STAGE_DELIVERY_COMPLETE):
        order.delivery_complete_at = None
        order.delivery_complete_by_id = None
        if order.rider_delivery_token_used and not clears(STAGE_DISPATCHED):
            # Back to dispatched: the rider link opens again
            order.rider_delivery_token = order.rider_delivery_token_used
        order.rider_delivery_token_used = None
    if clears(INVOICE_COMPLETE):
        order.invoice_complete_at = None
        order.invoice_complete_by_id = None


def _revert_to_stage(ctx: _ActionContext, action: RevertToStageAction) -> list[NotificationRequest]:
    order = ctx.order
    if REVERT_SEQUENCE.index(action.target_stage) >= _stage_position(order):
        raise FulfillmentError("Target stage must be earlier than current stage")
    granted = set(ctx.actor.permissions or [])
    if not set(required_revert_permissions(order, action.target_stage)) <= granted:
        raise FulfillmentError(
            "Permission denied: missing revert permission for intermediate stage",
            status_code=403,
        )
    _clear_markers_after(order, action.target_stage)
    order.fulfillment_stage = action.target_stage
    return []


ActionHandler = Callable[[_ActionContext, object], list]

_HANDLERS: dict[str, ActionHandler] = {
    "add_samples": _add_samples,
    "advance_to_print": _advance_to_print,
    "record_print": _record_print,
    "put_on_hold": _put_on_hold,
    "revert_hold": _revert_hold,
    "mark_ready": _mark_ready,
    "dispatch": _dispatch,
    "mark_delivered": _mark_delivered,
    "mark_invoice_complete": _mark_invoice_complete,
    "complete_pos": _complete_pos,
    "revert_to_stage": _revert_to_stage,
}


def add_remark(db: Session, order: Order, stage: str, remark: RemarkInput, actor: User) -> OrderRemark:
    row = OrderRemark(
        order_id=order.id,
        stage=stage,
        type=remark.type,
        content=remark.content,
        show_on_invoice=remark.show_on_invoice,
        added_by_id=actor.id,
    )
    db.add(row)
    return row


def apply_fulfillment_action(
    db: Session,
    order: Order,
    action,
    actor: User,
    *,
    shopify_client: Optional[ShopifyFulfillmentClient] = None,
) -> FulfillmentOutcome:
    """Apply one staff action to ``order`` and commit it.

    Returns the notifications to send once the transaction is committed. Any
    ``FulfillmentError`` leaves the order untouched.
    """
    handler = _HANDLERS[action.action]
    ctx = _ActionContext(
        db=db,
        order=order,
        actor=actor,
        now=utc_now(),
        shopify_client=shopify_client or ShopifyFulfillmentClient(),
    )
    previous_stage = order.fulfillment_stage
    with unit_of_work(db):
        notifications = handler(ctx, action)
        if action.remark is not None:
            stage = ACTION_REMARK_STAGE.get(action.action) or getattr(action, "target_stage", previous_stage)
            add_remark(db, order, stage, action.remark, actor)
    db.refresh(order)

    logger.info(
        "fulfillment action=%s order=%s stage=%s->%s",
        action.action,
        order.id,
        previous_stage,
        order.fulfillment_stage,
        extra={"company_id": order.company_id, "order_id": order.id},
    )
    return FulfillmentOutcome(order=order, notifications=notifications)


def resend_rider_sms(db: Session, order: Order, actor: User) -> list[NotificationRequest]:
    if order.fulfillment_stage != STAGE_DISPATCHED:
        raise FulfillmentError("Re-send rider SMS is only available for dispatched orders")
    if not order.dispatched_by_rider_id or not order.rider_delivery_token:
        raise FulfillmentError("Re-send rider SMS is only available when order was dispatched to a rider")
    rider = db.get(User, order.dispatched_by_rider_id)
    if rider is None or not (rider.mobile or "").strip():
        raise FulfillmentError("Rider has no phone number configured")
    return [
        NotificationRequest(
            company_id=order.company_id,
            order_id=order.id,
            trigger="rider_dispatched",
            sent_by_id=actor.id,
        )
    ]


def _check_token(token: str) -> str:
    token = (token or "").strip()
    if len(token) < RIDER_TOKEN_MIN_LENGTH:
        raise RiderLinkError("Invalid token", status_code=400)
    return token


def _find_by_token(db: Session, token: str) -> tuple[Order | None, bool]:
    order = db.query(Order).filter(Order.rider_delivery_token == token).first()
    if order is not None:
        return order, False
    used = db.query(Order).filter(Order.rider_delivery_token_used == token).first()
    if used is not None:
        return used, True
    raise RiderLinkError("Invalid or expired link", status_code=404)


def lookup_rider_delivery(db: Session, token: str) -> tuple[Order, bool]:
    """Return the order behind a rider link and whether it was already confirmed."""
    return _find_by_token(db, _check_token(token))


def confirm_rider_delivery(db: Session, token: str, confirmed: bool) -> RiderConfirmationOutcome:
    """Complete delivery through the rider's single-use link.

    The token is swapped out with a conditional update so two concurrent
    confirmations cannot both succeed. A replayed link reports the earlier
    confirmation and changes nothing.
    """
    token = _check_token(token)
    order, already_confirmed = _find_by_token(db, token)
    if already_confirmed:
        return RiderConfirmationOutcome(order=order, message="Delivery already confirmed", already_confirmed=True)
    if not confirmed:
        return RiderConfirmationOutcome(order=order, message="Delivery not confirmed")
    if order.fulfillment_stage != STAGE_DISPATCHED:
        raise RiderLinkError("Invalid or expired link", status_code=404)

    now = utc_now()
    with unit_of_work(db):
        updated = (
            db.query(Order)
            .filter(Order.id == order.id, Order.rider_delivery_token == token)
            .update(
                {
                    Order.fulfillment_stage: STAGE_DELIVERY_COMPLETE,
                    Order.delivery_complete_at: now,
                    Order.delivery_complete_by_id: order.dispatched_by_rider_id,
                    Order.rider_delivery_token: None,
                    Order.rider_delivery_token_used: token,
                },
                synchronize_session=False,
            )
        )
    db.refresh(order)
    if not updated:
        return RiderConfirmationOutcome(order=order, message="Delivery already confirmed", already_confirmed=True)

    logger.info(
        "rider confirmed delivery order=%s",
        order.id,
        extra={"company_id": order.company_id, "order_id": order.id},
    )
    notification = NotificationRequest(
        company_id=order.company_id,
        order_id=order.id,
        trigger="delivery_complete",
        sent_by_id=order.dispatched_by_rider_id,
    )
    return RiderConfirmationOutcome(
        order=order,
        message="Delivery confirmed",
        confirmed=True,
        notifications=[notification],
    )
