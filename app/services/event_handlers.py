from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core import database
from app.core.request_context import scoped_context
from app.services.event_bus import event_bus
from app.services.order_events import ORDER_NOTIFICATION_EVENT
from app.services.order_sms import dispatch_order_sms

logger = logging.getLogger(__name__)


def _with_session(handler):
    def wrapper(payload: dict) -> None:
        company_id = payload.get("company_id")
        sent_by_id = payload.get("sent_by_id")
        with scoped_context(
            request_id=payload.get("request_id"),
            company_id=str(company_id) if company_id is not None else None,
            user_id=str(sent_by_id) if sent_by_id is not None else None,
        ):
            db: Session = database.SessionLocal()
            try:
                handler(db, payload)
            finally:
                db.close()

    return wrapper


@_with_session
def handle_order_notification(db: Session, payload: dict) -> None:
    dispatch_order_sms(
        db,
        company_id=payload["company_id"],
        order_id=payload["order_id"],
        trigger=payload["trigger"],
        context=payload.get("context") or {},
        sent_by_id=payload.get("sent_by_id"),
    )


def register_event_handlers() -> None:
    event_bus.subscribe(ORDER_NOTIFICATION_EVENT, handle_order_notification)


register_event_handlers()
