from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from fastapi import BackgroundTasks

from app.core.request_context import get_request_id
from app.services.event_bus import event_bus

ORDER_NOTIFICATION_EVENT = "order.notification"


@dataclass(frozen=True)
class NotificationRequest:
    company_id: int
    order_id: int
    trigger: str
    context: dict[str, Any] = field(default_factory=dict)
    sent_by_id: int | None = None


def build_notification_payload(request: NotificationRequest) -> dict[str, Any]:
    payload = asdict(request)
    payload["context"] = dict(request.context)
    return payload


def emit_order_notification(request: NotificationRequest, request_id: str | None = None) -> None:
    payload = build_notification_payload(request)
    if request_id:
        payload["request_id"] = request_id
    event_bus.emit(ORDER_NOTIFICATION_EVENT, payload)


def schedule_notifications(background_tasks: BackgroundTasks, requests: Iterable[NotificationRequest]) -> None:
    """Queue notifications to run once the response has been sent.

    The originating request id is captured now, since the request context is
    cleared before background tasks run.
    """
    request_id = get_request_id()
    for request in requests:
        background_tasks.add_task(emit_order_notification, request, request_id)
