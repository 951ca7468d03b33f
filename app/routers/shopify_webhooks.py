from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.company import CompanyLocation
from app.services.failed_webhooks import ORDER_TOPIC, record_failed_webhook
from app.services.order_events import schedule_notifications
from app.services.order_ingestion import ingest_order
from app.services.order_validation import validate_order_payload, validate_product_payload
from app.services.product_sync import sync_product
from app.services.shopify_webhook import (
    SIGNATURE_HEADER,
    TOPIC_HEADER,
    WebhookConfigurationError,
    load_webhook_secrets,
    resolve_location,
    verify_shopify_webhook,
)

router = APIRouter(prefix="/api/webhooks/shopify", tags=["shopify-webhooks"])
logger = logging.getLogger(__name__)


def _authenticate(request: Request, raw_body: bytes, location_id: Optional[str], db: Session) -> CompanyLocation:
    if not location_id or not location_id.strip():
        raise HTTPException(status_code=400, detail="Missing location_id query parameter")

    location = resolve_location(db, location_id)
    if location is None:
        raise HTTPException(status_code=404, detail="Location not found")
    request.state.company_id = location.company_id

    try:
        valid = verify_shopify_webhook(
            raw_body,
            request.headers.get(SIGNATURE_HEADER),
            load_webhook_secrets(db, location.company_id),
        )
    except WebhookConfigurationError:
        logger.error(
            "webhook secret not configured location=%s",
            location.id,
            extra={"company_id": location.company_id},
        )
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    if not valid:
        logger.warning(
            "invalid webhook signature location=%s",
            location.id,
            extra={"company_id": location.company_id},
        )
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    return location


def _parse_json(raw_body: bytes) -> Any:
    try:
        return json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON")


@router.post("/orders")
async def receive_order_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    location_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    raw_body = await request.body()
    location = _authenticate(request, raw_body, location_id, db)
    data = _parse_json(raw_body)

    validation = validate_order_payload(data)
    if not validation.ok:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid order payload", "details": validation.errors},
        )

    try:
        result = ingest_order(db, validation.payload, location, raw_payload=data)
    except Exception as exc:
        logger.exception(
            "order webhook processing failed order=%s",
            validation.payload.id,
            extra={"company_id": location.company_id, "shopify_order_id": validation.payload.id},
        )
        record_failed_webhook(
            db,
            location=location,
            payload=data,
            error=exc,
            topic=request.headers.get(TOPIC_HEADER) or ORDER_TOPIC,
        )
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to process order", "details": str(exc) or exc.__class__.__name__},
        )

    schedule_notifications(background_tasks, result.notifications)
    return {"ok": True, "order_id": result.order.id, "created": result.created}


@router.post("/products")
async def receive_product_webhook(
    request: Request,
    location_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    raw_body = await request.body()
    location = _authenticate(request, raw_body, location_id, db)
    data = _parse_json(raw_body)

    validation = validate_product_payload(data)
    if not validation.ok:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid product payload", "details": validation.errors},
        )

    items = sync_product(db, validation.payload, location)
    return {"ok": True, "product_item_ids": [item.id for item in items]}
