from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from typing import Iterable

from sqlalchemy.orm import Session

from app.models.company import CompanyLocation, ShopifyWebhookSecret

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"


class WebhookConfigurationError(RuntimeError):
    """The tenant has no webhook secret to verify against."""


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify_webhook(raw_body: bytes, signature: str | None, secrets: Iterable[str]) -> bool:
    """Return True when ``signature`` is the base64 HMAC-SHA256 of ``raw_body`` under any secret.

    Every configured secret is checked with a constant-time comparison, even
    after a match. An empty secret set raises ``WebhookConfigurationError``
    instead of letting the request through.
    """
    candidates = [secret for secret in secrets if secret]
    if not candidates:
        raise WebhookConfigurationError("No Shopify webhook secrets configured")

    provided = (signature or "").strip()
    if not provided:
        return False
    try:
        base64.b64decode(provided, validate=True)
    except (binascii.Error, ValueError):
        return False

    provided_bytes = provided.encode("ascii", errors="ignore")
    matched = False
    for secret in candidates:
        expected = compute_signature(raw_body, secret).encode("ascii")
        if hmac.compare_digest(expected, provided_bytes):
            matched = True
    return matched


def resolve_location(db: Session, shopify_location_id: str) -> CompanyLocation | None:
    return (
        db.query(CompanyLocation)
        .filter(CompanyLocation.shopify_location_id == shopify_location_id.strip())
        .first()
    )


def load_webhook_secrets(db: Session, company_id: int) -> list[str]:
    rows = (
        db.query(ShopifyWebhookSecret.secret)
        .filter(ShopifyWebhookSecret.company_id == company_id)
        .order_by(ShopifyWebhookSecret.id.asc())
        .all()
    )
    return [row[0] for row in rows if row[0]]
