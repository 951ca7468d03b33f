from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.company import CompanyLocation
from app.models.user import User
from app.schemas.shopify_order import ShopifyOrderPayload

logger = logging.getLogger(__name__)


def _normalize_code(code: str | None) -> str:
    return (code or "").strip().lower()


def resolve_assigned_merchant(
    db: Session,
    payload: ShopifyOrderPayload,
    location: CompanyLocation,
) -> int | None:
    """Pick the company user credited with the sale.

    POS orders match the Shopify staff id, web orders match coupon codes and
    anything else falls back to the location default merchant. A coupon shared
    by several merchants is ambiguous and falls back as well.
    """
    source = (payload.source_name or "").strip().lower() or "web"
    users = (
        db.query(User)
        .filter(User.company_id == location.company_id, User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )

    if source == "pos" and payload.user_id:
        for user in users:
            staff_ids = {str(value).strip() for value in (user.shopify_user_ids or [])}
            if payload.user_id in staff_ids:
                return user.id
    elif source == "web" and payload.discount_codes:
        order_codes = {_normalize_code(d.code) for d in payload.discount_codes} - {""}
        matches = [
            user.id
            for user in users
            if order_codes & {_normalize_code(code) for code in (user.coupon_codes or [])}
        ]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            logger.warning(
                "coupon codes match several merchants, using location default order=%s merchants=%s",
                payload.id,
                matches,
                extra={"company_id": location.company_id, "shopify_order_id": payload.id},
            )

    return location.default_merchant_user_id
