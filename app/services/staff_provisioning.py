from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.database import unit_of_work
from app.models.user import User
from app.schemas.staff import StaffCreate
from app.services.identity_management import IdentityManagementClient

logger = logging.getLogger(__name__)


class StaffConflictError(Exception):
    pass


def provision_staff_user(
    db: Session,
    identity: IdentityManagementClient,
    company_id: int,
    body: StaffCreate,
) -> User:
    """Create the login at the identity provider, then the company user bound to it.

    The local row is only written once the provider has accepted the account,
    so a provider failure leaves nothing behind.
    """
    existing = db.query(User).filter(User.company_id == company_id, User.email == body.email).first()
    if existing is not None:
        raise StaffConflictError("A user with this email already exists")

    created = identity.create_user(
        email=body.email,
        password=body.password,
        given_name=body.first_name,
        family_name=body.last_name,
    )

    with unit_of_work(db):
        user = User(
            company_id=company_id,
            auth_subject=created.user_id,
            name=f"{body.first_name} {body.last_name}",
            email=body.email,
            mobile=body.mobile,
            is_rider=body.is_rider,
            is_active=True,
            permissions=sorted(set(body.permissions)),
            shopify_user_ids=[],
            coupon_codes=[],
        )
        db.add(user)
    db.refresh(user)

    logger.info(
        "staff user provisioned user=%s subject=%s rider=%s",
        user.id,
        created.user_id,
        user.is_rider,
        extra={"company_id": company_id},
    )
    return user
