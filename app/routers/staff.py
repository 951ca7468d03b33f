from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import get_identity_client, require_any_permission
from app.models.user import User
from app.schemas.staff import StaffCreate, StaffResponse
from app.services.identity_management import IdentityManagementClient, IdentityManagementError
from app.services.staff_provisioning import StaffConflictError, provision_staff_user

router = APIRouter(prefix="/api/admin/staff", tags=["staff"])
logger = logging.getLogger(__name__)


@router.post("", response_model=StaffResponse, status_code=201)
def create_staff_user(
    body: StaffCreate,
    db: Session = Depends(get_db),
    identity: IdentityManagementClient = Depends(get_identity_client),
    user: User = Depends(require_any_permission("users.manage")),
):
    try:
        return provision_staff_user(db, identity, user.company_id, body)
    except StaffConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except IdentityManagementError as exc:
        logger.error("identity provider rejected staff user email=%s error=%s", body.email, exc)
        raise HTTPException(status_code=502, detail={"error": "Identity provider error", "details": str(exc)})
