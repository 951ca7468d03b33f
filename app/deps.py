# app/deps.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import (
    IDENTITY_JWT_ALGORITHMS,
    IDENTITY_JWT_AUDIENCE,
    IDENTITY_JWT_ISSUER,
    IDENTITY_JWT_SECRET,
)
from app.core.database import get_db
from app.core.request_context import set_request_context
from app.models.user import User
from app.services.identity_management import IdentityManagementClient, ManagementTokenCache

bearer_scheme = HTTPBearer(auto_error=False)

# Process-wide; every identity client shares the management token
management_token_cache = ManagementTokenCache()

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_identity_token(token: str) -> Dict[str, Any]:
    """Verify a bearer token issued by the identity provider and return its claims."""
    if not IDENTITY_JWT_SECRET:
        raise JWTError("IDENTITY_JWT_SECRET is not configured")
    options = {"verify_aud": IDENTITY_JWT_AUDIENCE is not None}
    return jwt.decode(
        token,
        IDENTITY_JWT_SECRET,
        algorithms=IDENTITY_JWT_ALGORITHMS,
        audience=IDENTITY_JWT_AUDIENCE,
        issuer=IDENTITY_JWT_ISSUER,
        options=options,
    )


def _extract_subject(payload: Dict[str, Any]) -> Optional[str]:
    raw = payload.get("sub")
    if raw is None:
        return None
    subject = str(raw).strip()
    return subject or None


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the active company user behind the Authorization header."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_identity_token(credentials.credentials)
    except JWTError:
        raise _unauthorized("Invalid or expired token")

    subject = _extract_subject(payload)
    if subject is None:
        raise _unauthorized("Invalid token (no subject)")

    user = db.query(User).filter(User.auth_subject == subject).first()
    if not user or not user.is_active:
        raise _unauthorized("User not found")

    request.state.user = user
    set_request_context(company_id=str(user.company_id), user_id=str(user.id))
    return user


def _log_access_denied(*, reason: str, user: User, required: Iterable[str], request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): user_id=%s company_id=%s required=%s endpoint=%s",
        reason,
        getattr(user, "id", None),
        getattr(user, "company_id", None),
        sorted(required),
        endpoint,
    )


def ensure_any_permission(request: Request, user: User, keys: Iterable[str]) -> None:
    required = set(keys)
    if not user.has_any_permission(*required):
        _log_access_denied(reason="permission_denied", user=user, required=required, request=request)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permission denied")


def require_any_permission(*keys: str):
    def _dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        ensure_any_permission(request, user, keys)
        return user

    return _dependency


def get_identity_client() -> IdentityManagementClient:
    return IdentityManagementClient(management_token_cache)
