from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

import httpx

from app.core.config import (
    IDENTITY_DB_CONNECTION,
    IDENTITY_DOMAIN,
    IDENTITY_M2M_CLIENT_ID,
    IDENTITY_M2M_CLIENT_SECRET,
    IDENTITY_TOKEN_REFRESH_MARGIN_SECONDS,
)

logger = logging.getLogger(__name__)


class IdentityManagementError(RuntimeError):
    pass


@dataclass
class _CachedToken:
    token: str
    expires_at: float


class ManagementTokenCache:
    """Single-slot cache for the management API bearer token."""

    def __init__(
        self,
        *,
        refresh_margin_seconds: int = IDENTITY_TOKEN_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.refresh_margin_seconds = refresh_margin_seconds
        self._clock = clock
        self._slot: _CachedToken | None = None
        self._lock = Lock()

    def get(self) -> str | None:
        with self._lock:
            if self._slot is None:
                return None
            if self._slot.expires_at <= self._clock() + self.refresh_margin_seconds:
                return None
            return self._slot.token

    def store(self, token: str, expires_in: float) -> None:
        with self._lock:
            self._slot = _CachedToken(token=token, expires_at=self._clock() + float(expires_in))

    def clear(self) -> None:
        with self._lock:
            self._slot = None


@dataclass(frozen=True)
class CreatedIdentity:
    user_id: str


class IdentityManagementClient:
    def __init__(
        self,
        cache: ManagementTokenCache,
        *,
        domain: str = IDENTITY_DOMAIN,
        client_id: str = IDENTITY_M2M_CLIENT_ID,
        client_secret: str = IDENTITY_M2M_CLIENT_SECRET,
        connection: str = IDENTITY_DB_CONNECTION,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self.domain = domain
        self.client_id = client_id
        self.client_secret = client_secret
        self.connection = connection
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=f"https://{self.domain}", timeout=self.timeout, transport=self._transport)

    def get_management_token(self) -> str:
        if not self.domain or not self.client_id or not self.client_secret:
            raise IdentityManagementError("Identity domain and management client credentials must be set")

        cached = self.cache.get()
        if cached:
            return cached

        try:
            with self._client() as client:
                response = client.post(
                    "/oauth/token",
                    json={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "audience": f"https://{self.domain}/api/v2/",
                        "grant_type": "client_credentials",
                    },
                )
        except httpx.HTTPError as exc:
            raise IdentityManagementError(f"Failed to get management token: {exc}") from exc

        if not response.is_success:
            raise IdentityManagementError(f"Failed to get management token: {response.text}")

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise IdentityManagementError("Management token response had no access_token")
        self.cache.store(token, data.get("expires_in") or 0)
        logger.info("management token refreshed expires_in=%s", data.get("expires_in"))
        return token

    def create_user(self, *, email: str, password: str, given_name: str, family_name: str) -> CreatedIdentity:
        if not self.connection:
            raise IdentityManagementError("Identity database connection must be set")

        token = self.get_management_token()
        try:
            with self._client() as client:
                response = client.post(
                    "/api/v2/users",
                    headers={"Authorization": f"Bearer {token}"},
                    json={
                        "connection": self.connection,
                        "email": email,
                        "password": password,
                        "given_name": given_name,
                        "family_name": family_name,
                        "name": f"{given_name} {family_name}".strip(),
                        "email_verified": True,
                    },
                )
        except httpx.HTTPError as exc:
            raise IdentityManagementError(f"Create user request failed: {exc}") from exc

        if not response.is_success:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            raise IdentityManagementError(message or f"Create user failed: {response.status_code}")

        return CreatedIdentity(user_id=response.json()["user_id"])
