from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.orm import Session

from app.core.config import SMS_COUNTRY_CODE, SMS_HTTP_TIMEOUT_SECONDS
from app.models.sms import SmsLog, SmsPortalConfig

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")
_SUCCESS_STATUSES = {"success", "sent"}


@dataclass(frozen=True)
class SendSmsResult:
    success: bool
    message: str | None = None


def format_phone_number(phone: str | None, country_code: str = SMS_COUNTRY_CODE) -> str:
    """Rewrite a local mobile number to international form without the plus sign.

    >>> format_phone_number("077 123 4567")
    '94771234567'
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if not digits:
        return ""
    if len(digits) == 9:
        return country_code + digits
    if len(digits) == 10 and digits.startswith("07"):
        return country_code + digits[1:]
    if digits.startswith(country_code):
        return digits
    return country_code + digits.lstrip("0")


def _provider_headers(access_token: str | None = None) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "Accept": "*/*",
        "X-API-VERSION": "v1",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"raw": response.text}
    return data if isinstance(data, dict) else {"raw": data}


def _is_accepted(response: httpx.Response, data: dict[str, Any]) -> bool:
    status = str(data.get("status") or data.get("result") or "").lower()
    if status in _SUCCESS_STATUSES or data.get("success") is True:
        return True
    message = str(data.get("message") or "").lower()
    return response.is_success and not data.get("error") and "error" not in message


def send_sms(
    db: Session,
    *,
    company_id: int,
    phone_number: str,
    message: str,
    sent_by_id: int | None = None,
    timeout: float = SMS_HTTP_TIMEOUT_SECONDS,
) -> SendSmsResult:
    """Send one SMS through the company's SMS portal and log accepted sends."""
    config = (
        db.query(SmsPortalConfig)
        .filter(SmsPortalConfig.company_id == company_id, SmsPortalConfig.is_active.is_(True))
        .first()
    )
    if config is None:
        return SendSmsResult(success=False, message="SMS portal not configured for this company")

    number = format_phone_number(phone_number)
    if not number:
        return SendSmsResult(success=False, message="Invalid phone number")

    try:
        with httpx.Client(timeout=timeout) as client:
            auth_response = client.post(
                config.auth_url,
                headers=_provider_headers(),
                json={"username": config.username, "password": config.password},
            )
            access_token = _safe_json(auth_response).get("accessToken")
            if not access_token:
                logger.error(
                    "SMS portal authentication failed status=%s",
                    auth_response.status_code,
                    extra={"company_id": company_id},
                )
                return SendSmsResult(success=False, message="Failed to authenticate with SMS provider")

            sms_response = client.post(
                config.sms_url,
                headers=_provider_headers(access_token),
                json={
                    "campaignName": config.campaign_name,
                    "mask": config.mask,
                    "numbers": number,
                    "content": message,
                    "deliveryReportRequest": False,
                },
            )
    except httpx.HTTPError as exc:
        logger.warning("SMS provider request failed error=%s", exc, extra={"company_id": company_id})
        return SendSmsResult(success=False, message=f"SMS provider unreachable: {exc}")

    data = _safe_json(sms_response)
    if not _is_accepted(sms_response, data):
        reason = data.get("error") or data.get("message") or f"HTTP {sms_response.status_code}"
        return SendSmsResult(success=False, message=str(reason))

    db.add(
        SmsLog(
            company_id=company_id,
            phone_number=number[:30],
            message=message,
            sent_by_id=sent_by_id,
            status="sent",
        )
    )
    db.commit()
    return SendSmsResult(success=True)
