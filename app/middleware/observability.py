from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import request_metrics
from app.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SHOPIFY_TOPIC_HEADER = "X-Shopify-Topic"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id propagation, per-route/per-company metrics and one access log line.

    Metrics and logs use the matched route template so public rider tokens in
    the path never reach either.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        response = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            endpoint = _route_template(request)
            company_id = _extract_company_id(request)
            user_id = _extract_user_id(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

            set_request_context(company_id=company_id, user_id=user_id)
            request_metrics.observe(
                endpoint=endpoint,
                method=request.method,
                status_code=status_code,
                duration_ms=duration_ms,
                company_id=company_id,
            )

            extra = {
                "request_id": request_id,
                "company_id": company_id,
                "user_id": user_id,
                "endpoint": endpoint,
                "method": request.method,
                "status_code": status_code,
                "duration_ms": duration_ms,
            }
            topic = request.headers.get(SHOPIFY_TOPIC_HEADER)
            if topic:
                extra["trigger"] = topic
            log = logger.warning if status_code >= 500 else logger.info
            log("request completed", extra=extra)

            if response is not None:
                response.headers[REQUEST_ID_HEADER] = request_id
            clear_request_context()


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path


def _extract_company_id(request: Request) -> str | None:
    # Set by the webhook router from the resolved location, or by get_current_user
    company_id = getattr(request.state, "company_id", None)
    if company_id is None:
        company_id = getattr(getattr(request.state, "user", None), "company_id", None)
    return str(company_id) if company_id is not None else None


def _extract_user_id(request: Request) -> str | None:
    user_id = getattr(getattr(request.state, "user", None), "id", None)
    return str(user_id) if user_id is not None else None
