from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# Read by the JSON log formatter; set per HTTP request and per background event
_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_COMPANY_ID_CTX: ContextVar[str | None] = ContextVar("company_id", default=None)
_USER_ID_CTX: ContextVar[str | None] = ContextVar("user_id", default=None)


def set_request_context(
    *, request_id: str | None = None, company_id: str | None = None, user_id: str | None = None
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if company_id is not None:
        _COMPANY_ID_CTX.set(company_id)
    if user_id is not None:
        _USER_ID_CTX.set(user_id)


@contextmanager
def scoped_context(
    *, request_id: str | None = None, company_id: str | None = None, user_id: str | None = None
) -> Iterator[None]:
    """Set context values for the block and restore the previous ones afterwards."""
    tokens = [
        (var, var.set(value))
        for var, value in (
            (_REQUEST_ID_CTX, request_id),
            (_COMPANY_ID_CTX, company_id),
            (_USER_ID_CTX, user_id),
        )
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_company_id() -> str | None:
    return _COMPANY_ID_CTX.get()


def get_user_id() -> str | None:
    return _USER_ID_CTX.get()


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _COMPANY_ID_CTX.set(None)
    _USER_ID_CTX.set(None)
