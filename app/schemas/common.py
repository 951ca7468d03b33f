from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Annotated, Any

from pydantic import BeforeValidator


def coerce_identifier(value: Any) -> str:
    """Shopify ids arrive as JSON numbers or strings; downstream keys are always strings."""
    if isinstance(value, bool):
        raise ValueError("must be a string or integer identifier")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ValueError("must be a string or integer identifier")


def coerce_money(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("must be a decimal amount")
    if isinstance(value, float):
        # str() keeps the shortest repr, so 19.99 stays 19.99
        return str(value)
    if isinstance(value, str):
        try:
            Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError("must be a decimal amount") from exc
        return value.strip()
    return value


ShopifyId = Annotated[str, BeforeValidator(coerce_identifier)]
Money = Annotated[Decimal, BeforeValidator(coerce_money)]
