from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from app.schemas.shopify_order import ShopifyOrderPayload
from app.schemas.shopify_product import ShopifyProductPayload

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class PayloadValid:
    payload: Any
    ok: Literal[True] = True


@dataclass(frozen=True)
class PayloadInvalid:
    errors: dict[str, list[str]] = field(default_factory=dict)
    ok: Literal[False] = False


ValidationResult = Union[PayloadValid, PayloadInvalid]


def field_errors(exc: ValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "body"
        errors.setdefault(location, []).append(error.get("msg", "Invalid value"))
    return errors


def _validate(model: Type[ModelT], data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return PayloadInvalid(errors={"body": ["Payload must be a JSON object"]})
    try:
        return PayloadValid(payload=model.model_validate(data))
    except ValidationError as exc:
        return PayloadInvalid(errors=field_errors(exc))


def validate_order_payload(data: Any) -> ValidationResult:
    return _validate(ShopifyOrderPayload, data)


def validate_product_payload(data: Any) -> ValidationResult:
    return _validate(ShopifyProductPayload, data)
