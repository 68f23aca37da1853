# storefront/schemas.py
"""Typed request payloads.

Shipping fields are checked in declaration order and the first failure is
reported by the name the client used (``fullName``, ``postalCode``, ...).
"""
from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .errors import InvalidField

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[0-9]{10}$")
POSTAL_CODE_RE = re.compile(r"^[0-9]{4,6}$")


def _required(value: str) -> str:
    if not value:
        raise ValueError("is required")
    return value


class ShippingDetails(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )

    full_name: str = Field(alias="fullName")
    email: str
    phone: str
    address: str
    city: str
    postal_code: str = Field(alias="postalCode")
    country: str
    state: str | None = None

    @field_validator("full_name", "address", "city", "country")
    @classmethod
    def _not_blank(cls, v):
        return _required(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        if not EMAIL_RE.match(_required(v)):
            raise ValueError("is not a valid email address")
        return v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        if not PHONE_RE.match(_required(v)):
            raise ValueError("must be 10 digits")
        return v

    @field_validator("postal_code")
    @classmethod
    def _postal_code(cls, v):
        if not POSTAL_CODE_RE.match(_required(v)):
            raise ValueError("must be 4 to 6 digits")
        return v

    def as_snapshot(self) -> dict:
        return self.model_dump(by_alias=True)


_PUBLIC_NAMES = {
    name: (info.alias or name) for name, info in ShippingDetails.model_fields.items()
}


def _first_error(exc: PydanticValidationError, prefix: str = "") -> InvalidField:
    e = exc.errors()[0]
    field = str(e["loc"][0]) if e["loc"] else "payload"
    field = _PUBLIC_NAMES.get(field, field)
    if e["type"] in ("missing", "string_type"):
        reason = "is required"
    else:
        reason = str(e.get("ctx", {}).get("error") or e["msg"])
    return InvalidField(prefix + field, f"{field} {reason}")


def parse_shipping(data: Any) -> ShippingDetails:
    if isinstance(data, ShippingDetails):
        return data
    if not isinstance(data, dict):
        raise InvalidField("shipping", "shipping details are required")
    try:
        return ShippingDetails.model_validate(data)
    except PydanticValidationError as exc:
        raise _first_error(exc) from None


class OrderLinePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: int
    quantity: int = Field(ge=1)
    # client-side values, informational only
    name: str | None = None
    price: float | None = None

    @classmethod
    def from_raw(cls, raw: dict) -> "OrderLinePayload":
        if isinstance(raw, dict) and "product_id" not in raw and "id" in raw:
            raw = {**raw, "product_id": raw["id"]}
        if isinstance(raw, dict) and "quantity" not in raw and "qty" in raw:
            raw = {**raw, "quantity": raw["qty"]}
        return cls.model_validate(raw)


class CreateOrderRequest(BaseModel):
    """Body of ``POST /orders``. Money fields sent by the client are never trusted."""

    model_config = ConfigDict(extra="ignore")

    user_id: int | None = None
    shipping: dict | None = None
    items: list[dict] = Field(default_factory=list)
    payment_method: str = "cod"
    coupon_code: str | None = None
    coupon_discount: float | None = None
    total: float | None = None

    @field_validator("coupon_code")
    @classmethod
    def _blank_coupon_is_none(cls, v):
        v = (v or "").strip()
        return v or None

    def lines(self) -> list[OrderLinePayload]:
        out = []
        for i, raw in enumerate(self.items):
            try:
                out.append(OrderLinePayload.from_raw(raw))
            except PydanticValidationError as exc:
                raise _first_error(exc, prefix=f"items[{i}].") from None
        return out


def parse_order_request(data: Any) -> CreateOrderRequest:
    try:
        return CreateOrderRequest.model_validate(data or {})
    except PydanticValidationError as exc:
        raise _first_error(exc) from None
