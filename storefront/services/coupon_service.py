# storefront/services/coupon_service.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import or_, update

from ..errors import CouponError, InvalidField
from ..extensions import db
from ..model import Coupon, DISCOUNT_TYPES
from ..utils.dates import parse_iso8601, utcnow
from ..utils.logging import get_logger
from ..utils.money import D, ZERO, round_money

logger = get_logger(__name__)

DEFAULT_VALIDITY = timedelta(days=30)


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def discount_for(discount_type: str, discount_value, subtotal) -> Decimal:
    """Discount a coupon grants on ``subtotal``; never more than the subtotal."""
    subtotal = round_money(D(subtotal))
    value = D(discount_value)
    if subtotal <= 0 or value <= 0:
        return ZERO
    if discount_type == "percentage":
        amount = round_money(subtotal * value / Decimal(100))
    else:
        amount = round_money(value)
    return min(amount, subtotal)


@dataclass(frozen=True)
class CouponQuote:
    coupon_id: int
    code: str
    discount_type: str
    discount_value: Decimal
    subtotal: Decimal
    discount_amount: Decimal

    @property
    def final_total(self) -> Decimal:
        return round_money(self.subtotal - self.discount_amount)

    def as_api(self):
        return {
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": float(self.discount_value),
            "discount_amount": float(self.discount_amount),
            "original_total": float(self.subtotal),
            "final_total": float(self.final_total),
        }


class CouponValidator:
    """Checks a code against a subtotal. Read-only: usage is counted at order commit."""

    def validate(self, code, cart_subtotal, now: datetime | None = None) -> CouponQuote:
        now = now or utcnow()
        subtotal = round_money(D(cart_subtotal))
        normalized = normalize_code(code)
        if not normalized:
            raise CouponError("not_found", "Invalid coupon code")

        c = Coupon.query.filter(Coupon.code == normalized).first()
        if c is None:
            raise CouponError("not_found", "Invalid coupon code")
        if not c.is_active:
            raise CouponError("inactive", "Coupon is not active")
        if c.valid_from and now < c.valid_from:
            raise CouponError("not_yet_valid", "Coupon is not valid yet",
                              valid_from=c.valid_from.isoformat())
        if c.valid_until and now > c.valid_until:
            raise CouponError("expired", "Coupon has expired")
        minimum = round_money(D(c.min_purchase))
        if subtotal < minimum:
            raise CouponError("below_minimum", f"Minimum amount {minimum} required",
                              min_purchase=float(minimum))
        if c.max_uses and c.usage_count >= c.max_uses:
            raise CouponError("exhausted", "Coupon usage limit exceeded")

        return CouponQuote(
            coupon_id=c.id,
            code=c.code,
            discount_type=c.discount_type,
            discount_value=D(c.discount_value),
            subtotal=subtotal,
            discount_amount=discount_for(c.discount_type, c.discount_value, subtotal),
        )


def consume_coupon(coupon_id: int) -> bool:
    """Count one use of a coupon if it still has one left.

    A single conditional UPDATE, so two checkouts racing for the last use
    cannot both win. Does not commit; the caller's transaction does.
    """
    result = db.session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            Coupon.is_active.is_(True),
            or_(Coupon.max_uses == 0, Coupon.usage_count < Coupon.max_uses),
        )
        .values(usage_count=Coupon.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ---- administration ----------------------------------------------------------

def _decimal_field(data, name, default=None):
    raw = data.get(name, default)
    if raw is None or raw == "":
        return default
    try:
        return round_money(D(raw))
    except ArithmeticError:
        raise InvalidField(name, f"{name} must be numeric")


def _int_field(data, name, default=0):
    raw = data.get(name, default)
    if raw is None or raw == "":
        return default
    try:
        v = int(raw)
    except (TypeError, ValueError):
        raise InvalidField(name, f"{name} must be a whole number")
    if v < 0:
        raise InvalidField(name, f"{name} must be >= 0")
    return v


def _date_field(data, name):
    raw = data.get(name)
    if not raw:
        return None
    dt = parse_iso8601(raw)
    if dt is None:
        raise InvalidField(name, f"Invalid datetime format for {name}")
    return dt


def _apply_fields(c: Coupon, data: dict, creating: bool) -> None:
    if creating or "discount_type" in data:
        dtype = (data.get("discount_type") or "").lower().strip()
        if dtype not in DISCOUNT_TYPES:
            raise InvalidField("discount_type", "discount_type must be 'percentage' or 'fixed'")
        c.discount_type = dtype
    if creating or "discount_value" in data:
        value = _decimal_field(data, "discount_value")
        if value is None or value <= 0:
            raise InvalidField("discount_value", "discount_value must be > 0")
        c.discount_value = value
    if c.discount_type == "percentage" and D(c.discount_value) > 100:
        raise InvalidField("discount_value", "percentage discount must be <= 100")

    if creating or "min_purchase" in data:
        minimum = _decimal_field(data, "min_purchase", ZERO)
        if minimum < 0:
            raise InvalidField("min_purchase", "min_purchase must be >= 0")
        c.min_purchase = minimum
    if creating or "max_uses" in data:
        c.max_uses = _int_field(data, "max_uses", 0)
    if "is_active" in data or creating:
        c.is_active = bool(data.get("is_active", True))

    if creating or "valid_from" in data:
        c.valid_from = _date_field(data, "valid_from") or (utcnow() if creating else None)
    if creating or "valid_until" in data:
        c.valid_until = _date_field(data, "valid_until") or (c.valid_from + DEFAULT_VALIDITY if creating else None)
    if c.valid_from and c.valid_until and c.valid_until < c.valid_from:
        raise InvalidField("valid_until", "valid_until must be after valid_from")


def create_coupon_from_payload(data: dict) -> Coupon:
    code = normalize_code(data.get("code"))
    if not code:
        raise InvalidField("code", "code is required")
    if Coupon.query.filter(Coupon.code == code).first():
        raise InvalidField("code", "Coupon code already exists")

    c = Coupon(code=code, usage_count=0)
    _apply_fields(c, data, creating=True)
    db.session.add(c)
    db.session.commit()
    logger.info("Coupon created", code=c.code, discount_type=c.discount_type, max_uses=c.max_uses)
    return c


def update_coupon_from_payload(c: Coupon, data: dict) -> Coupon:
    """Edit a coupon. The code and usage counter are not editable."""
    _apply_fields(c, data, creating=False)
    if c.max_uses and c.usage_count > c.max_uses:
        raise InvalidField("max_uses", f"max_uses cannot be below current usage ({c.usage_count})")
    db.session.commit()
    return c
