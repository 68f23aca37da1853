# storefront/coupon/routes.py
from __future__ import annotations
from flask import request

from ..errors import CouponError, InvalidField
from ..services.coupon_service import CouponValidator
from ..utils.api import ok, err
from ..utils.logging import get_logger
from ..utils.money import D
from . import bp

logger = get_logger(__name__)


@bp.post("/validate")
def validate_coupon():
    """
    Body: { "code": "SUMMER10", "cart_total": 120.0 }
    Quotes the discount only; usage is counted when an order is placed.
    """
    data = request.get_json(silent=True) or {}
    code = (data.get("code") or "").strip()
    if not code:
        raise InvalidField("code", "code is required")
    try:
        subtotal = D(data.get("cart_total"))
        finite = subtotal.is_finite()
    except (ArithmeticError, TypeError):
        raise InvalidField("cart_total", "cart_total must be numeric")
    if not finite:
        raise InvalidField("cart_total", "cart_total must be numeric")
    if subtotal < 0:
        raise InvalidField("cart_total", "cart_total must be >= 0")

    try:
        quote = CouponValidator().validate(code, subtotal)
    except CouponError as e:
        logger.info("Coupon rejected", code=code.upper(), reason=e.reason)
        return err(e.message, e.status_code, e.to_data())

    return ok("Coupon applied", quote.as_api())
