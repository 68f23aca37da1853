# storefront/errors.py
"""Error hierarchy for the order core.

Every error carries the HTTP status the API answers with and a machine
readable ``reason``; the blueprint error handler renders them in the standard
envelope. Refund and notification failures are deliberately absent: they are
recorded or logged, never raised to a caller.
"""
from __future__ import annotations


class StorefrontError(Exception):
    status_code = 400
    reason = "error"

    def __init__(self, message: str | None = None, **data):
        self.message = message or self.default_message()
        self.data = data
        super().__init__(self.message)

    def default_message(self) -> str:
        return self.reason.replace("_", " ")

    def to_data(self) -> dict:
        return {"reason": self.reason, **self.data}


class NotFound(StorefrontError):
    status_code = 404
    reason = "not_found"


class Forbidden(StorefrontError):
    status_code = 403
    reason = "forbidden"


# ---- validation ------------------------------------------------------------
class ValidationError(StorefrontError):
    status_code = 422
    reason = "invalid"


class EmptyCart(ValidationError):
    reason = "empty_cart"

    def default_message(self):
        return "cart is empty"


class InvalidField(ValidationError):
    reason = "invalid_field"

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"{field} is invalid", field=field)


# ---- coupons ---------------------------------------------------------------
class CouponError(StorefrontError):
    """A coupon could not be applied; ``reason`` says why.

    Reasons: not_found, inactive, not_yet_valid, expired, below_minimum,
    exhausted.
    """

    status_code = 422

    def __init__(self, reason: str, message: str | None = None, **data):
        self.reason = reason
        if reason == "not_found":
            self.status_code = 404
        super().__init__(message, **data)


# ---- stock -----------------------------------------------------------------
class StockError(StorefrontError):
    status_code = 409
    reason = "stock"

    def __init__(self, product_id: int, message: str | None = None):
        self.product_id = product_id
        super().__init__(message, product_id=product_id)


class InsufficientStock(StockError):
    reason = "insufficient_stock"

    def default_message(self):
        return f"requested quantity for product {self.product_id} not available"


class ProductUnavailable(StockError):
    reason = "product_unavailable"

    def default_message(self):
        return f"product {self.product_id} unavailable"


# ---- payments --------------------------------------------------------------
class PaymentError(StorefrontError):
    status_code = 502
    reason = "payment_error"
    retryable = False

    def __init__(self, order_id: int | None, message: str | None = None):
        self.order_id = order_id
        super().__init__(message, order_id=order_id, retryable=self.retryable)


class PaymentGatewayUnavailable(PaymentError):
    """Gateway unreachable or timed out; the order is untouched and the call may be retried."""

    status_code = 503
    reason = "gateway_unavailable"
    retryable = True

    def default_message(self):
        return "payment gateway unreachable, please retry"


class PaymentDeclined(PaymentError):
    reason = "payment_declined"
    retryable = True

    def default_message(self):
        return "payment session could not be created"


class PaymentNotAllowed(PaymentError):
    status_code = 409
    reason = "payment_not_allowed"


# ---- order lifecycle -------------------------------------------------------
class InvalidTransition(StorefrontError):
    status_code = 409
    reason = "invalid_transition"

    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(
            message or f"cannot move order from {current} to {target}",
            current=current,
            target=target,
        )


class ImmutableOrderItem(RuntimeError):
    """Raised when something tries to rewrite an order line after assembly."""
