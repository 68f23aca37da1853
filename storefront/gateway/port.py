"""Hosted payment gateway port.

The contract the order core depends on. Adapters either return a result
object (the gateway answered, possibly with a refusal) or raise
``GatewayUnavailable`` (the gateway could not be reached in time). The two
must never be conflated: an unreachable gateway is retryable, a refusal is an
answer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class GatewayError(Exception):
    """Base class for adapter-level failures."""


class GatewayUnavailable(GatewayError):
    """Timeout, connection failure or 5xx from the gateway."""


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_amount: int  # minor units
    quantity: int


@dataclass(frozen=True)
class CheckoutSessionResult:
    success: bool
    session_id: str | None = None
    url: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class SessionState:
    """Gateway view of a hosted session, used when the customer is redirected back."""

    session_id: str
    status: str  # open | complete | expired
    payment_status: str  # paid | unpaid | no_payment_required
    order_id: int | None = None
    payment_reference: str | None = None


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_id: str | None = None
    status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class CheckoutRequest:
    order_id: int
    amount: int  # minor units
    currency: str
    line_items: list[LineItem] = field(default_factory=list)
    shipping: dict = field(default_factory=dict)
    customer_email: str | None = None
    idempotency_key: str | None = None


class PaymentGateway(ABC):
    """Abstract hosted payment gateway."""

    @abstractmethod
    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSessionResult:
        """Create an externally hosted payment page for an existing order."""
        ...

    @abstractmethod
    def retrieve_session(self, session_id: str) -> SessionState:
        """Fetch the current state of a hosted session."""
        ...

    @abstractmethod
    def create_refund(
        self,
        payment_reference: str,
        amount: int,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund a captured payment in full."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
