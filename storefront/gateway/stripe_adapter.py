"""Stripe Checkout adapter built on the stripe-python SDK.

Every call is bounded by ``timeout`` through the SDK's requests-backed HTTP
client. Connection failures, timeouts, rate limits and 5xx or unreadable
answers raise ``GatewayUnavailable`` so the caller can retry; any other Stripe
error is the gateway saying no and comes back as an unsuccessful result.
"""

import stripe

from storefront.gateway.port import (
    CheckoutRequest,
    CheckoutSessionResult,
    GatewayError,
    GatewayUnavailable,
    PaymentGateway,
    RefundResult,
    SessionState,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300

# stripe could not give an answer, as opposed to refusing the request
UNAVAILABLE_ERRORS = (stripe.APIConnectionError, stripe.APIError, stripe.RateLimitError)


def _checkout_params(request: CheckoutRequest, success_url: str, cancel_url: str) -> dict:
    params = {
        "mode": "payment",
        "payment_method_types": ["card"],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "client_reference_id": str(request.order_id),
        "metadata": {"order_id": str(request.order_id)},
        "line_items": [
            {
                "price_data": {
                    "currency": request.currency,
                    "product_data": {"name": item.name},
                    "unit_amount": item.unit_amount,
                },
                "quantity": item.quantity,
            }
            for item in request.line_items
        ],
        # free shipping, the order total already is what we charge
        "shipping_options": [
            {
                "shipping_rate_data": {
                    "type": "fixed_amount",
                    "fixed_amount": {"amount": 0, "currency": request.currency},
                    "display_name": "Free Shipping",
                }
            }
        ],
    }
    if request.customer_email:
        params["customer_email"] = request.customer_email
    return params


def _message(exc: stripe.StripeError) -> str:
    return exc.user_message or str(exc) or exc.__class__.__name__


class StripeGateway(PaymentGateway):
    """Production Stripe Checkout gateway."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str | None,
        success_url: str,
        cancel_url: str,
        timeout: float = 10.0,
    ) -> None:
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is required for the stripe gateway")
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.timeout = timeout
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def _unavailable(self, operation: str, exc: stripe.StripeError) -> GatewayUnavailable:
        logger.warning("Stripe unavailable", operation=operation, error=_message(exc),
                       http_status=exc.http_status)
        return GatewayUnavailable(_message(exc))

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSessionResult:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                idempotency_key=request.idempotency_key,
                **_checkout_params(request, self.success_url, self.cancel_url),
            )
        except UNAVAILABLE_ERRORS as exc:
            raise self._unavailable("create_checkout_session", exc) from exc
        except stripe.StripeError as exc:
            return CheckoutSessionResult(success=False, failure_reason=_message(exc))
        return CheckoutSessionResult(success=True, session_id=session.id, url=getattr(session, "url", None))

    def retrieve_session(self, session_id: str) -> SessionState:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except UNAVAILABLE_ERRORS as exc:
            raise self._unavailable("retrieve_session", exc) from exc
        except stripe.StripeError as exc:
            raise GatewayError(_message(exc)) from exc

        metadata = getattr(session, "metadata", None)
        order_id = getattr(metadata, "order_id", None) or getattr(session, "client_reference_id", None)
        return SessionState(
            session_id=session.id,
            status=getattr(session, "status", None) or "open",
            payment_status=getattr(session, "payment_status", None) or "unpaid",
            order_id=int(order_id) if order_id else None,
            payment_reference=getattr(session, "payment_intent", None),
        )

    def create_refund(
        self,
        payment_reference: str,
        amount: int,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                payment_intent=payment_reference,
                amount=amount,
                metadata={"reason": reason},
            )
        except UNAVAILABLE_ERRORS as exc:
            raise self._unavailable("create_refund", exc) from exc
        except stripe.StripeError as exc:
            return RefundResult(success=False, status="failed", failure_reason=_message(exc))
        status = getattr(refund, "status", None) or "pending"
        return RefundResult(success=status != "failed", refund_id=refund.id, status=status,
                            failure_reason=getattr(refund, "failure_reason", None))

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Check a ``Stripe-Signature`` header against the endpoint secret."""
        if not self.webhook_secret or not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret,
                                           tolerance=SIGNATURE_TOLERANCE_SECONDS)
        except stripe.SignatureVerificationError:
            return False
        except ValueError:
            logger.warning("Signed webhook payload is not valid JSON")
            return False
        return True
