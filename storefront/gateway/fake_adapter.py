"""Configurable fake payment gateway for development and testing.

Simulates a hosted checkout without any external calls. It can be told to
decline, to be unreachable, or to answer refunds with a given status, and it
records every call so tests can assert on what the core asked for.
"""

from uuid import uuid4

from storefront.gateway.port import (
    CheckoutRequest,
    CheckoutSessionResult,
    GatewayError,
    GatewayUnavailable,
    PaymentGateway,
    RefundResult,
    SessionState,
)

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, base_url: str = "https://checkout.fake.test") -> None:
        self.base_url = base_url.rstrip("/")
        self.should_succeed: bool = True
        self.unreachable: bool = False
        self.failure_reason: str = "Card declined"
        self.refund_status: str = "succeeded"
        self.calls: list[dict] = []
        self.sessions: dict[str, dict] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        unreachable: bool = False,
        refund_status: str = "succeeded",
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.unreachable = unreachable
        self.refund_status = refund_status

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append({"method": method, **kwargs})
        if self.unreachable:
            raise GatewayUnavailable(f"fake gateway unreachable during {method}")

    def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSessionResult:
        self._record(
            "create_checkout_session",
            order_id=request.order_id,
            amount=request.amount,
            currency=request.currency,
            line_items=list(request.line_items),
            shipping=dict(request.shipping or {}),
            idempotency_key=request.idempotency_key,
        )
        if not self.should_succeed:
            return CheckoutSessionResult(success=False, failure_reason=self.failure_reason)

        session_id = f"cs_fake_{uuid4().hex[:16]}"
        self.sessions[session_id] = {
            "order_id": request.order_id,
            "amount": request.amount,
            "status": "open",
            "payment_status": "unpaid",
            "payment_reference": None,
        }
        return CheckoutSessionResult(
            success=True,
            session_id=session_id,
            url=f"{self.base_url}/pay/{session_id}",
        )

    def complete_session(self, session_id: str, paid: bool = True) -> dict:
        """Act as the customer finishing (or abandoning) the hosted page.

        Returns the webhook event the gateway would send.
        """
        s = self.sessions[session_id]
        if paid:
            s.update(status="complete", payment_status="paid", payment_reference=f"pi_fake_{uuid4().hex[:12]}")
            event_type = "checkout.session.completed"
        else:
            s.update(status="expired", payment_status="unpaid")
            event_type = "checkout.session.expired"
        return {
            "id": f"evt_fake_{uuid4().hex[:12]}",
            "type": event_type,
            "data": {
                "object": {
                    "id": session_id,
                    "status": s["status"],
                    "payment_status": s["payment_status"],
                    "payment_intent": s["payment_reference"],
                    "metadata": {"order_id": str(s["order_id"])},
                }
            },
        }

    def retrieve_session(self, session_id: str) -> SessionState:
        self._record("retrieve_session", session_id=session_id)
        s = self.sessions.get(session_id)
        if s is None:
            raise GatewayError(f"no such checkout session: {session_id}")
        return SessionState(
            session_id=session_id,
            status=s["status"],
            payment_status=s["payment_status"],
            order_id=s["order_id"],
            payment_reference=s["payment_reference"],
        )

    def create_refund(
        self,
        payment_reference: str,
        amount: int,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        self._record(
            "create_refund",
            payment_reference=payment_reference,
            amount=amount,
            reason=reason,
            idempotency_key=idempotency_key,
        )
        if not self.should_succeed:
            return RefundResult(success=False, status="failed", failure_reason=self.failure_reason)
        return RefundResult(
            success=True,
            refund_id=f"re_fake_{uuid4().hex[:12]}",
            status=self.refund_status,
        )

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:  # noqa: ARG002
        return signature == TEST_SIGNATURE
