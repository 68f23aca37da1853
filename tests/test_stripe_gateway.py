"""Tests for the Stripe Checkout adapter with the SDK's API calls patched out."""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from storefront.gateway import build_gateway
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.port import CheckoutRequest, GatewayError, GatewayUnavailable, LineItem
from storefront.gateway.stripe_adapter import StripeGateway


class StripeStub:
    """Stands in for the SDK calls the adapter makes; queue an answer or an error per call."""

    def __init__(self, monkeypatch):
        self.calls = []
        self.answers = {}
        monkeypatch.setattr(stripe.checkout.Session, "create", self._handler("session.create"))
        monkeypatch.setattr(stripe.checkout.Session, "retrieve", self._handler("session.retrieve"))
        monkeypatch.setattr(stripe.Refund, "create", self._handler("refund.create"))

    def answer(self, name, value):
        self.answers[name] = value

    def _handler(self, name):
        def call(*args, **kwargs):
            self.calls.append({"name": name, "args": args, **kwargs})
            value = self.answers[name]
            if isinstance(value, Exception):
                raise value
            return value
        return call


@pytest.fixture
def sdk(monkeypatch):
    return StripeStub(monkeypatch)


def _gateway(secret="whsec_test"):
    return StripeGateway(
        api_key="sk_test_123",
        webhook_secret=secret,
        success_url="https://shop.test/myorders?session_id={CHECKOUT_SESSION_ID}",
        cancel_url="https://shop.test/checkout",
        timeout=3.0,
    )


def _request():
    return CheckoutRequest(
        order_id=42,
        amount=11500,
        currency="inr",
        line_items=[LineItem(name="Order ORD-1", unit_amount=11500, quantity=1)],
        customer_email="alice@example.com",
        idempotency_key="order-42-session-1",
    )


class TestCheckout:
    def test_params_and_request_options(self, sdk):
        sdk.answer("session.create", SimpleNamespace(id="cs_1", url="https://pay.test/cs_1"))
        result = _gateway().create_checkout_session(_request())

        assert (result.success, result.session_id, result.url) == (True, "cs_1", "https://pay.test/cs_1")
        sent = sdk.calls[0]
        assert sent["api_key"] == "sk_test_123"
        assert sent["idempotency_key"] == "order-42-session-1"
        assert sent["metadata"] == {"order_id": "42"}
        assert sent["client_reference_id"] == "42"
        assert sent["line_items"][0]["price_data"]["unit_amount"] == 11500
        assert sent["line_items"][0]["quantity"] == 1
        assert sent["shipping_options"][0]["shipping_rate_data"]["fixed_amount"]["amount"] == 0
        assert sent["customer_email"] == "alice@example.com"

    def test_timeout_goes_to_the_http_client(self):
        gw = _gateway()
        assert isinstance(stripe.default_http_client, stripe.RequestsClient)
        assert gw.timeout == 3.0

    def test_invalid_request_is_a_refusal(self, sdk):
        sdk.answer("session.create", stripe.InvalidRequestError("Invalid currency", "currency"))
        result = _gateway().create_checkout_session(_request())
        assert result.success is False
        assert result.failure_reason == "Invalid currency"

    @pytest.mark.parametrize("exc", [
        stripe.APIConnectionError("Request timed out"),
        stripe.APIError("Invalid response body from API", http_status=200),
        stripe.APIError("Internal error", http_status=503),
        stripe.RateLimitError("Too many requests", http_status=429),
    ])
    def test_no_answer_is_unavailable(self, sdk, exc):
        sdk.answer("session.create", exc)
        with pytest.raises(GatewayUnavailable):
            _gateway().create_checkout_session(_request())


class TestSessionsAndRefunds:
    def test_retrieve_session(self, sdk):
        sdk.answer("session.retrieve", SimpleNamespace(
            id="cs_1", status="complete", payment_status="paid", payment_intent="pi_9",
            client_reference_id="42", metadata=SimpleNamespace(order_id="42"),
        ))
        state = _gateway().retrieve_session("cs_1")
        assert (state.order_id, state.payment_status, state.payment_reference) == (42, "paid", "pi_9")
        assert sdk.calls[0]["args"] == ("cs_1",)

    def test_retrieve_unknown_session(self, sdk):
        sdk.answer("session.retrieve", stripe.InvalidRequestError("No such checkout.session", "id"))
        with pytest.raises(GatewayError) as exc:
            _gateway().retrieve_session("x")
        assert not isinstance(exc.value, GatewayUnavailable)

    def test_retrieve_unreachable(self, sdk):
        sdk.answer("session.retrieve", stripe.APIConnectionError("connection reset"))
        with pytest.raises(GatewayUnavailable):
            _gateway().retrieve_session("cs_1")

    def test_refund(self, sdk):
        sdk.answer("refund.create", SimpleNamespace(id="re_1", status="succeeded", failure_reason=None))
        result = _gateway().create_refund("pi_9", 12000, "cancelled", "refund-order-42")
        assert (result.success, result.refund_id, result.status) == (True, "re_1", "succeeded")
        sent = sdk.calls[0]
        assert (sent["payment_intent"], sent["amount"]) == ("pi_9", 12000)
        assert sent["idempotency_key"] == "refund-order-42"
        assert sent["metadata"] == {"reason": "cancelled"}

    def test_refund_refused(self, sdk):
        sdk.answer("refund.create", stripe.InvalidRequestError("Charge has already been refunded", None))
        result = _gateway().create_refund("pi_9", 12000, "cancelled", "refund-order-42")
        assert (result.success, result.status) == (False, "failed")
        assert "already been refunded" in result.failure_reason

    def test_refund_with_unreadable_answer_is_unavailable(self, sdk):
        sdk.answer("refund.create", stripe.APIError("Invalid response body from API: <html>", http_status=200))
        with pytest.raises(GatewayUnavailable):
            _gateway().create_refund("pi_9", 12000, "cancelled", "refund-order-42")


class TestWebhookSignature:
    payload = json.dumps({"id": "evt_1", "object": "event", "type": "checkout.session.completed"}).encode()

    def _sign(self, payload, secret="whsec_test", ts=None):
        ts = ts or int(time.time())
        sig = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
        return f"t={ts},v1={sig}"

    def test_valid(self):
        assert _gateway().verify_webhook_signature(self.payload, self._sign(self.payload))

    def test_wrong_secret(self):
        assert not _gateway().verify_webhook_signature(self.payload, self._sign(self.payload, "other"))

    def test_stale_timestamp(self):
        old = self._sign(self.payload, ts=int(time.time()) - 3600)
        assert not _gateway().verify_webhook_signature(self.payload, old)

    def test_garbage_header(self):
        assert not _gateway().verify_webhook_signature(self.payload, "test-signature")

    def test_no_secret_configured(self):
        assert not _gateway(secret=None).verify_webhook_signature(self.payload, self._sign(self.payload))


class TestBuildGateway:
    def test_fake_only_for_testing(self):
        assert isinstance(build_gateway({"PAYMENT_GATEWAY": "fake", "TESTING": True}), FakeGateway)
        with pytest.raises(ValueError):
            build_gateway({"PAYMENT_GATEWAY": "fake"})

    def test_stripe_by_default(self):
        gw = build_gateway({"STRIPE_SECRET_KEY": "sk_test", "APP_URL": "https://shop.test/",
                            "PAYMENT_TIMEOUT_SECONDS": 4})
        assert isinstance(gw, StripeGateway)
        assert gw.timeout == 4.0
        assert gw.cancel_url == "https://shop.test/checkout"

    def test_stripe_needs_key(self):
        with pytest.raises(ValueError):
            build_gateway({})

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_gateway({"PAYMENT_GATEWAY": "paypal"})
