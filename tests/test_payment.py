"""Tests for payment strategies and inbound payment confirmation."""

from decimal import Decimal

import pytest

from storefront.errors import NotFound, PaymentDeclined, PaymentGatewayUnavailable, PaymentNotAllowed
from storefront.extensions import db
from storefront.model import Order, PaymentSession
from storefront.services.order_service import OrderAssembler
from storefront.services.payment_service import (
    CashOnDelivery,
    HostedCardPayment,
    on_payment_confirmed,
    strategy_for,
)


@pytest.fixture
def place(app, basket, shipping):
    def _place(method="online", coupon_code=None, lines=None):
        return OrderAssembler().assemble(lines or basket, shipping, method, coupon_code=coupon_code)
    return _place


@pytest.fixture
def card(gateway):
    return HostedCardPayment(gateway, currency="inr")


class TestStrategySelection:
    def test_cod(self, gateway):
        assert isinstance(strategy_for("cod", gateway), CashOnDelivery)

    @pytest.mark.parametrize("method", ["online", "stripe", "card"])
    def test_online(self, gateway, method):
        assert isinstance(strategy_for(method, gateway), HostedCardPayment)


class TestCashOnDelivery:
    def test_no_gateway_call(self, place, gateway):
        order = place("cod")
        outcome = CashOnDelivery().pay(order)
        assert (outcome.method, outcome.payment_status) == ("cod", "unpaid")
        assert gateway.calls == []


class TestHostedCardPayment:
    def test_session_carries_order_and_minor_units(self, place, card, gateway):
        order = place()
        outcome = card.pay(order)

        call = gateway.calls_to("create_checkout_session")[0]
        assert call["order_id"] == order.id
        assert call["amount"] == 12000
        assert call["currency"] == "inr"
        assert call["shipping"]["postalCode"] == "12000"
        assert sum(li.unit_amount * li.quantity for li in call["line_items"]) == 12000
        assert outcome.session_id and outcome.redirect_url.endswith(outcome.session_id)

        session = PaymentSession.query.filter_by(order_id=order.id).one()
        assert (session.status, session.amount) == ("open", 12000)

    def test_coupon_collapses_line_items(self, place, card, gateway, make_coupon):
        make_coupon(code="FIVE", discount_value=5)
        order = place(coupon_code="FIVE")
        card.pay(order)
        items = gateway.calls_to("create_checkout_session")[0]["line_items"]
        assert [(i.unit_amount, i.quantity) for i in items] == [(11500, 1)]

    def test_unreachable_gateway_leaves_order_retryable(self, place, card, gateway):
        order = place()
        gateway.configure(unreachable=True)
        with pytest.raises(PaymentGatewayUnavailable) as exc:
            card.pay(order)
        assert exc.value.retryable is True

        order = db.session.get(Order, order.id)
        assert (order.status, order.payment_status) == ("pending", "unpaid")
        assert PaymentSession.query.count() == 0

        gateway.configure()
        outcome = card.pay(order)
        assert outcome.session_id
        keys = [c["idempotency_key"] for c in gateway.calls_to("create_checkout_session")]
        assert keys == [f"order-{order.id}-session-1", f"order-{order.id}-session-1"]

    def test_retry_after_success_uses_new_key(self, place, card, gateway):
        order = place()
        card.pay(order)
        card.pay(db.session.get(Order, order.id))
        keys = [c["idempotency_key"] for c in gateway.calls_to("create_checkout_session")]
        assert keys == [f"order-{order.id}-session-1", f"order-{order.id}-session-2"]

    def test_declined(self, place, card, gateway):
        order = place()
        gateway.configure(should_succeed=False, failure_reason="account restricted")
        with pytest.raises(PaymentDeclined) as exc:
            card.pay(order)
        assert "restricted" in exc.value.message
        assert db.session.get(Order, order.id).payment_status == "unpaid"

    def test_paid_order_cannot_pay_again(self, place, card):
        order = place()
        on_payment_confirmed(order.id, "paid")
        with pytest.raises(PaymentNotAllowed):
            card.pay(db.session.get(Order, order.id))

    def test_fully_discounted_order_needs_no_session(self, place, card, gateway, make_coupon):
        make_coupon(code="FREE", discount_type="percentage", discount_value=100)
        order = place(coupon_code="FREE")
        assert order.total == Decimal("0.00")
        outcome = card.pay(order)
        assert outcome.payment_status == "paid"
        assert gateway.calls == []


class TestConfirmation:
    def test_paid_flips_once(self, place, card, gateway):
        order = place()
        outcome = card.pay(order)

        on_payment_confirmed(order.id, "paid", session_id=outcome.session_id, payment_reference="pi_1")
        again = on_payment_confirmed(order.id, "paid", session_id=outcome.session_id, payment_reference="pi_2")

        assert again.payment_status == "paid"
        assert again.payment_reference == "pi_1"
        assert again.status == "pending"
        assert PaymentSession.query.one().status == "complete"

    def test_failure_leaves_unpaid(self, place, card):
        order = place()
        outcome = card.pay(order)
        order = on_payment_confirmed(order.id, "expired", session_id=outcome.session_id)
        assert order.payment_status == "unpaid"
        assert PaymentSession.query.one().status == "expired"

    def test_unsettled_payment_changes_nothing(self, place, card):
        order = place()
        outcome = card.pay(order)
        order = on_payment_confirmed(order.id, "unpaid", session_id=outcome.session_id)
        assert order.payment_status == "unpaid"
        assert PaymentSession.query.one().status == "open"

        order = on_payment_confirmed(order.id, "paid", session_id=outcome.session_id, payment_reference="pi_3")
        assert order.payment_status == "paid"

    def test_cancelled_order_not_marked_paid(self, place):
        order = place()
        order.status = "cancelled"
        db.session.commit()
        assert on_payment_confirmed(order.id, "paid").payment_status == "unpaid"

    def test_unknown_order(self, app):
        with pytest.raises(NotFound):
            on_payment_confirmed(999, "paid")
