# storefront/services/payment_service.py
"""Payment strategies for a persisted order, and the inbound confirmation.

Cash on delivery never leaves the process. Hosted card payment opens a
session at the gateway for an order that already exists, so the gateway can
carry the order id back to us. Whether the customer actually paid arrives
later through ``on_payment_confirmed``, fed by the gateway webhook or by the
redirect-return check.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import update

from ..errors import NotFound, PaymentDeclined, PaymentGatewayUnavailable, PaymentNotAllowed
from ..extensions import db
from ..gateway.port import CheckoutRequest, GatewayUnavailable, LineItem, PaymentGateway
from ..model import Order, OrderStatus, PaymentMethod, PaymentSession, PaymentStatus
from ..utils.logging import get_logger
from ..utils.money import D, to_minor_units

logger = get_logger(__name__)

PAID_STATUSES = frozenset({"paid", "complete", "succeeded", "no_payment_required"})
# the customer finished the page but the money has not settled yet (bank debits, vouchers)
IN_FLIGHT_STATUSES = frozenset({"unpaid", "processing", "pending"})


@dataclass(frozen=True)
class PaymentOutcome:
    method: str
    payment_status: str
    session_id: str | None = None
    redirect_url: str | None = None

    def as_api(self):
        return {
            "method": self.method,
            "paymentStatus": self.payment_status,
            "sessionId": self.session_id,
            "redirectUrl": self.redirect_url,
        }


class PaymentStrategy(ABC):
    method: PaymentMethod

    @abstractmethod
    def pay(self, order: Order) -> PaymentOutcome:
        ...


class CashOnDelivery(PaymentStrategy):
    """Nothing to do now; the courier collects. payment_status stays unpaid."""

    method = PaymentMethod.COD

    def pay(self, order: Order) -> PaymentOutcome:
        return PaymentOutcome(method=self.method.value, payment_status=order.payment_status)


def _line_items(order: Order, amount: int) -> list[LineItem]:
    items = [
        LineItem(name=i.name or f"Product {i.product_id}", unit_amount=to_minor_units(i.price), quantity=i.quantity)
        for i in order.items
    ]
    # a coupon makes the per-line prices overshoot the charge; bill one line instead
    if sum(i.unit_amount * i.quantity for i in items) != amount:
        items = [LineItem(name=f"Order {order.code}", unit_amount=amount, quantity=1)]
    return items


class HostedCardPayment(PaymentStrategy):
    method = PaymentMethod.ONLINE

    def __init__(self, gateway: PaymentGateway, currency: str = "inr"):
        self.gateway = gateway
        self.currency = currency

    def pay(self, order: Order) -> PaymentOutcome:
        if order.id is None:
            raise PaymentNotAllowed(None, "order must be saved before payment")
        if order.status != OrderStatus.PENDING.value or order.payment_status != PaymentStatus.UNPAID.value:
            raise PaymentNotAllowed(order.id, f"order is {order.status}/{order.payment_status}; nothing to pay")

        amount = to_minor_units(order.total)
        if amount == 0:
            # fully discounted; there is nothing to charge
            on_payment_confirmed(order.id, "no_payment_required")
            return PaymentOutcome(method=self.method.value, payment_status=PaymentStatus.PAID.value)

        attempt = len(order.payment_sessions) + 1
        request = CheckoutRequest(
            order_id=order.id,
            amount=amount,
            currency=self.currency,
            line_items=_line_items(order, amount),
            shipping=dict(order.shipping_json or {}),
            customer_email=order.email,
            idempotency_key=f"order-{order.id}-session-{attempt}",
        )
        log = logger.bind(order_id=order.id, amount=amount, attempt=attempt)
        try:
            result = self.gateway.create_checkout_session(request)
        except GatewayUnavailable as exc:
            log.warning("Payment session creation failed, gateway unavailable", error=str(exc))
            raise PaymentGatewayUnavailable(order.id) from exc
        if not result.success:
            log.warning("Payment session rejected", reason=result.failure_reason)
            raise PaymentDeclined(order.id, result.failure_reason or None)

        session = PaymentSession(
            order_id=order.id,
            external_session_id=result.session_id,
            amount=amount,
            currency=self.currency,
            status="open",
            redirect_url=result.url,
        )
        db.session.add(session)
        db.session.commit()
        log.info("Payment session created", session_id=result.session_id)
        return PaymentOutcome(
            method=self.method.value,
            payment_status=order.payment_status,
            session_id=result.session_id,
            redirect_url=result.url,
        )


def strategy_for(method, gateway: PaymentGateway, currency: str = "inr") -> PaymentStrategy:
    method = PaymentMethod.parse(method) if not isinstance(method, PaymentMethod) else method
    if method is PaymentMethod.COD:
        return CashOnDelivery()
    return HostedCardPayment(gateway, currency=currency)


def on_payment_confirmed(order_id: int, external_status: str, session_id: str | None = None,
                         payment_reference: str | None = None) -> Order:
    """Apply a payment result reported by the gateway.

    A paid status flips ``unpaid -> paid`` exactly once; repeats are no-ops.
    An in-flight status changes nothing, a later event settles it. Anything
    else leaves the order unpaid and closes the session. Payments landing on
    an already cancelled order are logged and left alone.
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound(f"order {order_id} not found")
    status = (external_status or "").strip().lower()
    log = logger.bind(order_id=order_id, external_status=status, session_id=session_id)

    session = None
    if session_id:
        session = PaymentSession.query.filter_by(external_session_id=session_id, order_id=order_id).first()

    if status in IN_FLIGHT_STATUSES:
        log.info("Payment still in flight, waiting for the final event")
        return order

    if status not in PAID_STATUSES:
        if session and session.status == "open":
            session.status = "expired" if status == "expired" else "failed"
        db.session.commit()
        log.info("Payment not completed, order stays unpaid")
        return order

    if order.status == OrderStatus.CANCELLED.value:
        log.warning("Payment confirmed for cancelled order, ignored")
        return order

    values = {"payment_status": PaymentStatus.PAID.value}
    if payment_reference:
        values["payment_reference"] = payment_reference
    result = db.session.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.payment_status == PaymentStatus.UNPAID.value,
            Order.status != OrderStatus.CANCELLED.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if session:
        session.status = "complete"
    db.session.commit()
    db.session.refresh(order)

    if result.rowcount == 1:
        log.info("Order paid", total=str(D(order.total)))
    else:
        log.info("Payment confirmation already applied", payment_status=order.payment_status)
    return order
