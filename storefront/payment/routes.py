# storefront/payment/routes.py
import json

from flask import g, request

from ..errors import Forbidden, InvalidField, NotFound, PaymentGatewayUnavailable, PaymentNotAllowed
from ..extensions import db
from ..gateway import get_gateway
from ..gateway.port import GatewayError, GatewayUnavailable
from ..model import Order, PaymentMethod
from ..services import payment_currency
from ..services.payment_service import HostedCardPayment, on_payment_confirmed
from ..utils.api import ok, err, parse_int
from ..utils.decorators import login_required
from ..utils.logging import get_logger
from ..utils.money import to_minor_units
from . import bp

logger = get_logger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"

# event type -> status handed to on_payment_confirmed (None: read it off the session)
HANDLED_EVENTS = {
    "checkout.session.completed": None,
    "checkout.session.async_payment_succeeded": "paid",
    "checkout.session.async_payment_failed": "failed",
    "checkout.session.expired": "expired",
}


def _owned_order(order_id: int) -> Order:
    o = db.session.get(Order, order_id)
    if not o:
        raise NotFound("order not found")
    if not g.current_user.is_admin and o.user_id != g.current_user.id:
        raise Forbidden("not your order")
    return o


@bp.post("/session")
@login_required
def create_session():
    """
    Body: { "orderId": int, "amount"?: int (minor units) }
    Opens a hosted payment page for an existing online order. Safe to call
    again after a failure; the order stays pending/unpaid until paid.
    """
    data = request.get_json(silent=True) or {}
    order_id = parse_int(data.get("orderId", data.get("order_id")))
    if not order_id:
        raise InvalidField("orderId", "orderId is required")
    order = _owned_order(order_id)
    if order.payment_method != PaymentMethod.ONLINE.value:
        raise PaymentNotAllowed(order.id, "order is cash on delivery")

    expected = to_minor_units(order.total)
    if data.get("amount") is not None and parse_int(data.get("amount")) != expected:
        logger.warning("Client amount ignored", order_id=order.id, client_amount=data.get("amount"), amount=expected)

    outcome = HostedCardPayment(get_gateway(), currency=payment_currency()).pay(order)
    return ok("Payment session created", outcome.as_api(), status=201)


@bp.post("/webhook")
def webhook():
    payload = request.get_data()
    if not get_gateway().verify_webhook_signature(payload, request.headers.get(SIGNATURE_HEADER, "")):
        logger.warning("Webhook signature rejected")
        return err("invalid signature", 400)
    try:
        event = json.loads(payload or b"{}")
    except ValueError:
        return err("invalid payload", 400)

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    log = logger.bind(event_id=event.get("id"), event_type=event_type, session_id=obj.get("id"))
    if event_type not in HANDLED_EVENTS:
        log.info("Webhook event ignored")
        return ok("ignored")

    order_id = parse_int((obj.get("metadata") or {}).get("order_id") or obj.get("client_reference_id"))
    if not order_id:
        log.warning("Webhook event without order id")
        return ok("ignored")

    status = HANDLED_EVENTS[event_type] or obj.get("payment_status") or obj.get("status")
    try:
        order = on_payment_confirmed(order_id, status, session_id=obj.get("id"),
                                     payment_reference=obj.get("payment_intent"))
    except NotFound:
        log.warning("Webhook for unknown order", order_id=order_id)
        return ok("ignored")
    return ok("processed", {"orderId": order.id, "paymentStatus": order.payment_status})


@bp.post("/verify")
@login_required
def verify():
    """
    Body: { "sessionId": str, "orderId": int }
    Called when the customer lands back from the hosted page.
    """
    data = request.get_json(silent=True) or {}
    session_id = (data.get("sessionId") or data.get("session_id") or "").strip()
    if not session_id:
        raise InvalidField("sessionId", "sessionId is required")
    order = _owned_order(parse_int(data.get("orderId", data.get("order_id"))) or 0)

    try:
        state = get_gateway().retrieve_session(session_id)
    except GatewayUnavailable as e:
        raise PaymentGatewayUnavailable(order.id) from e
    except GatewayError:
        raise NotFound("payment session not found")
    if state.order_id != order.id:
        raise Forbidden("payment session belongs to another order")

    if state.status != "open":
        external = state.payment_status if state.status == "complete" else state.status
        order = on_payment_confirmed(order.id, external, session_id=state.session_id,
                                     payment_reference=state.payment_reference)
    return ok("payment status", {
        "orderId": order.id,
        "sessionStatus": state.status,
        "paymentStatus": order.payment_status,
    })
