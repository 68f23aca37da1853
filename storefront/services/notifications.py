# storefront/services/notifications.py
"""Plain-text messages for order events.

Built in the request thread while the order is loaded; the dispatcher only
ever sees finished ``EmailMessage`` values.
"""
from __future__ import annotations

from ..channel import EmailMessage
from ..model import Order, RefundRecord
from ..utils.money import to_float


def _money(v) -> str:
    return f"{to_float(v):.2f}"


def _lines(order: Order) -> list[str]:
    return [f"  {i.quantity} x {i.name} @ {_money(i.price)} = {_money(i.line_total)}" for i in order.items]


def _totals(order: Order) -> list[str]:
    out = [f"Subtotal: {_money(order.subtotal)}"]
    if order.coupon_code:
        out.append(f"Coupon {order.coupon_code}: -{_money(order.coupon_discount)}")
    out.append(f"Total: {_money(order.total)}")
    return out


def _refund_block(refund: RefundRecord | None) -> list[str]:
    if refund is None:
        return []
    out = ["", f"Refund of {_money(refund.amount)}: {refund.status}"]
    if refund.refund_id:
        out.append(f"Refund reference: {refund.refund_id}")
    if refund.failure_reason:
        out.append(f"Refund problem: {refund.failure_reason}")
    return out


def order_placed_customer(order: Order) -> EmailMessage:
    name = order.recipient_name or "there"
    body = [
        f"Hi {name},",
        "",
        f"Thanks for your order {order.code}.",
        "",
        *_lines(order),
        "",
        *_totals(order),
        f"Payment: {'cash on delivery' if order.payment_method == 'cod' else 'online'}",
    ]
    return EmailMessage(
        kind="order_placed.customer",
        to=order.email,
        subject=f"Order {order.code} received",
        body="\n".join(body),
        order_id=order.id,
    )


def order_placed_admin(order: Order, admin_email: str | None) -> EmailMessage:
    body = [
        f"New order {order.code} from {order.recipient_name} <{order.email}>, phone {order.phone}.",
        "",
        *_lines(order),
        "",
        *_totals(order),
        f"Payment method: {order.payment_method}",
    ]
    return EmailMessage(
        kind="order_placed.admin",
        to=admin_email,
        subject=f"New order {order.code}",
        body="\n".join(body),
        order_id=order.id,
    )


def order_cancelled_customer(order: Order, refund: RefundRecord | None) -> EmailMessage:
    name = order.recipient_name or "there"
    body = [
        f"Hi {name},",
        "",
        f"Your order {order.code} has been cancelled.",
    ]
    if order.cancellation_reason:
        body.append(f"Reason: {order.cancellation_reason}")
    body += ["", *_totals(order), *_refund_block(refund)]
    if refund is not None and not refund.succeeded:
        body.append("We are processing your refund and will be in touch.")
    return EmailMessage(
        kind="order_cancelled.customer",
        to=order.email,
        subject=f"Order {order.code} cancelled",
        body="\n".join(body),
        order_id=order.id,
    )


def order_cancelled_admin(order: Order, refund: RefundRecord | None, admin_email: str | None,
                          cancelled_by: str | None = None) -> EmailMessage:
    body = [
        f"Order {order.code} was cancelled{f' by {cancelled_by}' if cancelled_by else ''}.",
        f"Reason: {order.cancellation_reason or '-'}",
        f"Payment status: {order.payment_status}",
        "",
        *_totals(order),
        *_refund_block(refund),
    ]
    if refund is not None and not refund.succeeded:
        body += ["", "Refund needs attention."]
    return EmailMessage(
        kind="order_cancelled.admin",
        to=admin_email,
        subject=f"Order {order.code} cancelled",
        body="\n".join(body),
        order_id=order.id,
    )
