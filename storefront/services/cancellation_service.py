# storefront/services/cancellation_service.py
"""Cancel an order and settle what follows from it.

The cancellation commits first: the status moves with a compare-and-set, so
of two concurrent cancels only one ever goes on to ask for a refund, and a
paid order is parked at ``refund_pending`` before the gateway is called. The
refund runs after that commit, so a slow gateway never holds the write lock,
and its outcome is recorded in a second transaction. A refund the gateway
refuses, or never answers, does not undo the cancellation; the order stays
``refund_pending`` for a person to follow up. Customer and admin are told
afterwards, off the request thread.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..errors import Forbidden, NotFound
from ..extensions import db
from ..gateway.port import GatewayError, PaymentGateway
from ..model import Order, OrderStatus, PaymentStatus, RefundRecord, User
from ..utils.dates import utcnow
from ..utils.logging import get_logger
from ..utils.money import D, to_minor_units
from . import notifications
from .order_state import OrderStateMachine

logger = get_logger(__name__)


@dataclass(frozen=True)
class Requester:
    user_id: int | None
    is_admin: bool = False
    email: str | None = None
    name: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "Requester":
        return cls(user_id=user.id, is_admin=user.is_admin, email=user.email, name=user.name)

    def describe(self) -> str:
        who = "admin" if self.is_admin else "customer"
        return f"{who} {self.email or self.user_id}"


@dataclass(frozen=True)
class CancellationReceipt:
    order: Order
    refund: RefundRecord | None

    def as_api(self):
        return {
            "order": self.order.as_api(),
            "refund": self.refund.as_api() if self.refund else None,
        }


class CancellationReconciler:
    def __init__(self, gateway: PaymentGateway, dispatcher, state_machine: OrderStateMachine | None = None,
                 admin_email: str | None = None):
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.state_machine = state_machine or OrderStateMachine()
        self.admin_email = admin_email

    def cancel(self, order_id: int, requester: Requester, reason: str | None = None) -> CancellationReceipt:
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFound(f"order {order_id} not found")
        if not requester.is_admin and (order.user_id is None or order.user_id != requester.user_id):
            raise Forbidden("you can only cancel your own orders")

        log = logger.bind(order_id=order.id, requester=requester.describe())
        try:
            self.state_machine.apply(order, OrderStatus.CANCELLED)
            needs_refund = order.payment_status == PaymentStatus.PAID.value
            if needs_refund:
                order.payment_status = PaymentStatus.REFUND_PENDING.value
            order.cancellation_reason = (reason or "").strip() or None
            order.cancelled_at = utcnow()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        refund = None
        if needs_refund:
            refund = self._refund(order, reason)
            db.session.add(refund)
            if refund.succeeded:
                order.payment_status = PaymentStatus.REFUNDED.value
            db.session.commit()

        log.info(
            "Order cancelled",
            payment_status=order.payment_status,
            refund_status=refund.status if refund else None,
        )
        self._notify(order, refund, requester)
        return CancellationReceipt(order=order, refund=refund)

    def _refund(self, order: Order, reason: str | None) -> RefundRecord:
        """Ask the gateway for a full refund; every outcome becomes a record."""
        amount = D(order.total)
        log = logger.bind(order_id=order.id, amount=str(amount))
        record = RefundRecord(order_id=order.id, amount=amount)

        if not order.payment_reference:
            record.status = "failed"
            record.failure_reason = "no payment reference on order"
            log.error("Refund not requested, order has no payment reference")
            return record

        try:
            result = self.gateway.create_refund(
                payment_reference=order.payment_reference,
                amount=to_minor_units(amount),
                reason=reason or "order cancelled",
                idempotency_key=f"refund-order-{order.id}",
            )
        except GatewayError as exc:
            record.status = "failed"
            record.failure_reason = str(exc) or exc.__class__.__name__
            log.error("Refund request failed", error=record.failure_reason)
        except Exception as exc:  # outcome unknown, recorded as failed for follow-up
            record.status = "failed"
            record.failure_reason = f"{exc.__class__.__name__}: {exc}"
            log.error("Refund request raised", error=record.failure_reason, exc_info=True)
        else:
            record.refund_id = result.refund_id
            record.status = result.status or ("pending" if result.success else "failed")
            record.failure_reason = result.failure_reason
            log.info("Refund requested", refund_id=result.refund_id, status=record.status)
        return record

    def _notify(self, order: Order, refund: RefundRecord | None, requester: Requester) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.submit(notifications.order_cancelled_customer(order, refund))
        self.dispatcher.submit(
            notifications.order_cancelled_admin(order, refund, self.admin_email, cancelled_by=requester.describe())
        )
