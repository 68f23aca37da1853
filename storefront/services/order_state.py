# storefront/services/order_state.py
"""Order status transitions.

``pending -> processing -> shipped -> delivered`` one step at a time, plus
``cancelled``. Which states may still be cancelled is a named policy, picked
by ``ORDER_CANCELLATION_POLICY``. Delivered and cancelled orders are final.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..errors import InvalidTransition
from ..extensions import db
from ..model import Order, OrderStatus
from ..utils.logging import get_logger

logger = get_logger(__name__)

FORWARD = {
    OrderStatus.PENDING: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}

TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


@dataclass(frozen=True)
class CancellationPolicy:
    name: str
    cancellable_from: frozenset

    def allows(self, status: OrderStatus) -> bool:
        return status in self.cancellable_from


PRE_SHIPMENT = CancellationPolicy(
    "pre_shipment", frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})
)
PRE_DELIVERY = CancellationPolicy(
    "pre_delivery", frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED})
)

POLICIES = {p.name: p for p in (PRE_SHIPMENT, PRE_DELIVERY)}


def policy_named(name: str | None) -> CancellationPolicy:
    if not name:
        return PRE_SHIPMENT
    try:
        return POLICIES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown cancellation policy: {name}") from None


def _status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus((value or "").strip().lower())
    except ValueError:
        raise InvalidTransition(str(value), str(value), f"unknown order status: {value}") from None


class OrderStateMachine:
    def __init__(self, policy: CancellationPolicy = PRE_SHIPMENT):
        self.policy = policy

    def can_transition(self, current, target) -> bool:
        current, target = OrderStatus(current), OrderStatus(target)
        if current in TERMINAL:
            return False
        if target is OrderStatus.CANCELLED:
            return self.policy.allows(current)
        return FORWARD.get(current) is target

    def check(self, current, target) -> OrderStatus:
        """Return ``target`` as an OrderStatus, or raise InvalidTransition."""
        cur = _status(current)
        tgt = _status(target)
        if not self.can_transition(cur, tgt):
            if cur in TERMINAL:
                msg = f"order is {cur.value}; no further changes allowed"
            elif tgt is OrderStatus.CANCELLED:
                msg = f"orders cannot be cancelled once {cur.value}"
            else:
                nxt = FORWARD.get(cur)
                msg = f"cannot move order from {cur.value} to {tgt.value}; next status is {nxt.value}"
            raise InvalidTransition(cur.value, tgt.value, msg)
        return tgt

    def apply(self, order: Order, target) -> OrderStatus:
        """Move ``order`` to ``target`` inside the caller's transaction.

        The write is conditional on the status we read, so a concurrent
        change in between turns into InvalidTransition instead of a lost
        update.
        """
        current = order.status
        tgt = self.check(current, target)
        result = db.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current)
            .values(status=tgt.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.refresh(order)
            raise InvalidTransition(order.status, tgt.value,
                                    f"order changed to {order.status} meanwhile")
        db.session.refresh(order)
        logger.info("Order status changed", order_id=order.id, from_status=current, to_status=tgt.value)
        return tgt

    def advance(self, order: Order, target) -> Order:
        try:
            self.apply(order, target)
        except InvalidTransition:
            db.session.rollback()
            raise
        db.session.commit()
        return order
