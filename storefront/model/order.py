from enum import Enum

from sqlalchemy import event, inspect
from sqlalchemy.sql import func

from ..errors import ImmutableOrderItem
from ..extensions import db
from ..utils.dates import isoformat
from ..utils.money import to_float


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    COD = "cod"
    ONLINE = "online"

    @classmethod
    def parse(cls, value):
        v = (value or "cod").strip().lower() if isinstance(value, str) else value
        if v in ("stripe", "card"):  # legacy client values
            v = cls.ONLINE.value
        return cls(v)


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, index=True)  # e.g., "ORD-20251022-4F2A9C"
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True, index=True)  # None for guest COD

    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.UNPAID.value, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default=PaymentMethod.COD.value)
    payment_reference = db.Column(db.String(255))  # gateway payment id, needed for refunds

    # Shipping snapshot
    recipient_name = db.Column(db.String(180))
    email = db.Column(db.String(255), index=True)
    phone = db.Column(db.String(32), index=True)
    shipping_json = db.Column(db.JSON)

    # Money snapshot; total == subtotal - coupon_discount
    coupon_code = db.Column(db.String(64))
    coupon_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    cancellation_reason = db.Column(db.String(500))
    cancelled_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, server_default=func.now(), index=True)
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        lazy="joined",
        order_by="OrderItem.id.asc()",
    )
    payment_sessions = db.relationship("PaymentSession", backref="order", lazy="selectin",
                                       order_by="PaymentSession.id.asc()")
    refunds = db.relationship("RefundRecord", backref="order", lazy="selectin",
                              order_by="RefundRecord.id.asc()")

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "user_id": self.user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "shipping": self.shipping_json,
            "money": {
                "subtotal": to_float(self.subtotal),
                "coupon_code": self.coupon_code,
                "coupon_discount": to_float(self.coupon_discount),
                "total": to_float(self.total),
            },
            "items": [i.as_api() for i in self.items],
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": isoformat(self.cancelled_at),
            "created_at": isoformat(self.created_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, index=True)
    name = db.Column(db.String(255))
    price = db.Column(db.Numeric(12, 2), nullable=False)  # unit price captured at assembly
    quantity = db.Column(db.Integer, nullable=False)

    @property
    def line_total(self):
        return self.price * self.quantity

    def as_api(self):
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": to_float(self.price),
            "quantity": self.quantity,
            "line_total": to_float(self.line_total),
        }


@event.listens_for(OrderItem, "before_update")
def _order_items_are_write_once(mapper, connection, target):
    state = inspect(target)
    changed = [a.key for a in state.attrs if a.history.has_changes()]
    if changed:
        raise ImmutableOrderItem(f"order item {target.id} is a snapshot; refused to change {', '.join(changed)}")
