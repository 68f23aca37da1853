# storefront/services/order_service.py
"""Cart to order.

``OrderAssembler.prepare`` checks everything that can be checked by reading:
shipping fields, products, stock, the coupon. ``commit`` then writes the
order in one transaction, decrementing stock and counting the coupon use
with conditional updates so a checkout that lost a race is rolled back
whole. Prices are captured once into the order lines and never read from the
catalog again.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import update

from ..errors import CouponError, EmptyCart, InsufficientStock, InvalidField, ProductUnavailable
from ..extensions import db
from ..model import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus, Product
from ..schemas import ShippingDetails, parse_shipping
from ..utils.dates import utcnow
from ..utils.logging import get_logger
from ..utils.money import D, ZERO, round_money
from . import notifications
from .cart_service import CartIdentity, CartStore, consolidate, CartLine
from .coupon_service import CouponQuote, CouponValidator, consume_coupon

logger = get_logger(__name__)


def generate_order_code(now=None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


@dataclass(frozen=True)
class LineSnapshot:
    product_id: int
    name: str
    price: Decimal
    quantity: int
    tracks_stock: bool

    @property
    def line_total(self) -> Decimal:
        return round_money(self.price * self.quantity)


@dataclass
class OrderDraft:
    shipping: ShippingDetails
    payment_method: PaymentMethod
    lines: list[LineSnapshot]
    subtotal: Decimal
    quote: CouponQuote | None = None
    user_id: int | None = None
    code: str = field(default_factory=generate_order_code)

    @property
    def discount(self) -> Decimal:
        return self.quote.discount_amount if self.quote else ZERO

    @property
    def total(self) -> Decimal:
        return round_money(self.subtotal - self.discount)


class OrderAssembler:
    def __init__(self, validator: CouponValidator | None = None, carts: CartStore | None = None,
                 dispatcher=None, admin_email: str | None = None):
        self.validator = validator or CouponValidator()
        self.carts = carts or CartStore()
        self.dispatcher = dispatcher
        self.admin_email = admin_email

    # ---- read-only checks ------------------------------------------------
    def prepare(self, lines, shipping, payment_method, coupon_code: str | None = None,
                user_id: int | None = None) -> OrderDraft:
        lines = consolidate(CartLine(int(l.product_id), int(l.quantity)) for l in (lines or []))
        if not lines:
            raise EmptyCart()

        details = parse_shipping(shipping)
        try:
            method = PaymentMethod.parse(payment_method)
        except ValueError:
            raise InvalidField("payment_method", "payment_method must be 'cod' or 'online'") from None

        products = {
            p.id: p for p in Product.query.filter(Product.id.in_([l.product_id for l in lines])).all()
        }
        snapshot = []
        for line in lines:
            if line.quantity < 1:
                raise InvalidField("quantity", "quantity must be >= 1")
            p = products.get(line.product_id)
            if p is None or not p.is_available:
                raise ProductUnavailable(line.product_id)
            # read, not reserved; commit re-checks with a conditional decrement
            if p.tracks_stock and int(p.quantity or 0) < line.quantity:
                raise InsufficientStock(line.product_id)
            snapshot.append(LineSnapshot(
                product_id=p.id,
                name=p.name,
                price=p.unit_price(),
                quantity=line.quantity,
                tracks_stock=p.tracks_stock,
            ))

        subtotal = round_money(sum((s.line_total for s in snapshot), ZERO))
        quote = self.validator.validate(coupon_code, subtotal) if coupon_code else None

        return OrderDraft(
            shipping=details,
            payment_method=method,
            lines=snapshot,
            subtotal=subtotal,
            quote=quote,
            user_id=user_id,
        )

    # ---- the write -------------------------------------------------------
    def commit(self, draft: OrderDraft) -> Order:
        ship = draft.shipping
        order = Order(
            code=draft.code,
            user_id=draft.user_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.UNPAID.value,
            payment_method=draft.payment_method.value,
            recipient_name=ship.full_name,
            email=ship.email,
            phone=ship.phone,
            shipping_json=ship.as_snapshot(),
            coupon_code=draft.quote.code if draft.quote else None,
            coupon_discount=draft.discount,
            subtotal=draft.subtotal,
            total=draft.total,
        )
        for s in draft.lines:
            order.items.append(OrderItem(product_id=s.product_id, name=s.name, price=s.price, quantity=s.quantity))

        try:
            for s in draft.lines:
                if not s.tracks_stock:
                    continue
                res = db.session.execute(
                    update(Product)
                    .where(Product.id == s.product_id, Product.quantity >= s.quantity)
                    .values(quantity=Product.quantity - s.quantity)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount != 1:
                    raise InsufficientStock(s.product_id, f"product {s.product_id} just sold out")

            if draft.quote and not consume_coupon(draft.quote.coupon_id):
                raise CouponError("exhausted", "Coupon usage limit exceeded")

            db.session.add(order)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            "Order created",
            order_id=order.id,
            code=order.code,
            payment_method=order.payment_method,
            total=str(order.total),
            coupon=order.coupon_code,
        )
        return order

    def assemble(self, lines, shipping, payment_method, coupon_code: str | None = None,
                 user_id: int | None = None, identity: CartIdentity | None = None,
                 client_total=None) -> Order:
        draft = self.prepare(lines, shipping, payment_method, coupon_code=coupon_code, user_id=user_id)
        if client_total is not None and round_money(D(client_total)) != draft.total:
            logger.warning("Client total ignored", client_total=str(client_total), total=str(draft.total))
        order = self.commit(draft)

        if identity is not None:
            try:
                self.carts.clear_cart(identity)
            except Exception as exc:
                db.session.rollback()
                logger.error("Cart clear after order failed", order_id=order.id, owner=identity.key,
                             error=str(exc))

        self.notify_placed(order)
        return order

    def notify_placed(self, order: Order) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.submit(notifications.order_placed_customer(order))
        self.dispatcher.submit(notifications.order_placed_admin(order, self.admin_email))
