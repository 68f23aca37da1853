# storefront/order/routes.py
from flask import g, request

from ..errors import Forbidden, InvalidField, NotFound, PaymentError
from ..extensions import db
from ..gateway import get_gateway
from ..model import Order, OrderStatus
from ..schemas import parse_order_request
from ..services import cancellation_reconciler, order_assembler, payment_currency
from ..services.cancellation_service import Requester
from ..services.cart_service import CartIdentity, CartStore
from ..services.payment_service import strategy_for
from ..utils.api import ok, parse_int
from ..utils.decorators import login_required, optional_user
from ..utils.logging import get_logger
from ..utils.money import to_float
from . import bp

logger = get_logger(__name__)

ONLINE_VALUES = ("online", "stripe", "card")


def _order_id_from(data) -> int:
    oid = parse_int(data.get("orderId", data.get("order_id")))
    if not oid:
        raise InvalidField("orderId", "orderId is required")
    return oid


@bp.post("")
def create_order():
    """
    Body: {
      user_id?, shipping: {fullName, email, phone, address, city, state, postalCode, country},
      items?: [{product_id, name, price, quantity}], payment_method: "cod"|"online"|"stripe",
      coupon_code?, coupon_discount?, total?
    }
    Without items the caller's stored cart is used. Prices, discount and total
    are recomputed here.
    """
    user = optional_user()
    req = parse_order_request(request.get_json(silent=True))
    if req.user_id is not None and (user is None or req.user_id != user.id):
        raise Forbidden("user_id does not match the signed-in user")
    if user is None and (req.payment_method or "").strip().lower() in ONLINE_VALUES:
        raise InvalidField("payment_method", "sign in to pay online")

    identity = None
    if user:
        identity = CartIdentity.user(user.id)
    elif request.headers.get("X-Guest-Token"):
        identity = CartIdentity.guest(request.headers.get("X-Guest-Token"))

    lines = req.lines()
    if not lines and identity is not None:
        lines = CartStore().get_cart(identity)

    order = order_assembler().assemble(
        lines,
        req.shipping,
        req.payment_method,
        coupon_code=req.coupon_code,
        user_id=user.id if user else None,
        identity=identity,
        client_total=req.total,
    )

    try:
        payment = strategy_for(order.payment_method, get_gateway(), payment_currency()).pay(order).as_api()
    except PaymentError as e:
        # the order stands; the client retries through /payments/session
        db.session.rollback()
        payment = {"method": order.payment_method, "paymentStatus": order.payment_status,
                   "error": e.message, **e.to_data()}

    resp = ok("Order created", {
        "orderId": order.id,
        "code": order.code,
        "total": to_float(order.total),
        "payment": payment,
    }, status=201)
    resp.headers["X-Order-Id"] = str(order.id)
    return resp


@bp.post("/cancel")
@login_required
def cancel_order():
    """Body: { "orderId": int, "reason"?: str }"""
    data = request.get_json(silent=True) or {}
    receipt = cancellation_reconciler().cancel(
        _order_id_from(data),
        Requester.from_user(g.current_user),
        reason=(data.get("reason") or "").strip() or None,
    )
    return ok("Order cancelled", receipt.as_api())


@bp.get("/mine")
@login_required
def my_orders():
    """
    Query params:
      - page, per_page
      - status=pending|processing|shipped|delivered|cancelled
    """
    q = Order.query.filter(Order.user_id == g.current_user.id)

    status = request.args.get("status")
    if status:
        if status not in {s.value for s in OrderStatus}:
            raise InvalidField("status", f"unknown status: {status}")
        q = q.filter(Order.status == status)

    page = max(parse_int(request.args.get("page"), 1), 1)
    per = min(max(parse_int(request.args.get("per_page"), 20), 1), 100)

    paged = q.order_by(Order.created_at.desc(), Order.id.desc()).paginate(page=page, per_page=per, error_out=False)
    return ok("orders", {
        "page": page,
        "per_page": per,
        "total": paged.total,
        "items": [o.as_api() for o in paged.items],
    })


@bp.get("/<int:order_id>")
@login_required
def get_order(order_id: int):
    o = db.session.get(Order, order_id)
    if not o:
        raise NotFound("order not found")
    if not g.current_user.is_admin and o.user_id != g.current_user.id:
        raise Forbidden("not your order")
    data = o.as_api()
    data["refunds"] = [r.as_api() for r in o.refunds]
    return ok("order", data)
