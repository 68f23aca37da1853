# storefront/admin/routes.py
from datetime import datetime, timedelta

from flask import g, request
from sqlalchemy import or_

from ..errors import InvalidField, NotFound
from ..extensions import db
from ..model import Coupon, Order, OrderStatus
from ..services import cancellation_reconciler, state_machine
from ..services.cancellation_service import Requester
from ..services.coupon_service import create_coupon_from_payload, update_coupon_from_payload
from ..utils.api import ok, parse_int
from ..utils.decorators import role_required
from . import bp

ADMIN_ONLY = "Only admin can manage orders and coupons"


def _page_args():
    page = max(parse_int(request.args.get("page"), 1), 1)
    per = min(max(parse_int(request.args.get("per_page"), 20), 1), 100)
    return page, per


def _day(name):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise InvalidField(name, f"{name} must be YYYY-MM-DD")


# ---- orders ----------------------------------------------------------------

@bp.get("/orders")
@role_required("admin", message=ADMIN_ONLY)
def list_orders():
    """
    Query params:
      - page, per_page
      - status=pending|processing|shipped|delivered|cancelled
      - payment_status=unpaid|paid|refund_pending|refunded
      - phone=078...
      - email=...
      - code=ORD-...
      - start=YYYY-MM-DD
      - end=YYYY-MM-DD (inclusive)
    """
    q = Order.query

    status = request.args.get("status")
    pay = request.args.get("payment_status")
    phone = request.args.get("phone")
    email = request.args.get("email")
    code = request.args.get("code")
    start = _day("start")
    end = _day("end")

    if status: q = q.filter(Order.status == status)
    if pay:    q = q.filter(Order.payment_status == pay)
    if phone:  q = q.filter(Order.phone == phone)
    if email:  q = q.filter(Order.email == email)
    if code:   q = q.filter(Order.code == code)
    if start:  q = q.filter(Order.created_at >= start)
    # make end inclusive for the whole day
    if end:    q = q.filter(Order.created_at < end + timedelta(days=1))

    page, per = _page_args()
    paged = q.order_by(Order.created_at.desc(), Order.id.desc()).paginate(page=page, per_page=per, error_out=False)
    return ok("orders", {
        "page": page,
        "per_page": per,
        "total": paged.total,
        "items": [o.as_api() for o in paged.items],
    })


@bp.put("/orders/<int:order_id>")
@role_required("admin", message=ADMIN_ONLY)
def update_order_status(order_id: int):
    """
    Body: { "status": "processing" | "shipped" | "delivered" | "cancelled", "reason"?: str }
    One step forward at a time; cancelling goes through the refund path.
    """
    data = request.get_json(silent=True) or {}
    target = (data.get("status") or "").strip().lower()
    if not target:
        raise InvalidField("status", "status is required")

    if target == OrderStatus.CANCELLED.value:
        receipt = cancellation_reconciler().cancel(
            order_id, Requester.from_user(g.current_user), reason=data.get("reason")
        )
        return ok("Order cancelled", receipt.as_api())

    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound("order not found")
    state_machine().advance(order, target)
    return ok("Order status updated", order.as_api())


# ---- coupons ---------------------------------------------------------------

@bp.get("/coupons")
@role_required("admin", message=ADMIN_ONLY)
def list_coupons():
    """
    Query params:
      - search=<code fragment>
      - status=active|inactive
      - page, per_page
    """
    q = Coupon.query
    search = (request.args.get("search") or "").strip()
    if search:
        q = q.filter(Coupon.code.ilike(f"%{search.upper()}%"))
    status = (request.args.get("status") or "").lower()
    if status == "active":
        q = q.filter(Coupon.is_active.is_(True))
    elif status == "inactive":
        q = q.filter(or_(Coupon.is_active.is_(False), Coupon.is_active.is_(None)))

    page, per = _page_args()
    paged = q.order_by(Coupon.id.desc()).paginate(page=page, per_page=per, error_out=False)
    return ok("coupons", {
        "page": page,
        "per_page": per,
        "total": paged.total,
        "items": [c.as_api() for c in paged.items],
    })


@bp.post("/coupons")
@role_required("admin", message=ADMIN_ONLY)
def create_coupon():
    """
    Body: {
      "code": "SUMMER10", "discount_type": "percentage"|"fixed", "discount_value": 10,
      "min_purchase"?: 0, "max_uses"?: 0 (unlimited), "valid_from"?: ISO8601,
      "valid_until"?: ISO8601, "is_active"?: true
    }
    """
    c = create_coupon_from_payload(request.get_json(silent=True) or {})
    return ok("Coupon created", c.as_api(), status=201)


@bp.put("/coupons/<int:coupon_id>")
@role_required("admin", message=ADMIN_ONLY)
def update_coupon(coupon_id: int):
    c = db.session.get(Coupon, coupon_id)
    if not c:
        raise NotFound("coupon not found")
    c = update_coupon_from_payload(c, request.get_json(silent=True) or {})
    return ok("Coupon updated", c.as_api())
