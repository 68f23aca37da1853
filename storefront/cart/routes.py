# storefront/cart/routes.py
from __future__ import annotations
from flask import g, request

from ..errors import InvalidField
from ..services.cart_service import CartIdentity, CartStore, line_from_payload
from ..utils.api import ok, err
from ..utils.decorators import login_required, optional_user
from ..utils.money import ZERO, round_money, to_float
from . import bp

GUEST_HEADER = "X-Guest-Token"

store = CartStore()

# ---- helpers ---------------------------------------------------------------

def _identity() -> CartIdentity:
    """Signed-in user if a token came along, otherwise the guest token header."""
    u = optional_user()
    if u:
        return CartIdentity.user(u.id)
    return CartIdentity.guest(request.headers.get(GUEST_HEADER))


def _cart_payload(identity: CartIdentity, lines):
    subtotal = round_money(sum((l.price_at_view * l.quantity for l in lines if l.price_at_view is not None), ZERO))
    return {
        "owner": identity.key,
        "items": [l.as_api() for l in lines],
        "count": sum(l.quantity for l in lines),
        "subtotal": to_float(subtotal),
    }

# ---- endpoints -------------------------------------------------------------

@bp.get("")
def get_cart():
    identity = _identity()
    return ok("cart", _cart_payload(identity, store.get_cart(identity)))


@bp.put("")
def save_cart():
    """
    Body: { "items": [ { "product_id": int, "quantity" | "qty": int, "price"?: number } ] }
    Replaces the whole cart; repeated product ids are summed.
    """
    identity = _identity()
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list):
        raise InvalidField("items", "items must be a list")
    lines = store.save_cart(identity, [line_from_payload(i) for i in items if isinstance(i, dict)])
    return ok("cart saved", _cart_payload(identity, lines))


@bp.post("/items")
def add_item():
    """Body: { "product_id": int, "quantity" | "qty": int }"""
    identity = _identity()
    data = request.get_json(silent=True) or {}
    line = line_from_payload(data)
    lines = store.add_item(identity, line.product_id, line.quantity)
    return ok("item added", _cart_payload(identity, lines), status=201)


@bp.patch("/items/<int:product_id>")
def update_item(product_id: int):
    """Body: { "quantity": int }; 0 removes the line."""
    identity = _identity()
    data = request.get_json(silent=True) or {}
    if "quantity" not in data:
        return err("quantity is required", 422, {"reason": "invalid_field", "field": "quantity"})
    try:
        qty = int(data.get("quantity"))
    except (TypeError, ValueError):
        raise InvalidField("quantity", "quantity must be a whole number")
    lines = store.update_quantity(identity, product_id, qty)
    return ok("item updated", _cart_payload(identity, lines))


@bp.delete("/items/<int:product_id>")
def remove_item(product_id: int):
    identity = _identity()
    lines = store.remove_item(identity, product_id)
    return ok("item removed", _cart_payload(identity, lines))


@bp.delete("")
def clear_cart():
    identity = _identity()
    removed = store.clear_cart(identity)
    return ok("cart cleared" if removed else "cart already empty", _cart_payload(identity, []))


@bp.post("/merge")
@login_required
def merge_cart():
    """Called by the client right after sign-in, with the guest token it used before."""
    token = request.headers.get(GUEST_HEADER) or (request.get_json(silent=True) or {}).get("guest_token")
    user = g.current_user
    lines = store.merge_guest_cart_to_user(token, user.id)
    return ok("cart merged", _cart_payload(CartIdentity.user(user.id), lines))
