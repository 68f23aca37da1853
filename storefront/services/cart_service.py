"""Identity-keyed cart storage with guest-to-user consolidation.

A cart belongs to exactly one identity, passed in explicitly on every call:
a guest token for anonymous visitors or a user id once signed in. Storage is
a full overwrite per identity.

There is no locking: two tabs writing the same identity's cart concurrently
resolve as last-write-wins. That is an accepted limitation of the cart, which
is a convenience copy of the customer's intent. Correctness lives at order
assembly, where stock and coupons are checked and committed atomically.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..errors import InvalidField
from ..extensions import db
from ..model import Cart, CartItem, Product
from ..utils.logging import get_logger
from ..utils.money import D, round_money

logger = get_logger(__name__)

GUEST = "guest"
USER = "user"


@dataclass(frozen=True)
class CartIdentity:
    kind: str
    value: str

    @classmethod
    def guest(cls, token: str) -> "CartIdentity":
        token = (token or "").strip()
        if not token:
            raise InvalidField("guest_token", "guest token is required")
        return cls(GUEST, token)

    @classmethod
    def user(cls, user_id) -> "CartIdentity":
        return cls(USER, str(int(user_id)))

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.value}"


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    price_at_view: Decimal | None = None

    def as_api(self):
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_at_view": float(self.price_at_view) if self.price_at_view is not None else None,
        }


def line_from_payload(data: dict) -> CartLine:
    """Build a line from ``{product_id|id, quantity|qty, price|price_at_view}``."""
    try:
        product_id = int(data.get("product_id") or data.get("id"))
    except (TypeError, ValueError):
        raise InvalidField("product_id", "product_id is required")
    try:
        qty = int(data.get("quantity") or data.get("qty") or 1)
    except (TypeError, ValueError):
        raise InvalidField("quantity", "quantity must be a whole number")
    if qty < 1:
        raise InvalidField("quantity", "quantity must be >= 1")
    price = data.get("price_at_view", data.get("price"))
    return CartLine(product_id, qty, round_money(D(price)) if price is not None else None)


def consolidate(lines) -> list[CartLine]:
    """Collapse lines sharing a product_id, keeping first-seen order and price."""
    merged: dict[int, CartLine] = {}
    for line in lines:
        seen = merged.get(line.product_id)
        if seen:
            merged[line.product_id] = CartLine(seen.product_id, seen.quantity + line.quantity, seen.price_at_view)
        else:
            merged[line.product_id] = line
    return list(merged.values())


def merge_lines(user_lines, guest_lines) -> list[CartLine]:
    """Guest lines fold into the user's: matching product ids sum, others append."""
    return consolidate([*user_lines, *guest_lines])


class CartStore:
    def _find(self, identity: CartIdentity) -> Cart | None:
        return Cart.query.filter_by(owner_key=identity.key).first()

    @staticmethod
    def _lines(cart: Cart | None) -> list[CartLine]:
        if not cart:
            return []
        return [
            CartLine(
                product_id=i.product_id,
                quantity=i.quantity,
                price_at_view=round_money(D(i.price_at_view)) if i.price_at_view is not None else None,
            )
            for i in cart.items
        ]

    def _write(self, identity: CartIdentity, lines) -> Cart:
        cart = self._find(identity)
        if cart is None:
            cart = Cart(owner_key=identity.key)
            db.session.add(cart)
        # because of cascade="all, delete-orphan", clearing the list deletes rows
        cart.items.clear()
        for line in consolidate(lines):
            if line.quantity < 1:
                raise InvalidField("quantity", "quantity must be >= 1")
            cart.items.append(CartItem(
                product_id=line.product_id,
                quantity=line.quantity,
                price_at_view=line.price_at_view,
            ))
        return cart

    # ---- storage operations ----------------------------------------------
    def get_cart(self, identity: CartIdentity) -> list[CartLine]:
        return self._lines(self._find(identity))

    def save_cart(self, identity: CartIdentity, lines) -> list[CartLine]:
        """Overwrite the stored cart for ``identity``."""
        cart = self._write(identity, lines)
        db.session.commit()
        return self._lines(cart)

    def clear_cart(self, identity: CartIdentity) -> bool:
        """Remove the stored cart. Safe to call again; returns whether anything was removed."""
        cart = self._find(identity)
        if cart is None:
            return False
        db.session.delete(cart)
        db.session.commit()
        return True

    # ---- line helpers ----------------------------------------------------
    def add_item(self, identity: CartIdentity, product_id: int, quantity: int = 1) -> list[CartLine]:
        if quantity < 1:
            raise InvalidField("quantity", "quantity must be >= 1")
        product = db.session.get(Product, product_id)
        if not product or not product.is_available:
            raise InvalidField("product_id", "product not found or inactive")
        line = CartLine(product.id, quantity, product.unit_price())
        return self.save_cart(identity, [*self.get_cart(identity), line])

    def update_quantity(self, identity: CartIdentity, product_id: int, quantity: int) -> list[CartLine]:
        lines = self.get_cart(identity)
        if not any(line.product_id == product_id for line in lines):
            raise InvalidField("product_id", "item not found in this cart")
        if quantity < 1:
            return self.remove_item(identity, product_id)
        return self.save_cart(identity, [
            CartLine(line.product_id, quantity, line.price_at_view) if line.product_id == product_id else line
            for line in lines
        ])

    def remove_item(self, identity: CartIdentity, product_id: int) -> list[CartLine]:
        lines = [line for line in self.get_cart(identity) if line.product_id != product_id]
        return self.save_cart(identity, lines)

    # ---- login boundary --------------------------------------------------
    def merge_guest_cart_to_user(self, guest_token: str, user_id) -> list[CartLine]:
        """Fold the guest cart into the user's cart and drop the guest cart.

        Called once when a guest session authenticates. Runs as one commit, and
        a second call finds no guest cart and changes nothing.
        """
        guest = CartIdentity.guest(guest_token)
        user = CartIdentity.user(user_id)

        guest_cart = self._find(guest)
        guest_lines = self._lines(guest_cart)
        if not guest_lines:
            if guest_cart is not None:
                db.session.delete(guest_cart)
                db.session.commit()
            return self.get_cart(user)

        merged = merge_lines(self.get_cart(user), guest_lines)
        user_cart = self._write(user, merged)
        db.session.delete(guest_cart)
        db.session.commit()

        logger.info("Merged guest cart", user_id=user.value, guest_lines=len(guest_lines), lines=len(merged))
        return self._lines(user_cart)
