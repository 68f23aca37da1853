"""Tests for identity-keyed cart storage and the guest merge."""

import pytest

from storefront.errors import InvalidField
from storefront.model import Cart
from storefront.services.cart_service import (
    CartIdentity,
    CartLine,
    CartStore,
    consolidate,
    line_from_payload,
    merge_lines,
)


@pytest.fixture
def store(app):
    return CartStore()


def _pairs(lines):
    return [(l.product_id, l.quantity) for l in lines]


class TestIdentity:
    def test_keys(self):
        assert CartIdentity.guest("abc").key == "guest:abc"
        assert CartIdentity.user(7).key == "user:7"

    def test_guest_token_required(self):
        with pytest.raises(InvalidField) as exc:
            CartIdentity.guest("  ")
        assert exc.value.field == "guest_token"


class TestLines:
    def test_consolidate_sums_same_product(self):
        lines = consolidate([CartLine(1, 2), CartLine(2, 1), CartLine(1, 3)])
        assert _pairs(lines) == [(1, 5), (2, 1)]

    def test_merge_lines_appends_new_products(self):
        assert _pairs(merge_lines([CartLine(1, 1)], [CartLine(2, 4)])) == [(1, 1), (2, 4)]

    def test_line_from_payload_accepts_aliases(self):
        line = line_from_payload({"id": "3", "qty": "2", "price": 9.5})
        assert (line.product_id, line.quantity, str(line.price_at_view)) == (3, 2, "9.50")

    def test_line_from_payload_rejects_zero_quantity(self):
        with pytest.raises(InvalidField):
            line_from_payload({"product_id": 1, "quantity": -1})


class TestStorage:
    def test_empty_cart(self, store):
        assert store.get_cart(CartIdentity.guest("nobody")) == []

    def test_save_overwrites(self, store):
        me = CartIdentity.guest("t1")
        store.save_cart(me, [CartLine(1, 2)])
        store.save_cart(me, [CartLine(2, 1), CartLine(2, 1)])
        assert _pairs(store.get_cart(me)) == [(2, 2)]

    def test_carts_are_isolated_by_identity(self, store):
        store.save_cart(CartIdentity.guest("t1"), [CartLine(1, 1)])
        store.save_cart(CartIdentity.user(1), [CartLine(2, 1)])
        assert _pairs(store.get_cart(CartIdentity.guest("t1"))) == [(1, 1)]
        assert _pairs(store.get_cart(CartIdentity.user(1))) == [(2, 1)]

    def test_clear_is_idempotent(self, store):
        me = CartIdentity.guest("t1")
        store.save_cart(me, [CartLine(1, 1)])
        assert store.clear_cart(me) is True
        assert store.clear_cart(me) is False
        assert store.get_cart(me) == []

    def test_add_item_captures_sale_price(self, store, make_product):
        p = make_product(price=40.0, discount_price=35.0)
        me = CartIdentity.guest("t1")
        store.add_item(me, p.id, 1)
        lines = store.add_item(me, p.id, 2)
        assert _pairs(lines) == [(p.id, 3)]
        assert str(lines[0].price_at_view) == "35.00"

    def test_add_item_rejects_inactive_product(self, store, make_product):
        p = make_product(status=False)
        with pytest.raises(InvalidField):
            store.add_item(CartIdentity.guest("t1"), p.id, 1)

    def test_update_to_zero_removes_line(self, store):
        me = CartIdentity.guest("t1")
        store.save_cart(me, [CartLine(1, 2), CartLine(2, 1)])
        assert _pairs(store.update_quantity(me, 1, 0)) == [(2, 1)]

    def test_update_unknown_line(self, store):
        with pytest.raises(InvalidField):
            store.update_quantity(CartIdentity.guest("t1"), 99, 1)


class TestMerge:
    def test_guest_lines_sum_into_user_cart(self, store):
        store.save_cart(CartIdentity.user(1), [CartLine(1, 1)])
        store.save_cart(CartIdentity.guest("g"), [CartLine(1, 2)])

        merged = store.merge_guest_cart_to_user("g", 1)

        assert _pairs(merged) == [(1, 3)]
        assert store.get_cart(CartIdentity.guest("g")) == []
        assert Cart.query.filter_by(owner_key="guest:g").first() is None

    def test_second_merge_leaves_user_cart_unchanged(self, store):
        store.save_cart(CartIdentity.user(1), [CartLine(1, 1)])
        store.save_cart(CartIdentity.guest("g"), [CartLine(1, 2)])
        store.merge_guest_cart_to_user("g", 1)

        again = store.merge_guest_cart_to_user("g", 1)

        assert _pairs(again) == [(1, 3)]
        assert _pairs(store.get_cart(CartIdentity.user(1))) == [(1, 3)]

    def test_merge_into_missing_user_cart(self, store):
        store.save_cart(CartIdentity.guest("g"), [CartLine(5, 1), CartLine(6, 2)])
        assert _pairs(store.merge_guest_cart_to_user("g", 2)) == [(5, 1), (6, 2)]
