# ------ storefront/model/__init__.py ------

from .user import User
from .product import Product
from .cart import Cart, CartItem
from .coupon import Coupon, DISCOUNT_TYPES
from .order import Order, OrderItem, OrderStatus, PaymentStatus, PaymentMethod
from .payment import PaymentSession, RefundRecord

__all__ = [
    "User",
    "Product",
    "Cart",
    "CartItem",
    "Coupon",
    "DISCOUNT_TYPES",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentSession",
    "RefundRecord",
]
