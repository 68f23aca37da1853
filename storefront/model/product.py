# storefront/model/product.py
from ..extensions import db
from ..utils.money import D, round_money
from sqlalchemy.sql import func


class Product(db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)

    price = db.Column(db.Float, nullable=False, default=0.0)
    discount_price = db.Column(db.Float, nullable=True)          # sale price shown instead of price

    quantity = db.Column(db.Integer, default=0)                  # stock on hand
    subtract_stock = db.Column(db.String(16), default="yes")     # "yes"/"no"
    status = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    @property
    def tracks_stock(self) -> bool:
        # treat None/"" as "yes"
        return (self.subtract_stock or "yes") == "yes"

    @property
    def is_available(self) -> bool:
        return self.status is not False

    def unit_price(self):
        """Price a customer pays right now: the sale price when one is set."""
        if self.discount_price is not None:
            return round_money(D(self.discount_price))
        return round_money(D(self.price))

    def as_api(self):
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "discount_price": self.discount_price,
            "quantity": self.quantity,
            "subtract_stock": self.subtract_stock,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
