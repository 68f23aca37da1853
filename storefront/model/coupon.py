# --- storefront/model/coupon.py ---

from ..extensions import db
from ..utils.dates import isoformat
from ..utils.money import to_float
from sqlalchemy.sql import func

DISCOUNT_TYPES = ("percentage", "fixed")


class Coupon(db.Model):
    __tablename__ = "coupon"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)  # stored uppercase

    # "percentage" or "fixed"
    discount_type = db.Column(db.String(16), nullable=False, default="percentage")
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    min_purchase = db.Column(db.Numeric(12, 2), nullable=False, default=0)   # require cart subtotal >= this
    max_uses = db.Column(db.Integer, nullable=False, default=0)              # 0 = unlimited
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    __table_args__ = (
        db.CheckConstraint("max_uses = 0 OR usage_count <= max_uses", name="ck_coupon_usage_within_limit"),
    )

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": to_float(self.discount_value),
            "min_purchase": to_float(self.min_purchase),
            "max_uses": self.max_uses,
            "usage_count": self.usage_count,
            "is_active": self.is_active,
            "valid_from": isoformat(self.valid_from),
            "valid_until": isoformat(self.valid_until),
            "created_at": isoformat(self.created_at),
        }
