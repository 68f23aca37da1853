# storefront/model/payment.py
from ..extensions import db
from ..utils.dates import isoformat
from ..utils.money import to_float
from sqlalchemy.sql import func


class PaymentSession(db.Model):
    """Hosted checkout session correlating an external redirect with an existing order."""

    __tablename__ = "payment_sessions"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    external_session_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)  # minor units
    currency = db.Column(db.String(8), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="open")  # open | complete | failed | expired
    redirect_url = db.Column(db.String(1024))
    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def as_api(self):
        return {
            "order_id": self.order_id,
            "session_id": self.external_session_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "redirect_url": self.redirect_url,
        }


class RefundRecord(db.Model):
    __tablename__ = "refunds"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    refund_id = db.Column(db.String(255))           # None when the gateway never answered
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(32), nullable=False)  # gateway status, or "failed"
    failure_reason = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, server_default=func.now())

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def as_api(self):
        return {
            "refund_id": self.refund_id,
            "amount": to_float(self.amount),
            "status": self.status,
            "failure_reason": self.failure_reason,
            "created_at": isoformat(self.created_at),
        }
