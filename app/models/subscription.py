from sqlalchemy import func, text
from app.extensions import db

class Subscription(db.Model):
    """
    Local cache of a customer's Stripe subscription (the billing record).

    Written only by the sync reconciler, keyed by `customer_id`. `status` holds
    Stripe's raw string; interpretation lives in app.billing.entitlements.
    """
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    subscription_id = db.Column(db.String(64), nullable=True, index=True)
    status = db.Column(db.String(32), nullable=False, index=True, server_default=text("'not_started'"))
    price_id = db.Column(db.String(64), nullable=True)

    # Epoch seconds, as reported by Stripe
    current_period_start = db.Column(db.BigInteger, nullable=True)
    current_period_end = db.Column(db.BigInteger, nullable=True, index=True)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False, server_default=text("false"))

    payment_method_brand = db.Column(db.String(32), nullable=True)
    payment_method_last4 = db.Column(db.String(4), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "subscription_id": self.subscription_id,
            "subscription_status": self.status,
            "price_id": self.price_id,
            "current_period_start": self.current_period_start,
            "current_period_end": self.current_period_end,
            "cancel_at_period_end": bool(self.cancel_at_period_end),
            "payment_method_brand": self.payment_method_brand,
            "payment_method_last4": self.payment_method_last4,
        }

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} customer_id={self.customer_id!r} status={self.status!r} price_id={self.price_id!r}>"
