from sqlalchemy import func
from app.extensions import db

ORDER_COMPLETED = "completed"
PAYMENT_PAID = "paid"

class Order(db.Model):
    """One completed one-time checkout. Append-only; never mutated after insert."""
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    checkout_session_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
    payment_intent_id = db.Column(db.String(255), nullable=True)
    customer_id = db.Column(db.String(64), nullable=False, index=True)

    amount_subtotal = db.Column(db.BigInteger, nullable=True)
    amount_total = db.Column(db.BigInteger, nullable=True)
    currency = db.Column(db.String(3), nullable=True)

    payment_status = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(32), nullable=False, default=ORDER_COMPLETED)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def grants_lifetime(self) -> bool:
        return self.payment_status == PAYMENT_PAID and self.status == ORDER_COMPLETED

    def __repr__(self) -> str:
        return f"<Order id={self.id} checkout_session_id={self.checkout_session_id!r} status={self.status!r}>"
