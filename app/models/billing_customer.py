from sqlalchemy import func
from app.extensions import db

class BillingCustomer(db.Model):
    __tablename__ = "billing_customers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    # Stripe customer id; immutable once created
    customer_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<BillingCustomer id={self.id} user_id={self.user_id} customer_id={self.customer_id!r}>"
