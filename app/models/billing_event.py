from sqlalchemy import JSON, func, text
from sqlalchemy.dialects.postgresql import JSONB
from app.extensions import db

_JsonType = JSONB().with_variant(JSON(), "sqlite")

class BillingEventLog(db.Model):
    __tablename__ = "billing_event_logs"

    id = db.Column(db.Integer, primary_key=True)
    stripe_event_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
    type = db.Column(db.String(80), nullable=False, index=True)
    signature_valid = db.Column(db.Boolean, nullable=False, default=True, server_default=text("true"))
    payload = db.Column(_JsonType, nullable=False, default=dict)
    # Redeliveries of the same event id
    retries = db.Column(db.Integer, nullable=False, default=0, server_default=text("0"))
    notes = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
