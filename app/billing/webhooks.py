"""
Classification of verified Stripe events into follow-up work.

`classify_event` is pure; `dispatch_event` hands the resulting work to the
background queue so the HTTP handler can acknowledge immediately.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from flask import current_app
from sqlalchemy.exc import IntegrityError
from app.extensions import db
from app.models import Order
from app.models.order import ORDER_COMPLETED, PAYMENT_PAID

SYNC_CUSTOMER = "sync_customer"
RECORD_ORDER = "record_order"
PAUSE_SUBSCRIPTION = "pause_subscription"
IGNORE = "ignore"

SUBSCRIPTION_EVENTS = ("customer.subscription.created", "customer.subscription.updated")


@dataclass(frozen=True)
class WebhookAction:
    kind: str
    event_type: str
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None


def _id_of(value) -> Optional[str]:
    # Stripe fields may be an id string or an expanded object
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def classify_event(event: Dict[str, Any]) -> WebhookAction:
    ev_type = event.get("type") or ""
    obj = (event.get("data") or {}).get("object") or {}

    if not obj or "customer" not in obj:
        return WebhookAction(IGNORE, ev_type, reason="no_customer_field")

    customer_id = _id_of(obj.get("customer"))

    if ev_type in SUBSCRIPTION_EVENTS:
        # Sync no matter the status: a trialing/incomplete sub missed here reads as "no access" later
        return WebhookAction(SYNC_CUSTOMER, ev_type, customer_id=customer_id, subscription_id=obj.get("id"))

    if ev_type == "checkout.session.completed":
        mode = obj.get("mode")
        if mode == "subscription":
            if not customer_id:
                return WebhookAction(IGNORE, ev_type, reason="no_customer")
            return WebhookAction(SYNC_CUSTOMER, ev_type, customer_id=customer_id)
        if mode == "payment" and obj.get("payment_status") == PAYMENT_PAID:
            return WebhookAction(RECORD_ORDER, ev_type, customer_id=customer_id, payload=dict(obj))
        return WebhookAction(IGNORE, ev_type, customer_id=customer_id, reason=f"checkout_mode:{mode}")

    if ev_type == "invoice.payment_failed":
        parent = (obj.get("parent") or {}).get("subscription_details") or {}
        sub_id = _id_of(obj.get("subscription") or parent.get("subscription"))
        if (
            obj.get("billing_reason") == "subscription_cycle"
            and sub_id
            and obj.get("attempt_count") == 1
        ):
            # First charge after the trial failed: pause instead of dunning
            return WebhookAction(PAUSE_SUBSCRIPTION, ev_type, customer_id=customer_id, subscription_id=sub_id)

    if ev_type == "payment_intent.succeeded" and obj.get("invoice") is None:
        # One-time payments are recorded from checkout.session.completed
        return WebhookAction(IGNORE, ev_type, customer_id=customer_id, reason="one_time_payment_intent")

    if not customer_id or not isinstance(customer_id, str):
        return WebhookAction(IGNORE, ev_type, reason="no_customer")

    return WebhookAction(SYNC_CUSTOMER, ev_type, customer_id=customer_id)


def dispatch_event(event: Dict[str, Any]) -> WebhookAction:
    """Classify a verified event and enqueue its work. Returns the chosen action."""
    from app.billing import tasks

    action = classify_event(event)
    current_app.logger.info(json.dumps({
        "event": "stripe_webhook_dispatch",
        "stripe_event_id": event.get("id"),
        "type": action.event_type,
        "action": action.kind,
        "customer_id": action.customer_id,
        "reason": action.reason,
    }))

    if action.kind == SYNC_CUSTOMER:
        tasks.sync_customer.apply_async(args=(action.customer_id, action.event_type))
    elif action.kind == RECORD_ORDER:
        tasks.record_order.apply_async(args=(action.payload,))
    elif action.kind == PAUSE_SUBSCRIPTION:
        tasks.pause_subscription.apply_async(
            args=(action.subscription_id, action.customer_id, action.event_type)
        )
    return action


def record_one_time_order(session_obj: Dict[str, Any]) -> Optional[Order]:
    """
    Persist a paid one-time Checkout Session as an Order.
    Idempotent on checkout_session_id: redeliveries return the existing row.
    """
    cs_id = session_obj.get("id")
    customer_id = _id_of(session_obj.get("customer"))
    if not cs_id or not customer_id:
        current_app.logger.error(
            "billing.order_missing_ids",
            extra={"checkout_session_id": cs_id, "customer_id": customer_id},
        )
        return None

    existing = db.session.query(Order).filter_by(checkout_session_id=cs_id).first()
    if existing:
        current_app.logger.info(json.dumps({"event": "billing_order_duplicate", "checkout_session_id": cs_id}))
        return existing

    order = Order(
        checkout_session_id=cs_id,
        payment_intent_id=_id_of(session_obj.get("payment_intent")),
        customer_id=customer_id,
        amount_subtotal=session_obj.get("amount_subtotal"),
        amount_total=session_obj.get("amount_total"),
        currency=session_obj.get("currency"),
        payment_status=session_obj.get("payment_status") or PAYMENT_PAID,
        status=ORDER_COMPLETED,
    )
    db.session.add(order)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent delivery of the same session
        db.session.rollback()
        return db.session.query(Order).filter_by(checkout_session_id=cs_id).first()

    current_app.logger.info(json.dumps({
        "event": "billing_order_recorded",
        "checkout_session_id": cs_id,
        "customer_id": customer_id,
    }))
    return order
