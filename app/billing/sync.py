"""
Stripe → local billing record reconciliation.

Every run re-reads the customer's current subscription from Stripe and
upserts the whole record keyed on customer_id, so repeated, duplicated or
out-of-order webhook deliveries all converge on Stripe's current state.
"""
import json
from typing import Any, Dict, Optional
from flask import current_app
from sqlalchemy.exc import IntegrityError
from app.extensions import db
from app.models import BillingCustomer, Subscription, User

NOT_STARTED = "not_started"

# Everything a run overwrites when the customer has no subscription
_EMPTY_SUBSCRIPTION_FIELDS: Dict[str, Any] = {
    "subscription_id": None,
    "status": NOT_STARTED,
    "price_id": None,
    "current_period_start": None,
    "current_period_end": None,
    "cancel_at_period_end": False,
    "payment_method_brand": None,
    "payment_method_last4": None,
}


def _as_dict(obj):
    # Stripe objects are dict subclasses; plain dicts come from tests and raw payloads
    if obj is None or isinstance(obj, dict):
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)


def _first_set(*values):
    for v in values:
        if v is not None:
            return v
    return None


def subscription_fields(sub: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Stripe subscription object into billing record columns (status verbatim)."""
    items = (sub.get("items") or {}).get("data") or []
    first = _as_dict(items[0]) if items else {}
    price = first.get("price") or {}
    price_id = price.get("id") if isinstance(price, dict) else price

    fields: Dict[str, Any] = {
        "subscription_id": sub.get("id"),
        "status": sub.get("status"),
        "price_id": price_id,
        # Newer API versions report the billing window per item
        "current_period_start": _first_set(sub.get("current_period_start"), first.get("current_period_start")),
        "current_period_end": _first_set(sub.get("current_period_end"), first.get("current_period_end")),
        "cancel_at_period_end": bool(sub.get("cancel_at_period_end")),
    }

    pm = sub.get("default_payment_method")
    if pm and not isinstance(pm, str):
        card = (_as_dict(pm) or {}).get("card") or {}
        fields["payment_method_brand"] = card.get("brand")
        fields["payment_method_last4"] = card.get("last4")
    return fields


class SubscriptionReconciler:
    """Pulls subscription truth from Stripe and upserts it into the billing record store."""

    def __init__(self, client, session=None):
        self.client = client
        self.session = session or db.session

    def fetch_latest_subscription(self, customer_id: str) -> Optional[Dict[str, Any]]:
        # A customer has at most one meaningful subscription; the newest wins.
        result = self.client.subscriptions.list(params={
            "customer": customer_id,
            "limit": 1,
            "status": "all",
            "expand": ["data.default_payment_method"],
        })
        data = (_as_dict(result) or {}).get("data") or []
        return _as_dict(data[0]) if data else None

    def reconcile(self, customer_id: str) -> Subscription:
        if not customer_id:
            raise ValueError("customer_id is required")

        sub = self.fetch_latest_subscription(customer_id)
        if sub is None:
            fields = dict(_EMPTY_SUBSCRIPTION_FIELDS)
            metadata = {}
        else:
            fields = subscription_fields(sub)
            metadata = sub.get("metadata") or {}

        try:
            record = self.upsert(customer_id, fields, metadata=metadata)
        except Exception:
            current_app.logger.exception("billing.sync_upsert_failed", extra={"customer_id": customer_id})
            raise

        current_app.logger.info(json.dumps({
            "event": "billing_sync",
            "customer_id": customer_id,
            "subscription_id": record.subscription_id,
            "status": record.status,
        }))
        return record

    def upsert(self, customer_id: str, fields: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> Subscription:
        """
        Insert-or-update the record for customer_id. A concurrent insert of the same
        customer surfaces as IntegrityError; the second attempt then finds the row.
        """
        for attempt in (1, 2):
            try:
                record = self.session.query(Subscription).filter_by(customer_id=customer_id).one_or_none()
                if record is None:
                    record = Subscription(customer_id=customer_id)
                    self.session.add(record)
                for key, value in fields.items():
                    setattr(record, key, value)
                self._link_customer(customer_id, metadata or {})
                self.session.commit()
                return record
            except IntegrityError:
                self.session.rollback()
                if attempt == 2:
                    raise
        raise AssertionError("unreachable")

    def _link_customer(self, customer_id: str, metadata: Dict[str, Any]) -> None:
        # Customers created outside our checkout only carry the account in metadata
        user_id = metadata.get("user_id")
        if not user_id:
            return
        exists = self.session.query(BillingCustomer).filter_by(customer_id=customer_id).first()
        if exists:
            return
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            return
        if self.session.get(User, user_id) is None:
            return
        self.session.add(BillingCustomer(user_id=user_id, customer_id=customer_id))


def get_reconciler(client=None) -> SubscriptionReconciler:
    from app.services.billing import get_stripe_client
    return SubscriptionReconciler(client or get_stripe_client())
