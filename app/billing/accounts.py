"""Owner-initiated subscription changes and the billing half of account deletion."""
import json
from datetime import datetime, timezone
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from app.extensions import db
from app.billing.sync import _as_dict, subscription_fields
from app.models import BillingCustomer, Order, Subscription
from app.services.billing import get_customer_for_user, get_stripe_client

# Subscriptions still able to bill the customer
CANCELABLE_STATUSES = frozenset({"active", "trialing", "past_due", "unpaid"})


class BillingError(Exception):
    status_code = 500
    default_message = "Billing error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class CustomerNotFound(BillingError):
    status_code = 404
    default_message = "Customer not found"


class SubscriptionNotFound(BillingError):
    status_code = 404
    default_message = "Subscription not found"


class NothingToCancel(BillingError):
    status_code = 400
    default_message = "No active subscription to cancel"


def get_record_for_customer(customer_id: str):
    return (
        db.session.query(Subscription)
        .filter(Subscription.customer_id == customer_id, Subscription.deleted_at.is_(None))
        .one_or_none()
    )


def cancel_at_period_end(user_id: int, client=None) -> dict:
    """
    Ask Stripe to stop renewing the account's subscription and mirror the flag
    locally. Access continues until current_period_end. Stripe errors propagate.
    """
    customer = get_customer_for_user(user_id)
    if customer is None:
        raise CustomerNotFound()
    record = get_record_for_customer(customer.customer_id)
    if record is None:
        raise SubscriptionNotFound()
    if not record.subscription_id:
        raise NothingToCancel()

    client = client or get_stripe_client()
    updated = _as_dict(client.subscriptions.update(
        record.subscription_id,
        params={"cancel_at_period_end": True},
    ))
    fields = subscription_fields(updated)

    try:
        record.cancel_at_period_end = fields["cancel_at_period_end"]
        db.session.commit()
    except SQLAlchemyError:
        # Stripe already has the change; the next webhook sync will carry it
        db.session.rollback()
        current_app.logger.exception(
            "billing.cancel_mirror_failed",
            extra={"customer_id": customer.customer_id, "subscription_id": record.subscription_id},
        )

    current_app.logger.info(json.dumps({
        "event": "billing_cancel_at_period_end",
        "user_id": user_id,
        "customer_id": customer.customer_id,
        "subscription_id": record.subscription_id,
    }))
    return {
        "success": True,
        "message": "Subscription will be canceled at the end of the current billing period",
        "cancel_at_period_end": fields["cancel_at_period_end"],
        "current_period_end": fields["current_period_end"],
    }


def _iter_list(result):
    auto = getattr(result, "auto_paging_iter", None)
    if callable(auto):
        return auto()
    return (_as_dict(result) or {}).get("data") or []


def purge_customer(user_id: int, client=None) -> dict:
    """
    Billing cleanup for account deletion: cancel every live subscription
    immediately, delete the Stripe customer, then soft-delete local billing rows.
    Stripe failures are logged and skipped so deletion can proceed.
    """
    customers = (
        db.session.query(BillingCustomer)
        .filter(BillingCustomer.user_id == user_id, BillingCustomer.deleted_at.is_(None))
        .all()
    )
    customer_ids = [c.customer_id for c in customers]
    canceled, deleted, failed = [], [], []

    if customer_ids:
        client = client or current_app.extensions.get("stripe_client")
        if client is None:
            current_app.logger.warning("billing.purge_without_stripe", extra={"user_id": user_id})
            failed.extend(customer_ids)

    for customer_id in customer_ids:
        if customer_id in failed:
            continue
        try:
            subs = client.subscriptions.list(params={"customer": customer_id, "status": "all"})
            for sub in _iter_list(subs):
                sub = _as_dict(sub)
                if sub.get("status") in CANCELABLE_STATUSES:
                    client.subscriptions.cancel(sub["id"])
                    canceled.append(sub["id"])
            client.customers.delete(customer_id)
            deleted.append(customer_id)
        except Exception:
            current_app.logger.exception("billing.purge_stripe_cleanup_failed", extra={"customer_id": customer_id})
            failed.append(customer_id)

    now = datetime.now(timezone.utc)
    if customer_ids:
        db.session.query(Subscription).filter(
            Subscription.customer_id.in_(customer_ids), Subscription.deleted_at.is_(None)
        ).update({Subscription.deleted_at: now}, synchronize_session=False)
        db.session.query(Order).filter(
            Order.customer_id.in_(customer_ids), Order.deleted_at.is_(None)
        ).update({Order.deleted_at: now}, synchronize_session=False)
        for c in customers:
            c.deleted_at = now
        db.session.commit()

    summary = {
        "user_id": user_id,
        "customers": customer_ids,
        "canceled_subscriptions": canceled,
        "deleted_customers": deleted,
        "failed_customers": failed,
    }
    current_app.logger.info(json.dumps({"event": "billing_purge", **summary}))
    return summary
