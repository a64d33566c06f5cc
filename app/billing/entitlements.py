"""
Embed access resolution.

Maps a cached billing record plus the account's one-time orders to one of the
access states below. The Stripe status vocabulary is parsed into a closed enum
first so every branch is handled on purpose, including statuses this code has
never seen.
"""
import enum
import time
from typing import Iterable, Optional
from flask import current_app
from app.extensions import db
from app.models import BillingCustomer, Order, Subscription
from app.models.order import ORDER_COMPLETED, PAYMENT_PAID


class AccessState(str, enum.Enum):
    ACTIVE = "active"
    TRIAL_ENDED = "trial_ended"
    NO_TRIAL = "no_trial"
    ERROR = "error"


class SubscriptionStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "SubscriptionStatus":
        # Exact match; no case or whitespace folding
        value = raw or ""
        if value == "cancelled":  # legacy spelling from pre-Stripe records
            return cls.CANCELED
        if value == cls.UNRECOGNIZED.value:
            return cls.UNRECOGNIZED
        try:
            return cls(value)
        except ValueError:
            return cls.UNRECOGNIZED


_ALWAYS_ACTIVE = frozenset({SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE})
# Usable until the current period lapses
_UNTIL_PERIOD_END = frozenset({
    SubscriptionStatus.INCOMPLETE,
    SubscriptionStatus.INCOMPLETE_EXPIRED,
    SubscriptionStatus.CANCELED,
})
_LAPSED = frozenset({
    SubscriptionStatus.PAUSED,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.UNPAID,
})


def has_lifetime_order(orders: Iterable) -> bool:
    return any(
        getattr(o, "payment_status", None) == PAYMENT_PAID and getattr(o, "status", None) == ORDER_COMPLETED
        for o in (orders or ())
    )


def _period_open(record, now: int) -> bool:
    end = getattr(record, "current_period_end", None)
    return end is not None and int(end) > now


def resolve_access(record, orders: Iterable = (), now: Optional[int] = None) -> AccessState:
    """
    Decide embed access for one account. First match wins:
      1. a paid + completed order (lifetime purchase)
      2. no billing record at all
      3. the record's subscription status
    `now` is epoch seconds; defaults to the current time.
    """
    if has_lifetime_order(orders):
        return AccessState.ACTIVE
    if record is None:
        return AccessState.NO_TRIAL

    now = int(time.time()) if now is None else int(now)
    status = SubscriptionStatus.parse(getattr(record, "status", None))

    if status in _ALWAYS_ACTIVE:
        return AccessState.ACTIVE
    if status in _UNTIL_PERIOD_END:
        return AccessState.ACTIVE if _period_open(record, now) else AccessState.TRIAL_ENDED
    if status in _LAPSED:
        return AccessState.TRIAL_ENDED
    if status is SubscriptionStatus.NOT_STARTED:
        return AccessState.NO_TRIAL
    if status is SubscriptionStatus.UNRECOGNIZED:
        # Fail closed: a status we don't know must not grant access
        return AccessState.TRIAL_ENDED
    raise AssertionError(f"unhandled subscription status: {status!r}")


def has_access(record, orders: Iterable = (), now: Optional[int] = None) -> bool:
    return resolve_access(record, orders, now=now) is AccessState.ACTIVE


def load_billing_state(user_id: int):
    """Return (customer_id, record, orders) for an account, ignoring soft-deleted rows."""
    customer = (
        db.session.query(BillingCustomer)
        .filter(BillingCustomer.user_id == user_id, BillingCustomer.deleted_at.is_(None))
        .order_by(BillingCustomer.id.desc())
        .first()
    )
    if customer is None:
        return None, None, []
    record = (
        db.session.query(Subscription)
        .filter(Subscription.customer_id == customer.customer_id, Subscription.deleted_at.is_(None))
        .one_or_none()
    )
    orders = (
        db.session.query(Order)
        .filter(Order.customer_id == customer.customer_id, Order.deleted_at.is_(None))
        .all()
    )
    return customer.customer_id, record, orders


def lookup_access(user_id: int, now: Optional[int] = None) -> AccessState:
    """Resolve access for an account id; any failure while loading becomes ERROR."""
    try:
        _, record, orders = load_billing_state(user_id)
        return resolve_access(record, orders, now=now)
    except Exception:
        current_app.logger.exception("billing.access_lookup_failed", extra={"user_id": user_id})
        return AccessState.ERROR
