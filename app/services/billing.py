from typing import Dict, Any, Optional
from urllib.parse import urljoin
from flask import current_app
from stripe import StripeClient
import hashlib, json

from app.extensions import db
from app.models import BillingCustomer, User


def build_stripe_client(app) -> Optional[StripeClient]:
    """Construct the process-wide Stripe client from config (None when unconfigured)."""
    key = app.config.get("STRIPE_SECRET_KEY")
    if not key:
        return None
    return StripeClient(key, max_network_retries=2)


def get_stripe_client():
    client = current_app.extensions.get("stripe_client")
    if client is None:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured")
    return client


def _absolute_url(path: str) -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/") + "/"
    return urljoin(base, path.lstrip("/"))


def make_idempotency_key(*parts: Any, prefix: str = "checkout") -> str:
    raw = "|".join(str(p) for p in parts)
    return f"{prefix}:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]

def _params_hash(d: Dict[str, Any]) -> str:
    # Stable across runs if params identical; changes when you change fields
    return hashlib.sha256(json.dumps(d, sort_keys=True, separators=(",", ":")).encode("utf-8")).hexdigest()[:16]


def checkout_mode_for_price(price_id: str) -> Optional[str]:
    """Map a configured price to its Checkout mode; None for prices we don't sell."""
    cfg = current_app.config
    if price_id and price_id == cfg.get("STRIPE_PRICE_PRO_MONTHLY"):
        return "subscription"
    if price_id and price_id == cfg.get("STRIPE_PRICE_PRO_LIFETIME"):
        return "payment"
    return None


def get_customer_for_user(user_id: int) -> Optional[BillingCustomer]:
    return (
        db.session.query(BillingCustomer)
        .filter(BillingCustomer.user_id == user_id, BillingCustomer.deleted_at.is_(None))
        .order_by(BillingCustomer.id.desc())
        .first()
    )


def ensure_customer(user: User, client=None) -> BillingCustomer:
    """Return the account's live Stripe customer link, creating the customer on first use."""
    existing = get_customer_for_user(user.id)
    if existing:
        return existing

    client = client or get_stripe_client()
    customer = client.customers.create(
        params={"email": user.email, "metadata": {"user_id": str(user.id)}},
        options={"idempotency_key": make_idempotency_key(user.id, user.email, prefix="customer")},
    )
    bc = BillingCustomer(user_id=user.id, customer_id=customer["id"])
    db.session.add(bc)
    db.session.commit()
    current_app.logger.info(json.dumps({
        "event": "billing_customer_created",
        "user_id": user.id,
        "customer_id": bc.customer_id,
    }))
    return bc


def create_checkout_session(*, user: User, price_id: str, mode: str, client=None) -> Dict[str, Any]:
    """
    Create a Stripe Checkout Session for the given Price.
    Subscription mode starts with a trial; payment mode is the lifetime purchase.
    Returns: {"id": <session_id>, "url": <redirect_url or None>}
    """
    client = client or get_stripe_client()
    bc = ensure_customer(user, client=client)
    params: Dict[str, Any] = {
        "mode": mode,
        "customer": bc.customer_id,
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": _absolute_url("success?session_id={CHECKOUT_SESSION_ID}"),
        "cancel_url": _absolute_url("pricing"),
        "metadata": {"user_id": str(user.id)},
    }
    if mode == "subscription":
        params["subscription_data"] = {
            "trial_period_days": int(current_app.config.get("TRIAL_PERIOD_DAYS", 7)),
            "metadata": {"user_id": str(user.id)},
        }
    # Param-aware idempotency: new key whenever Checkout params change
    idem = make_idempotency_key("checkout", "v1", user.id, price_id, _params_hash(params))
    session = client.checkout.sessions.create(params=params, options={"idempotency_key": idem})
    return {"id": session["id"], "url": session.get("url")}


def create_portal_session(*, customer_id: str, client=None) -> Dict[str, Any]:
    """Create a Stripe Customer Portal session for an existing Customer."""
    client = client or get_stripe_client()
    params = {
        "customer": customer_id,
        "return_url": _absolute_url("profile"),
    }
    session = client.billing_portal.sessions.create(params=params)
    return {"url": session["url"]}
