import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import json
import time
import pytest
from app import create_app
from app.extensions import db
from app.models import User, BillingCustomer, Subscription, Order, Collection, AudioFile, CollectionTrack
from app.services import tokens

DAY = 24 * 60 * 60


@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(
        TESTING=True,
        APP_BASE_URL="http://example.test",
        WTF_CSRF_ENABLED=False,
        STRIPE_WEBHOOK_SECRET="whsec_test_x",
        STRIPE_PRICE_PRO_MONTHLY="price_pro_monthly",
        STRIPE_PRICE_PRO_LIFETIME="price_pro_lifetime",
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


# ---------- Stripe test double ----------

class _Recorder:
    def __init__(self, owner, name):
        self._owner = owner
        self._name = name

    def _call(self, method, *args, **kwargs):
        self._owner.calls.append((f"{self._name}.{method}", args, kwargs))
        err = self._owner.errors.get(f"{self._name}.{method}")
        if err is not None:
            raise err


class _FakeSubscriptions(_Recorder):
    def list(self, params=None, options=None):
        self._call("list", params=params)
        customer = (params or {}).get("customer")
        return {"object": "list", "data": list(self._owner.by_customer.get(customer, []))}

    def update(self, sub_id, params=None, options=None):
        self._call("update", sub_id, params=params)
        for subs in self._owner.by_customer.values():
            for sub in subs:
                if sub["id"] == sub_id:
                    sub.update(params or {})
                    return dict(sub)
        return {"id": sub_id, **(params or {})}

    def cancel(self, sub_id, params=None, options=None):
        self._call("cancel", sub_id)
        for subs in self._owner.by_customer.values():
            for sub in subs:
                if sub["id"] == sub_id:
                    sub["status"] = "canceled"
        return {"id": sub_id, "status": "canceled"}


class _FakeCustomers(_Recorder):
    def create(self, params=None, options=None):
        self._call("create", params=params, options=options)
        return {"id": "cus_new", "email": (params or {}).get("email")}

    def delete(self, customer_id, params=None, options=None):
        self._call("delete", customer_id)
        return {"id": customer_id, "deleted": True}


class _FakeSessions(_Recorder):
    def create(self, params=None, options=None):
        self._call("create", params=params, options=options)
        if self._name == "billing_portal.sessions":
            return {"id": "bps_1", "url": "https://billing.stripe.test/session"}
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}


class _Namespace:
    def __init__(self, **kw):
        self.__dict__.update(kw)


class FakeStripeClient:
    """
    Stands in for stripe.StripeClient. Subscriptions live in `by_customer`
    keyed by customer id, newest first; `errors` maps "resource.method" to an
    exception to raise.
    """

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.by_customer = {}
        self.subscriptions = _FakeSubscriptions(self, "subscriptions")
        self.customers = _FakeCustomers(self, "customers")
        self.checkout = _Namespace(sessions=_FakeSessions(self, "checkout.sessions"))
        self.billing_portal = _Namespace(sessions=_FakeSessions(self, "billing_portal.sessions"))

    def calls_for(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture()
def stripe_client(app):
    fake = FakeStripeClient()
    previous = app.extensions.get("stripe_client")
    app.extensions["stripe_client"] = fake
    yield fake
    app.extensions["stripe_client"] = previous


@pytest.fixture()
def trusted_webhooks(monkeypatch):
    """Replace signature checks: only the fixed test signature verifies."""
    import stripe

    def _fake_construct_event(payload, sig_header, secret):
        if sig_header != "t=1,v1=fake":
            raise stripe.SignatureVerificationError("bad signature", sig_header)
        return json.loads(payload)
    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(_fake_construct_event))


def post_event(client, event, signature="t=1,v1=fake"):
    headers = {"Content-Type": "application/json"}
    if signature:
        headers["Stripe-Signature"] = signature
    return client.post("/webhooks/stripe-webhook", data=json.dumps(event), headers=headers)


# ---------- data builders ----------

def make_user(email="owner@example.test"):
    user = User(email=email, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user

def link_customer(user, customer_id="cus_123"):
    bc = BillingCustomer(user_id=user.id, customer_id=customer_id)
    db.session.add(bc)
    db.session.commit()
    return bc

def make_record(customer_id="cus_123", status="active", period_end_in=30 * DAY, **kw):
    now = int(time.time())
    rec = Subscription(
        customer_id=customer_id,
        subscription_id=kw.pop("subscription_id", "sub_123"),
        status=status,
        price_id=kw.pop("price_id", "price_pro_monthly"),
        current_period_start=now - DAY,
        current_period_end=None if period_end_in is None else now + period_end_in,
        **kw,
    )
    db.session.add(rec)
    db.session.commit()
    return rec

def make_order(customer_id="cus_123", cs_id="cs_life_1", payment_status="paid", status="completed"):
    order = Order(
        checkout_session_id=cs_id,
        customer_id=customer_id,
        amount_total=9900,
        currency="usd",
        payment_status=payment_status,
        status=status,
    )
    db.session.add(order)
    db.session.commit()
    return order

def make_collection(user, title="Demo Reel", is_public=True, tracks=(("Intro", "Ada"), ("Outro", None))):
    col = Collection(user_id=user.id, title=title, is_public=is_public)
    db.session.add(col)
    db.session.flush()
    for pos, (track_title, artist) in enumerate(tracks):
        af = AudioFile(
            user_id=user.id,
            title=track_title,
            artist=artist,
            duration=61.5,
            storage_path=f"u/{pos}.mp3",
            file_url=f"https://cdn.example.test/audio-files/u/{pos}.mp3",
        )
        db.session.add(af)
        db.session.flush()
        db.session.add(CollectionTrack(collection_id=col.id, audio_id=af.id, position=pos))
    db.session.commit()
    return col

def stripe_subscription(sub_id="sub_123", status="trialing", period_end_in=5 * DAY, **kw):
    """A Stripe subscription object as returned by subscriptions.list (payment method expanded)."""
    now = int(time.time())
    sub = {
        "id": sub_id,
        "object": "subscription",
        "status": status,
        "cancel_at_period_end": False,
        "current_period_start": now - DAY,
        "current_period_end": now + period_end_in,
        "items": {"data": [{"price": {"id": "price_pro_monthly"}}]},
        "default_payment_method": {"id": "pm_1", "card": {"brand": "visa", "last4": "4242"}},
        "metadata": {},
    }
    sub.update(kw)
    return sub

def bearer(app, user_id):
    with app.app_context():
        return {"Authorization": f"Bearer {tokens.generate_api_token(user_id)}"}
