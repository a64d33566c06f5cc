import json
import stripe
from app.extensions import db
from app.models import Subscription, Order, User
from app.billing import tasks
from conftest import make_user, link_customer, make_record, stripe_subscription


def test_backoff_doubles_and_caps(app):
    with app.app_context():
        app.config.update(BILLING_SYNC_BACKOFF_SECONDS=10, BILLING_SYNC_BACKOFF_MAX_SECONDS=600)
        assert [tasks.backoff_seconds(n) for n in range(8)] == [10, 20, 40, 80, 160, 320, 600, 600]

def test_sync_customer_task_runs_in_app_context(app, stripe_client):
    stripe_client.by_customer["cus_123"] = [stripe_subscription(status="trialing")]
    tasks.sync_customer.apply(args=("cus_123", "customer.subscription.created"))
    with app.app_context():
        assert db.session.query(Subscription).filter_by(customer_id="cus_123").one().status == "trialing"

def test_sync_customer_swallows_unexpected_errors(app, stripe_client):
    stripe_client.errors["subscriptions.list"] = ValueError("bad payload")
    result = tasks.sync_customer.apply(args=("cus_123",))
    assert result.successful()
    assert result.result is None

def test_sync_customer_retries_stripe_errors_then_gives_up(app, stripe_client, monkeypatch):
    monkeypatch.setitem(app.config, "BILLING_SYNC_MAX_RETRIES", 2)
    stripe_client.errors["subscriptions.list"] = stripe.APIConnectionError("connection reset")
    stripe_client.by_customer["cus_123"] = [stripe_subscription(status="active")]
    result = tasks.sync_customer.apply(args=("cus_123", "customer.subscription.updated"))
    assert result.successful()
    # First attempt plus two retries
    assert len(stripe_client.calls_for("subscriptions.list")) == 3
    with app.app_context():
        assert db.session.query(Subscription).count() == 0

def test_sync_customer_recovers_on_retry(app, stripe_client, monkeypatch):
    monkeypatch.setitem(app.config, "BILLING_SYNC_MAX_RETRIES", 2)
    stripe_client.by_customer["cus_123"] = [stripe_subscription(status="active")]
    stripe_client.errors["subscriptions.list"] = stripe.APIConnectionError("connection reset")

    real_list = stripe_client.subscriptions.list
    def flaky_list(params=None, options=None):
        try:
            return real_list(params=params, options=options)
        finally:
            stripe_client.errors.pop("subscriptions.list", None)
    monkeypatch.setattr(stripe_client.subscriptions, "list", flaky_list)

    tasks.sync_customer.apply(args=("cus_123",))
    assert len(stripe_client.calls_for("subscriptions.list")) == 2
    with app.app_context():
        assert db.session.query(Subscription).filter_by(customer_id="cus_123").one().status == "active"

def test_pause_subscription_retries_sync_but_pauses_once(app, stripe_client, monkeypatch):
    monkeypatch.setitem(app.config, "BILLING_SYNC_MAX_RETRIES", 2)
    stripe_client.errors["subscriptions.list"] = stripe.APIConnectionError("connection reset")
    stripe_client.by_customer["cus_123"] = [stripe_subscription(status="past_due")]
    result = tasks.pause_subscription.apply(args=("sub_123", "cus_123", "invoice.payment_failed"))
    assert result.successful()
    assert len(stripe_client.calls_for("subscriptions.update")) == 1
    assert len(stripe_client.calls_for("subscriptions.list")) == 3
    with app.app_context():
        assert db.session.query(Subscription).count() == 0

def test_pause_failure_still_resyncs(app, stripe_client):
    stripe_client.errors["subscriptions.update"] = RuntimeError("cannot pause")
    stripe_client.by_customer["cus_123"] = [stripe_subscription(status="past_due")]
    tasks.pause_subscription.apply(args=("sub_123", "cus_123"))
    with app.app_context():
        assert db.session.query(Subscription).filter_by(customer_id="cus_123").one().status == "past_due"

def test_record_order_task_is_idempotent(app):
    session_obj = {"id": "cs_1", "customer": "cus_1", "payment_status": "paid", "amount_total": 100, "currency": "usd"}
    tasks.record_order.apply(args=(session_obj,))
    tasks.record_order.apply(args=(session_obj,))
    with app.app_context():
        assert db.session.query(Order).count() == 1

def test_record_order_without_customer_is_skipped(app):
    tasks.record_order.apply(args=({"id": "cs_2", "payment_status": "paid"},))
    with app.app_context():
        assert db.session.query(Order).count() == 0


# ---------- CLI ----------

def _json_line(output, key):
    # Log lines may be interleaved with command output
    for line in output.splitlines():
        if line.startswith("{") and key in line:
            return json.loads(line)
    raise AssertionError(output)

def test_cli_users_create_and_token(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create", "--email", "Owner@Example.test"])
    assert result.exit_code == 0, result.output
    result = runner.invoke(args=["users", "create", "--email", "owner@example.test"])
    assert result.exit_code != 0

    result = runner.invoke(args=["users", "token", "--email", "owner@example.test"])
    assert result.exit_code == 0
    token = result.output.strip().splitlines()[-1]
    with app.app_context():
        from app.services import tokens
        uid = db.session.query(User).one().id
        assert tokens.verify_api_token(token) == str(uid)

def test_cli_billing_sync(app, stripe_client):
    stripe_client.by_customer["cus_123"] = [stripe_subscription(status="active")]
    result = app.test_cli_runner().invoke(args=["billing", "sync", "--customer-id", "cus_123"])
    assert result.exit_code == 0, result.output
    assert _json_line(result.output, "subscription_status")["subscription_status"] == "active"

def test_cli_billing_purge(app, stripe_client):
    with app.app_context():
        user = make_user()
        link_customer(user, "cus_123")
        make_record("cus_123")
    result = app.test_cli_runner().invoke(args=["billing", "purge", "--email", "owner@example.test", "--yes"])
    assert result.exit_code == 0, result.output
    assert _json_line(result.output, "deleted_customers")["deleted_customers"] == ["cus_123"]
