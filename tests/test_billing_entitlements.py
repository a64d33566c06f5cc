from types import SimpleNamespace
import pytest
from app.extensions import db
from app.billing import entitlements
from app.billing.entitlements import AccessState, SubscriptionStatus, resolve_access, has_access, lookup_access
from conftest import DAY, make_user, link_customer, make_record, make_order

NOW = 1_750_000_000

def _rec(status, period_end=None, cancel_at_period_end=False):
    return SimpleNamespace(status=status, current_period_end=period_end, cancel_at_period_end=cancel_at_period_end)

def _order(payment_status="paid", status="completed"):
    return SimpleNamespace(payment_status=payment_status, status=status)


def test_no_record_no_orders_is_no_trial():
    assert resolve_access(None, [], now=NOW) is AccessState.NO_TRIAL

def test_trialing_with_period_ahead_is_active():
    assert resolve_access(_rec("trialing", NOW + 5 * DAY), [], now=NOW) is AccessState.ACTIVE

def test_paused_is_trial_ended():
    assert resolve_access(_rec("paused", NOW + 5 * DAY), [], now=NOW) is AccessState.TRIAL_ENDED

def test_canceled_after_period_end_is_trial_ended():
    assert resolve_access(_rec("canceled", NOW - 3600), [], now=NOW) is AccessState.TRIAL_ENDED

def test_lifetime_order_without_record_is_active():
    assert resolve_access(None, [_order()], now=NOW) is AccessState.ACTIVE

@pytest.mark.parametrize("status", ["trialing", "active"])
@pytest.mark.parametrize("cancel_flag", [True, False])
def test_trialing_and_active_ignore_cancel_flag_and_period(status, cancel_flag):
    rec = _rec(status, NOW - 10 * DAY, cancel_at_period_end=cancel_flag)
    assert resolve_access(rec, [], now=NOW) is AccessState.ACTIVE

@pytest.mark.parametrize("status", ["canceled", "incomplete", "incomplete_expired"])
def test_period_bounded_statuses_follow_period_end(status):
    assert resolve_access(_rec(status, NOW + 60), [], now=NOW) is AccessState.ACTIVE
    assert resolve_access(_rec(status, NOW), [], now=NOW) is AccessState.TRIAL_ENDED
    assert resolve_access(_rec(status, NOW - 60), [], now=NOW) is AccessState.TRIAL_ENDED

def test_period_bounded_status_without_period_end_is_trial_ended():
    assert resolve_access(_rec("canceled", None), [], now=NOW) is AccessState.TRIAL_ENDED

@pytest.mark.parametrize("status", ["paused", "past_due", "unpaid"])
def test_lapsed_statuses_are_trial_ended_even_inside_period(status):
    assert resolve_access(_rec(status, NOW + 30 * DAY), [], now=NOW) is AccessState.TRIAL_ENDED

def test_not_started_record_is_no_trial():
    assert resolve_access(_rec("not_started"), [], now=NOW) is AccessState.NO_TRIAL

def test_unknown_status_fails_closed():
    assert resolve_access(_rec("some_future_status", NOW + DAY), [], now=NOW) is AccessState.TRIAL_ENDED

def test_legacy_cancelled_spelling_is_treated_as_canceled():
    assert SubscriptionStatus.parse("cancelled") is SubscriptionStatus.CANCELED
    assert resolve_access(_rec("cancelled", NOW + DAY), [], now=NOW) is AccessState.ACTIVE
    assert resolve_access(_rec("cancelled", NOW - DAY), [], now=NOW) is AccessState.TRIAL_ENDED

def test_status_parse_is_closed():
    assert SubscriptionStatus.parse(None) is SubscriptionStatus.UNRECOGNIZED
    assert SubscriptionStatus.parse("active") is SubscriptionStatus.ACTIVE
    assert SubscriptionStatus.parse("bogus") is SubscriptionStatus.UNRECOGNIZED

@pytest.mark.parametrize("raw", ["ACTIVE", "Active", " active", "Trialing", "CANCELLED"])
def test_status_parse_does_not_normalise_case_or_whitespace(raw):
    assert SubscriptionStatus.parse(raw) is SubscriptionStatus.UNRECOGNIZED
    assert resolve_access(_rec(raw, NOW + DAY), [], now=NOW) is AccessState.TRIAL_ENDED

@pytest.mark.parametrize("status", ["canceled", "paused", "unpaid", "not_started", "whatever"])
def test_lifetime_order_dominates_any_subscription_state(status):
    assert resolve_access(_rec(status, NOW - 90 * DAY), [_order()], now=NOW) is AccessState.ACTIVE

@pytest.mark.parametrize("payment_status,status", [("unpaid", "completed"), ("paid", "pending"), ("no_payment_required", "completed")])
def test_incomplete_orders_do_not_grant_lifetime(payment_status, status):
    assert resolve_access(None, [_order(payment_status, status)], now=NOW) is AccessState.NO_TRIAL

def test_has_access_only_for_active():
    assert has_access(_rec("active"), now=NOW) is True
    assert has_access(_rec("paused"), now=NOW) is False
    assert has_access(None, now=NOW) is False


# ---------- DB-backed lookup ----------

def test_lookup_access_reads_record_and_orders(app):
    with app.app_context():
        user = make_user()
        link_customer(user, "cus_123")
        make_record("cus_123", status="paused")
        assert lookup_access(user.id) is AccessState.TRIAL_ENDED

        make_order("cus_123")
        assert lookup_access(user.id) is AccessState.ACTIVE

def test_lookup_access_without_customer_is_no_trial(app):
    with app.app_context():
        user = make_user()
        assert lookup_access(user.id) is AccessState.NO_TRIAL

def test_lookup_access_ignores_soft_deleted_rows(app):
    from datetime import datetime, timezone
    with app.app_context():
        user = make_user()
        link_customer(user, "cus_123")
        rec = make_record("cus_123", status="active")
        rec.deleted_at = datetime.now(timezone.utc)
        db.session.commit()
        assert lookup_access(user.id) is AccessState.NO_TRIAL

def test_lookup_access_failure_becomes_error(app, monkeypatch):
    def _boom(user_id):
        raise RuntimeError("db down")
    monkeypatch.setattr(entitlements, "load_billing_state", _boom)
    with app.app_context():
        assert lookup_access(1) is AccessState.ERROR
