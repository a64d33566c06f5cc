import hashlib
import json
from datetime import datetime, timezone
from flask import request, jsonify, current_app
from . import bp
from app.extensions import db, csrf
from app.models import BillingEventLog
from app.billing.webhooks import dispatch_event
import stripe


def _record_event(event_id: str, ev_type: str, *, signature_valid: bool, payload: dict):
    """Insert the audit row for an event id, or bump its delivery count on redelivery."""
    log = BillingEventLog.query.filter_by(stripe_event_id=event_id).first()
    if log:
        log.retries = (log.retries or 0) + 1
        db.session.commit()
        return log, True
    log = BillingEventLog(
        stripe_event_id=event_id,
        type=ev_type,
        signature_valid=signature_valid,
        payload=payload,
    )
    db.session.add(log)
    db.session.commit()
    return log, False


# ----- Stripe Webhook (subscriptions lifecycle + one-time orders) -----
@csrf.exempt
@bp.route("/stripe-webhook", methods=["POST", "OPTIONS"], provide_automatic_options=False)
def stripe_webhook():
    """
    Stripe → /webhooks/stripe-webhook
    Verifies the signature, logs the event, queues reconciliation and acknowledges.
    The queued work never changes the response Stripe sees.
    """
    if request.method == "OPTIONS":
        return "", 204

    # 1) Verify signature
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        current_app.logger.error("stripe_webhook_secret_missing")
        return jsonify({"error": "Stripe webhook secret not configured"}), 500

    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        return jsonify({"error": "No signature found"}), 400

    raw_bytes = request.get_data(cache=False, as_text=False)
    try:
        stripe.Webhook.construct_event(
            payload=raw_bytes.decode("utf-8"),
            sig_header=sig_header,
            secret=secret,
        )
    except Exception as exc:
        # Nothing is written for unverified bodies; the digest ties log lines to replays
        digest = hashlib.sha256(raw_bytes).hexdigest()[:32]
        current_app.logger.warning(json.dumps({
            "event": "stripe_webhook_invalid_signature",
            "digest": digest,
            "error": type(exc).__name__,
        }))
        return jsonify({"error": "Webhook signature verification failed"}), 400

    try:
        event = json.loads(raw_bytes.decode("utf-8"))
        ev_id = event.get("id")
        ev_type = event.get("type")
        if not ev_id or not ev_type:
            return jsonify({"error": "malformed_event"}), 400

        # 2) Audit log; redeliveries are dispatched again since handlers are idempotent
        log, duplicate = _record_event(ev_id, ev_type, signature_valid=True, payload=event)

        # 3) Classify and queue
        action = dispatch_event(event)

        log.notes = action.kind if not action.reason else f"{action.kind}:{action.reason}"[:255]
        log.processed_at = datetime.now(timezone.utc)
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("stripe_webhook_error")
        return jsonify({"error": str(exc)}), 500

    current_app.logger.info(json.dumps({
        "event": "stripe_webhook",
        "stripe_event_id": ev_id,
        "type": ev_type,
        "duplicate": duplicate,
        "action": action.kind,
    }))
    return jsonify({"received": True}), 200
