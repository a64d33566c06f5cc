from flask import current_app, jsonify, request
from flask_login import current_user, login_required
from app.extensions import limiter
from app.billing import accounts
from app.billing.entitlements import has_lifetime_order, load_billing_state, resolve_access
from app.services import billing as billing_service
from . import bp

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, Content-Type",
}


@bp.after_request
def _cors(resp):
    for k, v in _CORS_HEADERS.items():
        resp.headers.setdefault(k, v)
    return resp


def _preflight():
    return "", 204


@bp.route("/stripe-cancel-subscription", methods=["POST", "OPTIONS"], provide_automatic_options=False)
@limiter.limit("10/minute")
@login_required
def cancel_subscription():
    if request.method == "OPTIONS":
        return _preflight()
    try:
        result = accounts.cancel_at_period_end(current_user.id)
    except accounts.BillingError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception as e:
        current_app.logger.exception(
            "billing.cancel_subscription_failed",
            extra={"user_id": current_user.id},
        )
        user_msg = getattr(e, "user_message", None) or str(e)
        return jsonify({"error": user_msg}), 500
    return jsonify(result), 200


@bp.route("/stripe-checkout", methods=["POST", "OPTIONS"], provide_automatic_options=False)
@limiter.limit("10/minute")
@login_required
def checkout():
    if request.method == "OPTIONS":
        return _preflight()
    data = request.get_json(silent=True) or {}
    price_id = (data.get("price_id") or "").strip()
    if not price_id:
        return jsonify({"error": "Missing price_id"}), 400

    mode = billing_service.checkout_mode_for_price(price_id)
    if mode is None:
        return jsonify({"error": "Unknown price_id"}), 400
    if data.get("mode") and data.get("mode") != mode:
        return jsonify({"error": f"price_id requires mode '{mode}'"}), 400

    try:
        session = billing_service.create_checkout_session(user=current_user, price_id=price_id, mode=mode)
    except Exception as e:
        current_app.logger.exception(
            "billing.checkout.session_create_failed",
            extra={"price_id": price_id, "user_id": current_user.id},
        )
        user_msg = getattr(e, "user_message", None) or str(e)
        return jsonify({"error": user_msg}), 500

    return jsonify({"sessionId": session["id"], "url": session["url"]}), 200


@bp.route("/stripe-customer-portal", methods=["POST", "OPTIONS"], provide_automatic_options=False)
@limiter.limit("10/minute")
@login_required
def customer_portal():
    if request.method == "OPTIONS":
        return _preflight()
    bc = billing_service.get_customer_for_user(current_user.id)
    if not bc:
        return jsonify({"error": "Customer not found"}), 404

    try:
        payload = billing_service.create_portal_session(customer_id=bc.customer_id)
    except Exception as e:
        current_app.logger.exception(
            "billing.portal.session_create_failed",
            extra={"user_id": current_user.id, "customer_id": bc.customer_id},
        )
        user_msg = getattr(e, "user_message", None) or str(e)
        return jsonify({"error": user_msg}), 500
    return jsonify(payload), 200


@bp.get("/subscription")
@login_required
def subscription_status():
    """The account's cached billing record and the access state the embed gate will see."""
    customer_id, record, orders = load_billing_state(current_user.id)
    return jsonify({
        "customer_id": customer_id,
        "subscription": record.to_dict() if record else None,
        "lifetime": has_lifetime_order(orders),
        "access": resolve_access(record, orders).value,
    }), 200
