import os
from flask import Flask, render_template, request, jsonify

# Load .env only for local/dev. In prod, env vars come from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env", override=True)


from .config import get_config
from .extensions import db, migrate, csrf, login_manager, limiter, celery_init_app
from .security import init_security
from .observability import init_logging, init_sentry

# Boot fails without these outside dev/test
_REQUIRED_IN_PROD = ("SECRET_KEY", "DATABASE_URL", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")


def _app_env() -> str:
    return (os.getenv("APP_ENV", "development") or "development").lower()


def _wants_json() -> bool:
    # Webhook and owner API callers are machines; embeds and pages are browsers
    return (
        request.path.startswith(("/api/", "/webhooks/"))
        or request.path.endswith(".json")
        or request.is_json
        or "application/json" in (request.headers.get("Accept") or "").lower()
    )


def _rate_limit_storage(app_env: str) -> str:
    if app_env not in ("staging", "production"):
        return "memory://"
    uri = os.environ.get("REDIS_URL")
    if not uri:
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    return uri


def _register_blueprints(app):
    from .blueprints.webhooks import bp as webhooks_bp
    from .blueprints.api import bp as api_bp
    from .blueprints.embed import bp as embed_bp

    # Stripe signs its payloads; no browser session involved
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")
    # Bearer-token API: no cookies, so no CSRF surface
    csrf.exempt(api_bp)
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(embed_bp, url_prefix="/embed")


def _register_error_handlers(app):
    def _error(status: int, code: str, text: str):
        if _wants_json():
            return jsonify({"error": code, "code": status}), status
        return text, status

    app.register_error_handler(404, lambda e: _error(404, "not_found", "Not Found"))
    app.register_error_handler(405, lambda e: _error(405, "method_not_allowed", "Method Not Allowed"))
    app.register_error_handler(500, lambda e: _error(500, "internal_error", "Internal Server Error"))

    # 429 carries Retry-After in both JSON and HTML forms
    @app.errorhandler(429)
    def too_many_requests(e):
        retry_after = getattr(e, "retry_after", None)
        headers = {"Retry-After": str(int(retry_after))} if retry_after is not None else {}
        if _wants_json():
            payload = {"error": "rate_limited", "code": 429}
            if retry_after is not None:
                payload["retry_after"] = int(retry_after)
            return jsonify(payload), 429, headers
        return render_template("errors/429.html", retry_after=retry_after), 429, headers


def create_app(config_object=None):
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app_env = _app_env()

    app.config["RATELIMIT_STORAGE_URI"] = _rate_limit_storage(app_env)
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)
    app.config.from_object(config_object or get_config())

    if app_env in ("staging", "production"):
        missing = [k for k in _REQUIRED_IN_PROD if not (os.getenv(k) or app.config.get(k))]
        if missing:
            raise RuntimeError(f"Missing required environment variable(s): {', '.join(missing)}")

    init_logging(app)
    init_sentry(app)
    if app_env in ("staging", "production"):
        init_security(app)

    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)
    celery_init_app(app)

    # One Stripe client per process, shared by the reconciler, tasks and API
    from .services.billing import build_stripe_client
    app.extensions["stripe_client"] = build_stripe_client(app)
    if app.extensions["stripe_client"] is None:
        app.logger.warning("Stripe secret key missing; billing features will not work")

    _register_blueprints(app)
    try:
        limiter.exempt(app.view_functions["static"])
    except KeyError:
        pass

    @app.get("/healthz")
    @limiter.exempt
    def healthz():
        return {"status": "ok"}, 200

    _register_error_handlers(app)

    from .cli import register_cli
    register_cli(app)

    return app
