import os
from logging.config import dictConfig

# Never ship these to Sentry: they authenticate webhooks and the owner API
_SCRUBBED_HEADERS = ("authorization", "stripe-signature", "cookie")


def _is_prod_like() -> bool:
    return (os.getenv("APP_ENV", "development") or "development").lower() in ("staging", "production")


def init_logging(app):
    """
    JSON lines in staging/prod (web and worker share the root handler), so
    billing events logged as `{"event": ...}` stay machine-readable.
    Dev/tests keep Flask's console logger.
    """
    level = app.config.get("LOG_LEVEL", "INFO")
    if not _is_prod_like():
        app.logger.setLevel(level)
        return

    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "rename_fields": {"levelname": "level", "asctime": "ts"},
            },
        },
        "handlers": {"stdout": {"class": "logging.StreamHandler", "formatter": "json"}},
        "loggers": {
            # Stripe's SDK logs every request at INFO
            "stripe": {"level": "WARNING"},
            "celery": {"level": level},
        },
        "root": {"level": level, "handlers": ["stdout"]},
    })


def _scrub_event(event, hint):
    headers = (event.get("request") or {}).get("headers") or {}
    for key in list(headers):
        if key.lower() in _SCRUBBED_HEADERS:
            headers[key] = "[Filtered]"
    return event


def init_sentry(app):
    """Wire Sentry for the web app and Celery tasks if SENTRY_DSN is set."""
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.celery import CeleryIntegration
        from sentry_sdk.integrations.flask import FlaskIntegration
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), CeleryIntegration()],
            before_send=_scrub_event,
            send_default_pii=False,
            traces_sample_rate=float(os.getenv("SENTRY_TRACES", "0.0")),
            environment=os.getenv("APP_ENV", "development"),
        )
    except Exception as exc:
        app.logger.warning("Sentry init skipped: %s", exc)
