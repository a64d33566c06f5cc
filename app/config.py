import os


def _celery_settings(broker_url: str, **overrides) -> dict:
    settings = {
        "broker_url": broker_url,
        "result_backend": broker_url,
        "task_ignore_result": True,
        # Reconciliation must survive a worker restart mid-task
        "task_acks_late": True,
        "worker_prefetch_multiplier": 1,
        "timezone": "UTC",
        "enable_utc": True,
        "imports": ("app.billing.tasks",),
    }
    settings.update(overrides)
    return settings


class BaseConfig:
    # Secrets (env in prod; dev/test may use defaults)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")
    WTF_CSRF_SECRET_KEY = SECRET_KEY

    # Database (env in prod; dev/test may use default)
    try:
        from dotenv import dotenv_values
        _ENV_FALLBACK = dotenv_values(".env")
    except Exception:
        _ENV_FALLBACK = {}
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _ENV_FALLBACK.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging / misc
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Cookies: secure-by-default
    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Flask-Limiter default: off globally; prefer per-route limits
    RATELIMIT_DEFAULT = None

    # Used for absolute links (checkout return urls, paywall CTAs)
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")
    SITE_NAME = os.getenv("SITE_NAME", "ACE Audio")

    # --- Stripe (Billing) ---
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    # Price IDs (per environment via env vars)
    STRIPE_PRICE_PRO_MONTHLY = os.getenv("STRIPE_PRICE_PRO_MONTHLY")
    STRIPE_PRICE_PRO_LIFETIME = os.getenv("STRIPE_PRICE_PRO_LIFETIME")
    TRIAL_PERIOD_DAYS = int(os.getenv("TRIAL_PERIOD_DAYS", "7"))

    # Background reconciliation
    BILLING_SYNC_MAX_RETRIES = int(os.getenv("BILLING_SYNC_MAX_RETRIES", "5"))
    BILLING_SYNC_BACKOFF_SECONDS = int(os.getenv("BILLING_SYNC_BACKOFF_SECONDS", "10"))
    BILLING_SYNC_BACKOFF_MAX_SECONDS = int(os.getenv("BILLING_SYNC_BACKOFF_MAX_SECONDS", "600"))
    CELERY = _celery_settings(os.getenv("REDIS_URL", "redis://localhost:6379/0"))

    # Bearer tokens for the owner API
    API_TOKEN_SALT = os.getenv("API_TOKEN_SALT", "api-token-v1")
    API_TOKEN_MAX_AGE = int(os.getenv("API_TOKEN_MAX_AGE", str(60 * 60 * 24 * 7)))

class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False

class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    # Presence is enforced in create_app() so importing this module never fails
    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")

class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    RATELIMIT_ENABLED = False
    # Run background tasks inline; failures stay inside the task like in a worker
    CELERY = _celery_settings(
        "memory://",
        result_backend=None,
        task_always_eager=True,
        task_eager_propagates=False,
    )

_ENV_MAP = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)
