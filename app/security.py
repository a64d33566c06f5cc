from app.extensions import talisman

# Owner-facing pages: Stripe Checkout redirects only, never framed elsewhere
APP_CSP = {
    "default-src": ["'self'"],
    "script-src": ["'self'", "https://js.stripe.com"],
    "style-src": ["'self'", "'unsafe-inline'"],
    "img-src": ["'self'", "data:", "blob:"],
    "connect-src": ["'self'", "https://api.stripe.com"],
    "frame-src": ["'self'", "https://js.stripe.com", "https://checkout.stripe.com"],
    "frame-ancestors": ["'self'"],
    "base-uri": ["'self'"],
    "form-action": ["'self'", "https://checkout.stripe.com"],
}

# Public players: framed by arbitrary customer sites, audio from signed storage URLs
EMBED_CSP = {
    "default-src": ["'self'"],
    "script-src": ["'self'"],
    "style-src": ["'self'", "'unsafe-inline'"],
    "img-src": ["'self'", "data:", "blob:", "https:"],
    "media-src": ["'self'", "blob:", "https:"],
    "font-src": ["'self'", "data:"],
    "frame-ancestors": ["*"],
    "base-uri": ["'self'"],
}


def init_security(app):
    """
    HTTPS, HSTS and CSP for staging/production. Embed views opt out of the
    frame restrictions per route (see blueprints.embed.routes).
    """
    talisman.init_app(
        app,
        content_security_policy=APP_CSP,
        force_https=True,
        strict_transport_security=True,
        session_cookie_secure=True,
        frame_options="SAMEORIGIN",
        referrer_policy="strict-origin-when-cross-origin",
    )
