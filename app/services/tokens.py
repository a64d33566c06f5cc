from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from flask import current_app

API_KIND = "api"

def _serializer() -> URLSafeTimedSerializer:
    secret = current_app.config["SECRET_KEY"]
    salt = current_app.config.get("API_TOKEN_SALT", "api-token-v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)

def generate(kind: str, identity: str) -> str:
    """
    kind: token purpose; only 'api' (owner bearer tokens) is issued today.
    identity: account id as a string.
    """
    return _serializer().dumps({"k": kind, "i": identity})

def verify(kind: str, token: str, max_age_seconds: int) -> Optional[str]:
    try:
        data = _serializer().loads(token, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(data, dict) or data.get("k") != kind:
        return None
    return data.get("i")

def generate_api_token(user_id: int) -> str:
    return generate(API_KIND, str(user_id))

def verify_api_token(token: str) -> Optional[str]:
    max_age = int(current_app.config.get("API_TOKEN_MAX_AGE", 7 * 24 * 3600))
    return verify(API_KIND, token, max_age_seconds=max_age)
