from flask_login import UserMixin
from sqlalchemy import func
from app.extensions import db, login_manager

class User(db.Model, UserMixin):
    """An account: owns collections, audio files and at most one billing customer."""
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def get_id(self) -> str:
        return str(self.id)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

@login_manager.request_loader
def load_user_from_request(request):
    """Resolve `Authorization: Bearer <token>` to an active, non-deleted account."""
    from app.services import tokens

    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    user_id = tokens.verify_api_token(token.strip())
    if not user_id:
        return None
    try:
        user = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None
    if user is None or user.deleted_at is not None or not user.is_active:
        return None
    return user

@login_manager.unauthorized_handler
def _unauthorized():
    from flask import jsonify
    return jsonify({"error": "Failed to authenticate user"}), 401
