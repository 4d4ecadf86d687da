"""Bearer token helpers shared by the blueprints."""
from __future__ import annotations

from functools import wraps

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .extensions import db
from .models import User

TOKEN_SALT = "auth-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(user: User) -> str:
    return _serializer().dumps({"user_id": user.user_id, "role": user.role})


def get_jwt_identity() -> int | None:
    """Extract and validate user_id from the Authorization header token.

    Returns the user_id if the token is valid, None if missing, malformed or
    expired.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]

    try:
        payload = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except SignatureExpired:
        current_app.logger.info("Rejected expired auth token")
        return None
    except BadSignature:
        current_app.logger.warning("Rejected auth token with bad signature")
        return None

    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    return int(user_id) if user_id is not None else None


def get_current_user() -> User | None:
    user_id = get_jwt_identity()
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def login_required(*roles: str):
    """Require a valid token; optionally restrict to the given roles.

    The authenticated user is stored on ``g.current_user``.
    """

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            user = get_current_user()
            if user is None:
                return (
                    jsonify({"error": "unauthorized", "message": "Authentication required. Please log in to continue."}),
                    401,
                )
            if roles and user.role not in roles:
                return (
                    jsonify({"error": "forbidden", "message": f"requires role: {', '.join(roles)}"}),
                    403,
                )
            g.current_user = user
            return view(*args, **kwargs)

        return wrapped

    return decorator
