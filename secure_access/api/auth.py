"""
JWT authentication helpers and middleware for the Flask API.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import current_app, g, jsonify, request

from secure_access.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from secure_access.models import AccessContext


def _secret() -> str:
    return current_app.config.get("JWT_SECRET_KEY", SECRET_KEY)


def generate_token(ctx: AccessContext, secret: Optional[str] = None,
                   expires_in: timedelta = timedelta(hours=TOKEN_EXPIRY_HOURS)) -> str:
    """Generate a JWT token for an authenticated user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(ctx.user_id),
        "user_id": ctx.user_id,
        "role": ctx.role,
        "email": ctx.email,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, secret or SECRET_KEY, algorithm="HS256")


def verify_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def _unauthorized(message: str):
    return jsonify({"success": False, "message": message, "error": "UNAUTHORIZED"}), 401


def token_required(f):
    """Decorator that protects endpoints with JWT authentication.

    On success the caller is available as ``g.access``.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return _unauthorized("Access token required")

        parts = auth_header.split(" ")
        if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
            return _unauthorized("Invalid authorization header format")

        payload = verify_token(parts[1], _secret())
        if not payload:
            return _unauthorized("Invalid or expired token")

        role = payload.get("role")
        user_id = payload.get("user_id", payload.get("sub"))
        if not isinstance(role, str) or not role or user_id is None:
            return _unauthorized("Invalid or expired token")

        g.access = AccessContext(user_id=user_id, role=role, email=payload.get("email"))
        return f(*args, **kwargs)

    return decorated
