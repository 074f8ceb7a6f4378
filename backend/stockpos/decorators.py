# Overview: Request identity and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


USER_HEADER = "X-User-Id"


def _resolve_user():
    raw = request.headers.get(USER_HEADER, "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or not user.is_active:
        return None
    return user


def require_user(f):
    """
    Require a caller identity and store it on g.current_user.

    Authentication happens upstream; the fronting auth layer forwards the
    authenticated user's id in the X-User-Id header.

    Returns 401 if the header is missing, malformed, or names an unknown or
    inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _resolve_user()
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the caller to hold one of roles. Must run after @require_user.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                return jsonify({"error": "Authentication required"}), 401
            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
