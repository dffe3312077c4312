# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


ACTOR_HEADER = "X-User-Id"


def require_auth(f):
    """
    Require an authenticated actor.

    Authentication happens upstream (gateway / portal session); the
    authenticated user id arrives in the X-User-Id header. Sets:
    - g.current_user: the active User
    - g.department_id: the user's department (may be None)

    Returns 401 if the header is missing or does not resolve to an active user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, int(raw))
        if not user or not user.is_active:
            return jsonify({"error": "Invalid or inactive user"}), 401

        g.current_user = user
        g.department_id = user.department_id

        return f(*args, **kwargs)

    return decorated_function
