# Overview: Request actor and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User
from .validation import parse_int
from .errors import ValidationError


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting staff member for the request.

    Authentication happens in front of this service (reverse proxy / auth
    gateway), which forwards the user id in the X-User-Id header. Sets:
    - g.current_user: the active User row

    Returns 401 if the header is missing or malformed, the user does not
    exist, or the account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)
        if not raw:
            return jsonify({"status": "fail", "message": "Authentication required"}), 401

        try:
            user_id = parse_int(raw, ACTOR_HEADER)
        except ValidationError:
            return jsonify({"status": "fail", "message": "Invalid user id"}), 401

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return jsonify({"status": "fail", "message": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require g.current_user to hold one of the given roles. Use after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"status": "fail", "message": "Authentication required"}), 401
            if user.role not in roles:
                return jsonify({
                    "status": "fail",
                    "message": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
