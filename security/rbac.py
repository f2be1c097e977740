from functools import wraps
from flask import g, jsonify

ADMIN = "ADMIN"
DOCTOR = "DOCTOR"

def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return role_name in user.role_names

def is_admin() -> bool:
    return has_role(ADMIN)

def require_roles(*role_names: str):
    """
    Usage: @require_roles("DOCTOR", "ADMIN")
    ADMIN passes every role check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required", code="AUTH_REQUIRED"), 401

            user_roles = user.role_names
            if ADMIN not in user_roles and not user_roles.intersection(set(role_names)):
                return jsonify(error="Forbidden", code="FORBIDDEN"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
