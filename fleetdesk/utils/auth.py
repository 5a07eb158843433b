# fleetdesk/utils/auth.py
from functools import wraps

from flask import abort, session

from fleetdesk.db_models import db, User

ROLES = ("admin", "manager", "technician", "operator")

ROLE_PERMISSIONS = {
    "admin": {"*"},
    "manager": {
        "assets:read", "assets:write",
        "work_orders:read", "work_orders:write",
        "parts:read", "parts:write",
        "maintenance:read", "maintenance:write",
        "inspections:read", "inspections:write",
        "forms:read", "forms:write", "forms:submit", "forms:review",
        "geofences:read", "geofences:write",
        "fuel:read", "fuel:write",
        "documents:read", "documents:write",
        "diagnostics:read", "diagnostics:write",
        "audit:read",
    },
    "technician": {
        "assets:read",
        "work_orders:read", "work_orders:write",
        "parts:read", "parts:write",
        "maintenance:read",
        "inspections:read", "inspections:write",
        "forms:read", "forms:submit",
        "geofences:read",
        "fuel:read", "fuel:write",
        "documents:read",
        "diagnostics:read", "diagnostics:write",
    },
    "operator": {
        "assets:read",
        "work_orders:read",
        "inspections:read", "inspections:write",
        "forms:read", "forms:submit",
        "fuel:read", "fuel:write",
        "documents:read",
    },
}


def has_permission(user, permission):
    granted = ROLE_PERMISSIONS.get(user.role, set())
    return "*" in granted or permission in granted


def current_user():
    user_id = session.get("user_id")
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def current_org_id():
    return current_user().organisation_id


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if current_user() is None:
            abort(401, description="Authentication required")
        return view(*args, **kwargs)
    return wrapped


def require_permission(permission):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            user = current_user()
            if user is None:
                abort(401, description="Authentication required")
            if not has_permission(user, permission):
                abort(403, description=f"Missing permission: {permission}")
            return view(*args, **kwargs)
        return wrapped
    return decorator
