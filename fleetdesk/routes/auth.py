# fleetdesk/routes/auth.py
from datetime import timedelta

from flask import Blueprint, abort, current_app, jsonify, session
from sqlalchemy import func

from fleetdesk.db_models import db, isoformat, utcnow, User
from fleetdesk.schemas import LoginRequest
from fleetdesk.services.audit import record_audit
from fleetdesk.utils.auth import ROLE_PERMISSIONS, current_user, login_required
from fleetdesk.utils.db import commit_or_500
from fleetdesk.utils.validation import parse_body

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def serialize_user(user):
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "organisation_id": user.organisation_id,
        "is_active": user.is_active,
        "last_login_at": isoformat(user.last_login_at),
    }


@auth_bp.post('/login')
def login():
    body = parse_body(LoginRequest)
    user = db.session.query(User).filter(func.lower(User.email) == body.email.lower()).first()
    if user is None or not user.is_active:
        abort(401, description="Invalid email or password")

    now = utcnow()
    if user.is_locked(now):
        abort(423, description="Account is locked. Try again later.")

    if not user.check_password(body.password):
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        if user.failed_login_attempts >= current_app.config["MAX_FAILED_LOGIN_ATTEMPTS"]:
            user.locked_until = now + timedelta(minutes=current_app.config["LOCKOUT_MINUTES"])
            user.failed_login_attempts = 0
            current_app.logger.warning("Locked account %s after repeated failed logins", user.email)
        commit_or_500()
        abort(401, description="Invalid email or password")

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    record_audit(user.organisation_id, user.id, "login", "user", user.id)
    commit_or_500()

    session.clear()
    session['user_id'] = user.id
    session['organisation_id'] = user.organisation_id
    current_app.logger.info("User %s logged in", user.email)
    return jsonify({"user": serialize_user(user)})


@auth_bp.post('/logout')
def logout():
    session.clear()
    return jsonify({"success": True})


@auth_bp.get('/me')
@login_required
def me():
    user = current_user()
    permissions = sorted(ROLE_PERMISSIONS.get(user.role, set()))
    return jsonify({"user": serialize_user(user), "permissions": permissions})
