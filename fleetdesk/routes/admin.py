# fleetdesk/routes/admin.py
from datetime import datetime, time, timezone

from flask import Blueprint, abort, jsonify, request
from sqlalchemy import func

from fleetdesk.db_models import db, AuditLog, User
from fleetdesk.routes.auth import serialize_user
from fleetdesk.schemas import UserCreate, UserUpdate
from fleetdesk.services.audit import record_audit
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate
from fleetdesk.utils.validation import parse_body, parse_date_arg

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _serialize_audit(entry):
    return {
        "id": entry.id,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "user_id": entry.user_id,
        "user_name": entry.user.name if entry.user else None,
        "old_values": entry.old_values,
        "new_values": entry.new_values,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


# -----------------------------
# Audit log
# -----------------------------
@admin_bp.get('/audit-log')
@require_permission("audit:read")
def list_audit_log():
    query = db.session.query(AuditLog).filter(AuditLog.organisation_id == current_org_id())

    entity_type = request.args.get("entity_type")
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    entity_id = request.args.get("entity_id", type=int)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    action = request.args.get("action")
    if action:
        query = query.filter(AuditLog.action == action)
    user_id = request.args.get("user_id", type=int)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)

    date_from = parse_date_arg("date_from")
    if date_from:
        query = query.filter(AuditLog.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    date_to = parse_date_arg("date_to")
    if date_to:
        query = query.filter(AuditLog.created_at <= datetime.combine(date_to, time.max, tzinfo=timezone.utc))

    items, meta = paginate(query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()), default_per_page=50)
    return jsonify({"data": [_serialize_audit(e) for e in items], "pagination": meta})


# -----------------------------
# Users
# -----------------------------
@admin_bp.get('/users')
@require_permission("users:read")
def list_users():
    users = (
        db.session.query(User)
        .filter(User.organisation_id == current_org_id())
        .order_by(User.name)
        .all()
    )
    return jsonify({"data": [serialize_user(u) for u in users]})


@admin_bp.post('/users')
@require_permission("users:write")
def create_user():
    body = parse_body(UserCreate)
    exists = db.session.query(User.id).filter(func.lower(User.email) == body.email.lower()).first()
    if exists:
        abort(409, description="A user with this email already exists")

    actor = current_user()
    user = User(
        organisation_id=actor.organisation_id,
        email=body.email.lower(),
        name=body.name,
        role=body.role,
    )
    user.set_password(body.password)
    db.session.add(user)
    db.session.flush()
    record_audit(actor.organisation_id, actor.id, "create", "user", user.id,
                 new_values={"email": user.email, "role": user.role})
    commit_or_500("A user with this email already exists")
    return jsonify({"user": serialize_user(user)}), 201


@admin_bp.put('/users/<int:user_id>')
@require_permission("users:write")
def update_user(user_id: int):
    user = get_or_404(User, user_id, current_org_id(), "User")
    body = parse_body(UserUpdate)
    changes = body.model_dump(exclude_unset=True)
    actor = current_user()

    if user.id == actor.id and (changes.get("is_active") is False or changes.get("role") not in (None, actor.role)):
        abort(400, description="You cannot deactivate or change the role of your own account")

    old_values = {"name": user.name, "role": user.role, "is_active": user.is_active}
    password = changes.pop("password", None)
    for key, value in changes.items():
        if value is not None:
            setattr(user, key, value)
    if password:
        user.set_password(password)
        user.failed_login_attempts = 0
        user.locked_until = None

    record_audit(actor.organisation_id, actor.id, "update", "user", user.id,
                 old_values=old_values,
                 new_values={"name": user.name, "role": user.role, "is_active": user.is_active,
                             "password_changed": bool(password)})
    commit_or_500()
    return jsonify({"user": serialize_user(user)})
