# fleetdesk/services/audit.py
from datetime import date, datetime
from decimal import Decimal

from flask import has_request_context, request

from fleetdesk.db_models import db, AuditLog


def _json_safe(value):
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def snapshot(obj, columns):
    return {c: _json_safe(getattr(obj, c)) for c in columns}


def record_audit(organisation_id, user_id, action, entity_type, entity_id=None,
                 old_values=None, new_values=None):
    """
    Stage an audit row on the current session. The caller commits it together
    with the change it describes.
    """
    ip_address = user_agent = None
    if has_request_context():
        ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.user_agent.string or None) if request.user_agent else None

    entry = AuditLog(
        organisation_id=organisation_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=_json_safe(old_values) if old_values is not None else None,
        new_values=_json_safe(new_values) if new_values is not None else None,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )
    db.session.add(entry)
    return entry
