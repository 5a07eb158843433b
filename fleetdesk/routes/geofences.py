# fleetdesk/routes/geofences.py
from flask import Blueprint, abort, jsonify, request

from fleetdesk.db_models import db, isoformat, utcnow, Geofence, GeofenceAlert, GeofenceAlertSettings
from fleetdesk.schemas import (
    AlertSettingsUpdate, GeofenceCreate, GeofenceUpdate, LocationCheck, check_geofence_shape,
)
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.geofence_alerts import DEFAULT_ALERT_SETTINGS, alert_message
from fleetdesk.services.geofence_utils import bounding_box, is_geofence_active, is_point_in_geofence
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate, parse_bool_arg
from fleetdesk.utils.validation import parse_body, parse_date_arg

geofences_bp = Blueprint('geofences', __name__, url_prefix='/api/geofences')

AUDIT_COLUMNS = (
    "name", "description", "geofence_type", "center_latitude", "center_longitude",
    "radius_meters", "polygon_coordinates", "active_days", "active_start_time",
    "active_end_time", "color", "is_active",
)

SETTINGS_COLUMNS = tuple(DEFAULT_ALERT_SETTINGS) + ("notify_user_ids",)


def _serialize_settings(settings):
    if settings is None:
        return {**DEFAULT_ALERT_SETTINGS, "notify_user_ids": [], "is_default": True}
    return {**snapshot(settings, SETTINGS_COLUMNS), "is_default": False}


def serialize_geofence(geofence, now=None):
    return {
        "id": geofence.id,
        "name": geofence.name,
        "description": geofence.description,
        "geofence_type": geofence.geofence_type,
        "center_latitude": geofence.center_latitude,
        "center_longitude": geofence.center_longitude,
        "radius_meters": geofence.radius_meters,
        "polygon_coordinates": geofence.polygon_coordinates,
        "active_days": geofence.active_days,
        "active_start_time": geofence.active_start_time,
        "active_end_time": geofence.active_end_time,
        "color": geofence.color,
        "is_active": geofence.is_active,
        "is_active_now": is_geofence_active(geofence, now),
        "bounding_box": bounding_box(geofence),
        "alert_settings": _serialize_settings(geofence.alert_settings),
        "created_at": isoformat(geofence.created_at),
        "updated_at": isoformat(geofence.updated_at),
    }


def serialize_alert(alert):
    return {
        "id": alert.id,
        "geofence_id": alert.geofence_id,
        "geofence_name": alert.geofence.name if alert.geofence else None,
        "asset_id": alert.asset_id,
        "asset_number": alert.asset.asset_number if alert.asset else None,
        "alert_type": alert.alert_type,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "message": alert_message(alert)["body"] if alert.geofence and alert.asset else None,
        "is_acknowledged": alert.is_acknowledged,
        "acknowledged_by_id": alert.acknowledged_by_id,
        "acknowledged_at": isoformat(alert.acknowledged_at),
        "created_at": isoformat(alert.created_at),
    }


def _apply_shape(geofence, values):
    for key, value in values.items():
        if key == "polygon_coordinates" and value is not None:
            value = [{"lat": p["lat"], "lng": p["lng"]} for p in value]
        setattr(geofence, key, value)


# -----------------------------
# Geofences
# -----------------------------
@geofences_bp.get('')
@require_permission("geofences:read")
def list_geofences():
    query = db.session.query(Geofence).filter(Geofence.organisation_id == current_org_id())
    if request.args.get("is_active") is not None:
        query = query.filter(Geofence.is_active.is_(parse_bool_arg("is_active")))
    geofence_type = request.args.get("geofence_type")
    if geofence_type:
        query = query.filter(Geofence.geofence_type == geofence_type)
    geofences = query.order_by(Geofence.name).all()
    return jsonify({"data": [serialize_geofence(g) for g in geofences]})


@geofences_bp.post('')
@require_permission("geofences:write")
def create_geofence():
    body = parse_body(GeofenceCreate)
    user = current_user()
    values = body.model_dump()
    if values.get("is_active") is None:
        values["is_active"] = True

    geofence = Geofence(organisation_id=user.organisation_id, created_by_id=user.id)
    _apply_shape(geofence, values)
    db.session.add(geofence)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "geofence", geofence.id,
                 new_values=snapshot(geofence, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"geofence": serialize_geofence(geofence)}), 201


@geofences_bp.get('/<int:geofence_id>')
@require_permission("geofences:read")
def get_geofence(geofence_id: int):
    geofence = get_or_404(Geofence, geofence_id, current_org_id(), "Geofence")
    return jsonify({"geofence": serialize_geofence(geofence)})


@geofences_bp.put('/<int:geofence_id>')
@require_permission("geofences:write")
def update_geofence(geofence_id: int):
    user = current_user()
    geofence = get_or_404(Geofence, geofence_id, user.organisation_id, "Geofence")
    changes = parse_body(GeofenceUpdate).model_dump(exclude_unset=True)
    if "name" in changes and not changes["name"]:
        abort(400, description="name cannot be empty")

    merged = {**snapshot(geofence, AUDIT_COLUMNS), **changes}
    try:
        check_geofence_shape(merged["geofence_type"], merged["center_latitude"],
                             merged["center_longitude"], merged["radius_meters"],
                             merged["polygon_coordinates"] or [])
    except ValueError as e:
        abort(400, description=str(e))
    if bool(merged["active_start_time"]) != bool(merged["active_end_time"]):
        abort(400, description="active_start_time and active_end_time must be set together")

    old_values = snapshot(geofence, AUDIT_COLUMNS)
    _apply_shape(geofence, changes)
    record_audit(user.organisation_id, user.id, "update", "geofence", geofence.id,
                 old_values=old_values, new_values=snapshot(geofence, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"geofence": serialize_geofence(geofence)})


@geofences_bp.delete('/<int:geofence_id>')
@require_permission("geofences:write")
def deactivate_geofence(geofence_id: int):
    user = current_user()
    geofence = get_or_404(Geofence, geofence_id, user.organisation_id, "Geofence")
    geofence.is_active = False
    record_audit(user.organisation_id, user.id, "deactivate", "geofence", geofence.id,
                 old_values={"is_active": True}, new_values={"is_active": False})
    commit_or_500()
    return jsonify({"success": True})


@geofences_bp.post('/check-location')
@require_permission("geofences:read")
def check_location():
    body = parse_body(LocationCheck)
    geofences = (
        db.session.query(Geofence)
        .filter(Geofence.organisation_id == current_org_id(), Geofence.is_active.is_(True))
        .order_by(Geofence.name)
        .all()
    )
    inside = [g for g in geofences if is_point_in_geofence(body.latitude, body.longitude, g)]
    return jsonify({
        "latitude": body.latitude,
        "longitude": body.longitude,
        "geofences": [{"id": g.id, "name": g.name, "is_active_now": is_geofence_active(g)} for g in inside],
    })


# -----------------------------
# Alert settings
# -----------------------------
@geofences_bp.get('/<int:geofence_id>/alert-settings')
@require_permission("geofences:read")
def get_alert_settings(geofence_id: int):
    geofence = get_or_404(Geofence, geofence_id, current_org_id(), "Geofence")
    return jsonify({"alert_settings": _serialize_settings(geofence.alert_settings)})


@geofences_bp.put('/<int:geofence_id>/alert-settings')
@require_permission("geofences:write")
def update_alert_settings(geofence_id: int):
    user = current_user()
    geofence = get_or_404(Geofence, geofence_id, user.organisation_id, "Geofence")
    changes = parse_body(AlertSettingsUpdate).model_dump(exclude_unset=True)

    settings = geofence.alert_settings
    old_values = snapshot(settings, SETTINGS_COLUMNS) if settings else None
    if settings is None:
        settings = GeofenceAlertSettings(**DEFAULT_ALERT_SETTINGS, notify_user_ids=[])
        geofence.alert_settings = settings
    for key, value in changes.items():
        if value is None:
            continue
        setattr(settings, key, list(value) if key == "notify_user_ids" else value)

    record_audit(user.organisation_id, user.id, "update_alert_settings", "geofence", geofence.id,
                 old_values=old_values, new_values=snapshot(settings, SETTINGS_COLUMNS))
    commit_or_500()
    return jsonify({"alert_settings": _serialize_settings(settings)})


# -----------------------------
# Alerts
# -----------------------------
@geofences_bp.get('/alerts')
@require_permission("geofences:read")
def list_alerts():
    query = db.session.query(GeofenceAlert).filter(GeofenceAlert.organisation_id == current_org_id())
    geofence_id = request.args.get("geofence_id", type=int)
    if geofence_id:
        query = query.filter(GeofenceAlert.geofence_id == geofence_id)
    asset_id = request.args.get("asset_id", type=int)
    if asset_id:
        query = query.filter(GeofenceAlert.asset_id == asset_id)
    alert_type = request.args.get("alert_type")
    if alert_type:
        query = query.filter(GeofenceAlert.alert_type == alert_type)
    if request.args.get("acknowledged") is not None:
        query = query.filter(GeofenceAlert.is_acknowledged.is_(parse_bool_arg("acknowledged")))
    date_from = parse_date_arg("date_from")
    if date_from:
        query = query.filter(GeofenceAlert.created_at >= date_from)

    items, meta = paginate(query.order_by(GeofenceAlert.created_at.desc(), GeofenceAlert.id.desc()))
    return jsonify({"data": [serialize_alert(a) for a in items], "pagination": meta})


@geofences_bp.post('/alerts/<int:alert_id>/acknowledge')
@require_permission("geofences:read")
def acknowledge_alert(alert_id: int):
    user = current_user()
    alert = get_or_404(GeofenceAlert, alert_id, user.organisation_id, "Alert")
    if alert.is_acknowledged:
        abort(400, description="Alert is already acknowledged")
    alert.is_acknowledged = True
    alert.acknowledged_by_id = user.id
    alert.acknowledged_at = utcnow()
    record_audit(user.organisation_id, user.id, "acknowledge", "geofence_alert", alert.id)
    commit_or_500()
    return jsonify({"alert": serialize_alert(alert)})
