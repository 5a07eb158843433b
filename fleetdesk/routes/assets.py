# fleetdesk/routes/assets.py
from datetime import date

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy import or_

from fleetdesk.db_models import db, isoformat, utcnow, Asset, AssetCategory, LocationRecord
from fleetdesk.routes.geofences import serialize_alert
from fleetdesk.schemas import AssetCreate, AssetUpdate, LocationReport
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.csv_export import csv_response, rows_to_csv
from fleetdesk.services.geofence_alerts import check_geofence_alerts, send_alert_notifications
from fleetdesk.services.numbering import next_sequence_number
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, flush_or_409, get_or_404, paginate, parse_bool_arg
from fleetdesk.utils.validation import parse_body

assets_bp = Blueprint('assets', __name__, url_prefix='/api/assets')

AUDIT_COLUMNS = (
    "asset_number", "vin", "make", "model", "year", "license_plate", "status",
    "category_id", "mileage", "operational_hours", "description", "is_archived",
)

EXPORT_HEADERS = [
    "Asset Number", "VIN", "Make", "Model", "Year", "License Plate", "Status",
    "Category", "Mileage", "Operational Hours", "Created At",
]


def serialize_asset(asset):
    return {
        "id": asset.id,
        "asset_number": asset.asset_number,
        "vin": asset.vin,
        "make": asset.make,
        "model": asset.model,
        "year": asset.year,
        "license_plate": asset.license_plate,
        "status": asset.status,
        "category_id": asset.category_id,
        "category_name": asset.category.name if asset.category else None,
        "mileage": asset.mileage,
        "operational_hours": asset.operational_hours,
        "description": asset.description,
        "is_archived": asset.is_archived,
        "archived_at": isoformat(asset.archived_at),
        "created_at": isoformat(asset.created_at),
        "updated_at": isoformat(asset.updated_at),
    }


def _serialize_location(record):
    return {
        "id": record.id,
        "asset_id": record.asset_id,
        "latitude": record.latitude,
        "longitude": record.longitude,
        "speed": record.speed,
        "heading": record.heading,
        "accuracy": record.accuracy,
        "source": record.source,
        "recorded_at": isoformat(record.recorded_at),
    }


def _filtered_assets(organisation_id):
    query = db.session.query(Asset).filter(Asset.organisation_id == organisation_id)
    if not parse_bool_arg("include_archived"):
        query = query.filter(Asset.is_archived.is_(False))

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Asset.asset_number.ilike(like),
            Asset.vin.ilike(like),
            Asset.make.ilike(like),
            Asset.model.ilike(like),
            Asset.license_plate.ilike(like),
            Asset.description.ilike(like),
        ))

    status = request.args.get("status")
    if status:
        query = query.filter(Asset.status == status)
    category_id = request.args.get("category_id", type=int)
    if category_id:
        query = query.filter(Asset.category_id == category_id)
    make = request.args.get("make")
    if make:
        query = query.filter(Asset.make.ilike(make))
    model = request.args.get("model")
    if model:
        query = query.filter(Asset.model.ilike(model))

    year_min = request.args.get("year_min", type=int)
    if year_min is not None:
        query = query.filter(Asset.year >= year_min)
    year_max = request.args.get("year_max", type=int)
    if year_max is not None:
        query = query.filter(Asset.year <= year_max)
    mileage_min = request.args.get("mileage_min", type=float)
    if mileage_min is not None:
        query = query.filter(Asset.mileage >= mileage_min)
    mileage_max = request.args.get("mileage_max", type=float)
    if mileage_max is not None:
        query = query.filter(Asset.mileage <= mileage_max)

    return query.order_by(Asset.asset_number)


def _check_category(category_id, organisation_id):
    if category_id is not None:
        get_or_404(AssetCategory, category_id, organisation_id, "Category")


# -----------------------------
# CRUD
# -----------------------------
@assets_bp.get('')
@require_permission("assets:read")
def list_assets():
    items, meta = paginate(_filtered_assets(current_org_id()))
    return jsonify({"data": [serialize_asset(a) for a in items], "pagination": meta})


@assets_bp.get('/export')
@require_permission("assets:read")
def export_assets():
    assets = _filtered_assets(current_org_id()).all()
    rows = [
        [a.asset_number, a.vin, a.make, a.model, a.year, a.license_plate, a.status,
         a.category.name if a.category else "", a.mileage, a.operational_hours,
         isoformat(a.created_at)]
        for a in assets
    ]
    filename = f"assets_{date.today().isoformat()}.csv"
    return csv_response(rows_to_csv(EXPORT_HEADERS, rows), filename)


@assets_bp.post('')
@require_permission("assets:write")
def create_asset():
    body = parse_body(AssetCreate)
    user = current_user()
    _check_category(body.category_id, user.organisation_id)

    values = body.model_dump()
    if not values.get("asset_number"):
        values["asset_number"] = next_sequence_number(Asset, Asset.asset_number, user.organisation_id, "FLT")

    asset = Asset(organisation_id=user.organisation_id, **values)
    db.session.add(asset)
    flush_or_409("An asset with this number already exists")
    record_audit(user.organisation_id, user.id, "create", "asset", asset.id,
                 new_values=snapshot(asset, AUDIT_COLUMNS))
    commit_or_500("An asset with this number already exists")
    current_app.logger.info("Created asset %s", asset.asset_number)
    return jsonify({"asset": serialize_asset(asset)}), 201


@assets_bp.get('/<int:asset_id>')
@require_permission("assets:read")
def get_asset(asset_id: int):
    asset = get_or_404(Asset, asset_id, current_org_id(), "Asset")
    return jsonify({"asset": serialize_asset(asset)})


@assets_bp.put('/<int:asset_id>')
@require_permission("assets:write")
def update_asset(asset_id: int):
    user = current_user()
    asset = get_or_404(Asset, asset_id, user.organisation_id, "Asset")
    if asset.is_archived:
        abort(400, description="Archived assets cannot be edited")

    changes = parse_body(AssetUpdate).model_dump(exclude_unset=True)
    if "category_id" in changes:
        _check_category(changes["category_id"], user.organisation_id)
    if "asset_number" in changes and not changes["asset_number"]:
        abort(400, description="asset_number cannot be empty")

    old_values = snapshot(asset, AUDIT_COLUMNS)
    for key, value in changes.items():
        setattr(asset, key, value)
    record_audit(user.organisation_id, user.id, "update", "asset", asset.id,
                 old_values=old_values, new_values=snapshot(asset, AUDIT_COLUMNS))
    commit_or_500("An asset with this number already exists")
    return jsonify({"asset": serialize_asset(asset)})


@assets_bp.delete('/<int:asset_id>')
@require_permission("assets:write")
def archive_asset(asset_id: int):
    user = current_user()
    asset = get_or_404(Asset, asset_id, user.organisation_id, "Asset")
    if asset.is_archived:
        abort(400, description="Asset is already archived")

    asset.is_archived = True
    asset.archived_at = utcnow()
    record_audit(user.organisation_id, user.id, "archive", "asset", asset.id,
                 old_values={"is_archived": False}, new_values={"is_archived": True})
    commit_or_500()
    return jsonify({"success": True, "asset": serialize_asset(asset)})


# -----------------------------
# Location
# -----------------------------
@assets_bp.post('/<int:asset_id>/location')
@require_permission("assets:read")
def report_location(asset_id: int):
    user = current_user()
    asset = get_or_404(Asset, asset_id, user.organisation_id, "Asset")
    body = parse_body(LocationReport)

    record = LocationRecord(
        organisation_id=user.organisation_id,
        asset_id=asset.id,
        latitude=body.latitude,
        longitude=body.longitude,
        speed=body.speed,
        heading=body.heading,
        accuracy=body.accuracy,
        source=body.source or "gps",
        recorded_at=body.recorded_at or utcnow(),
    )
    db.session.add(record)
    alerts = check_geofence_alerts(asset, body.latitude, body.longitude, body.recorded_at)
    commit_or_500()

    # alerts need their ids before they can be delivered
    notified = send_alert_notifications(alerts)
    return jsonify({
        "location": _serialize_location(record),
        "alerts": [serialize_alert(a) for a in alerts],
        "notifications_sent": notified,
    }), 201


@assets_bp.get('/<int:asset_id>/location')
@require_permission("assets:read")
def latest_location(asset_id: int):
    asset = get_or_404(Asset, asset_id, current_org_id(), "Asset")
    record = (
        db.session.query(LocationRecord)
        .filter(LocationRecord.asset_id == asset.id)
        .order_by(LocationRecord.recorded_at.desc(), LocationRecord.id.desc())
        .first()
    )
    if record is None:
        abort(404, description="No location recorded for this asset")
    return jsonify({"location": _serialize_location(record)})
