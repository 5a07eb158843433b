# fleetdesk/routes/fuel.py
from flask import Blueprint, abort, jsonify, request
from sqlalchemy import func

from fleetdesk.db_models import db, isoformat, Asset, FuelTransaction
from fleetdesk.schemas import FuelCreate, FuelUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate
from fleetdesk.utils.validation import parse_body, parse_date_arg

fuel_bp = Blueprint('fuel', __name__, url_prefix='/api/fuel')

AUDIT_COLUMNS = (
    "asset_id", "fuel_type", "quantity", "unit_cost", "total_cost", "odometer",
    "engine_hours", "vendor", "location", "notes", "transaction_date",
)


def _serialize_transaction(tx):
    return {
        "id": tx.id,
        **snapshot(tx, AUDIT_COLUMNS),
        "asset_number": tx.asset.asset_number if tx.asset else None,
        "recorded_by_id": tx.recorded_by_id,
        "created_at": isoformat(tx.created_at),
    }


def _fill_costs(tx):
    if tx.total_cost is None and tx.unit_cost is not None:
        tx.total_cost = round(tx.quantity * tx.unit_cost, 2)
    elif tx.unit_cost is None and tx.total_cost is not None and tx.quantity:
        tx.unit_cost = round(tx.total_cost / tx.quantity, 4)


def _bump_asset_readings(asset, odometer, engine_hours):
    """Readings only ever move the asset forward."""
    if odometer is not None and (asset.mileage is None or odometer > asset.mileage):
        asset.mileage = odometer
    if engine_hours is not None and (asset.operational_hours is None or engine_hours > asset.operational_hours):
        asset.operational_hours = engine_hours


def _date_filtered(query):
    date_from = parse_date_arg("date_from")
    if date_from:
        query = query.filter(FuelTransaction.transaction_date >= date_from)
    date_to = parse_date_arg("date_to")
    if date_to:
        query = query.filter(FuelTransaction.transaction_date <= date_to)
    return query


def consumption_history(transactions):
    """
    Litres per 100 km between successive odometer readings. The fill at the
    later reading is the fuel burned over that distance.
    """
    rows = []
    previous = None
    total_litres = total_distance = 0.0
    for tx in transactions:
        entry = _serialize_transaction(tx)
        entry["distance"] = None
        entry["liters_per_100km"] = None
        if tx.odometer is not None:
            if previous is not None and tx.odometer > previous:
                distance = tx.odometer - previous
                entry["distance"] = round(distance, 1)
                entry["liters_per_100km"] = round(tx.quantity / distance * 100, 2)
                total_litres += tx.quantity
                total_distance += distance
            previous = tx.odometer
        rows.append(entry)
    average = round(total_litres / total_distance * 100, 2) if total_distance else None
    return rows, average


@fuel_bp.get('')
@require_permission("fuel:read")
def list_transactions():
    query = db.session.query(FuelTransaction).filter(FuelTransaction.organisation_id == current_org_id())
    asset_id = request.args.get("asset_id", type=int)
    if asset_id:
        query = query.filter(FuelTransaction.asset_id == asset_id)
    fuel_type = request.args.get("fuel_type")
    if fuel_type:
        query = query.filter(FuelTransaction.fuel_type == fuel_type)
    query = _date_filtered(query)
    items, meta = paginate(query.order_by(FuelTransaction.transaction_date.desc(), FuelTransaction.id.desc()))
    return jsonify({"data": [_serialize_transaction(t) for t in items], "pagination": meta})


@fuel_bp.post('')
@require_permission("fuel:write")
def create_transaction():
    body = parse_body(FuelCreate)
    user = current_user()
    asset = get_or_404(Asset, body.asset_id, user.organisation_id, "Asset")
    if asset.is_archived:
        abort(400, description="Cannot record fuel for an archived asset")

    tx = FuelTransaction(organisation_id=user.organisation_id, recorded_by_id=user.id, **body.model_dump())
    _fill_costs(tx)
    _bump_asset_readings(asset, body.odometer, body.engine_hours)
    db.session.add(tx)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "fuel_transaction", tx.id,
                 new_values=snapshot(tx, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"transaction": _serialize_transaction(tx)}), 201


@fuel_bp.get('/summary')
@require_permission("fuel:read")
def summary():
    organisation_id = current_org_id()

    def grouped(column):
        query = (
            db.session.query(
                column,
                func.count(FuelTransaction.id),
                func.sum(FuelTransaction.quantity),
                func.sum(FuelTransaction.total_cost),
            )
            .filter(FuelTransaction.organisation_id == organisation_id)
        )
        return _date_filtered(query).group_by(column).all()

    by_type = [
        {"fuel_type": fuel_type, "transactions": count,
         "total_quantity": round(qty or 0, 2), "total_cost": round(cost or 0, 2)}
        for fuel_type, count, qty, cost in grouped(FuelTransaction.fuel_type)
    ]
    asset_numbers = dict(
        db.session.query(Asset.id, Asset.asset_number).filter(Asset.organisation_id == organisation_id).all()
    )
    by_asset = [
        {"asset_id": asset_id, "asset_number": asset_numbers.get(asset_id), "transactions": count,
         "total_quantity": round(qty or 0, 2), "total_cost": round(cost or 0, 2)}
        for asset_id, count, qty, cost in grouped(FuelTransaction.asset_id)
    ]
    by_asset.sort(key=lambda row: row["total_cost"], reverse=True)
    return jsonify({
        "total_transactions": sum(r["transactions"] for r in by_type),
        "total_quantity": round(sum(r["total_quantity"] for r in by_type), 2),
        "total_cost": round(sum(r["total_cost"] for r in by_type), 2),
        "by_fuel_type": by_type,
        "by_asset": by_asset,
    })


@fuel_bp.get('/assets/<int:asset_id>/history')
@require_permission("fuel:read")
def asset_history(asset_id: int):
    asset = get_or_404(Asset, asset_id, current_org_id(), "Asset")
    transactions = _date_filtered(
        db.session.query(FuelTransaction).filter(FuelTransaction.asset_id == asset.id)
    ).order_by(FuelTransaction.transaction_date, FuelTransaction.odometer, FuelTransaction.id).all()
    rows, average = consumption_history(transactions)
    return jsonify({"asset_id": asset.id, "data": rows, "average_liters_per_100km": average})


@fuel_bp.get('/<int:transaction_id>')
@require_permission("fuel:read")
def get_transaction(transaction_id: int):
    tx = get_or_404(FuelTransaction, transaction_id, current_org_id(), "Fuel transaction")
    return jsonify({"transaction": _serialize_transaction(tx)})


@fuel_bp.put('/<int:transaction_id>')
@require_permission("fuel:write")
def update_transaction(transaction_id: int):
    user = current_user()
    tx = get_or_404(FuelTransaction, transaction_id, user.organisation_id, "Fuel transaction")
    changes = parse_body(FuelUpdate).model_dump(exclude_unset=True)
    for required in ("fuel_type", "quantity", "transaction_date"):
        if required in changes and changes[required] is None:
            changes.pop(required)

    old_values = snapshot(tx, AUDIT_COLUMNS)
    for key, value in changes.items():
        setattr(tx, key, value)
    if "quantity" in changes or "unit_cost" in changes:
        if "total_cost" not in changes and tx.unit_cost is not None:
            tx.total_cost = None
        _fill_costs(tx)
    _bump_asset_readings(tx.asset, tx.odometer, tx.engine_hours)
    record_audit(user.organisation_id, user.id, "update", "fuel_transaction", tx.id,
                 old_values=old_values, new_values=snapshot(tx, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"transaction": _serialize_transaction(tx)})


@fuel_bp.delete('/<int:transaction_id>')
@require_permission("fuel:write")
def delete_transaction(transaction_id: int):
    user = current_user()
    tx = get_or_404(FuelTransaction, transaction_id, user.organisation_id, "Fuel transaction")
    record_audit(user.organisation_id, user.id, "delete", "fuel_transaction", tx.id,
                 old_values=snapshot(tx, AUDIT_COLUMNS))
    db.session.delete(tx)
    commit_or_500()
    return jsonify({"success": True})
