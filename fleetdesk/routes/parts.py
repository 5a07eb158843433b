# fleetdesk/routes/parts.py
from datetime import date, datetime, time, timezone

from flask import Blueprint, abort, jsonify, request
from sqlalchemy import func, or_

from fleetdesk.db_models import db, isoformat, Part, PartMovement
from fleetdesk.schemas import PartCreate, PartUpdate, StockAdjust, StockReceive
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.csv_export import csv_response, rows_to_csv
from fleetdesk.services.inventory import StockError, is_low_stock, move_stock
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, flush_or_409, get_or_404, paginate, parse_bool_arg
from fleetdesk.utils.validation import parse_body, parse_date_arg

parts_bp = Blueprint('parts', __name__, url_prefix='/api/parts')

AUDIT_COLUMNS = (
    "sku", "name", "description", "category", "unit", "quantity_in_stock", "minimum_stock",
    "reorder_threshold", "reorder_quantity", "unit_cost", "supplier", "location", "is_archived",
)

EXPORT_HEADERS = [
    "SKU", "Name", "Category", "Unit", "Quantity In Stock", "Minimum Stock",
    "Reorder Threshold", "Reorder Quantity", "Unit Cost", "Stock Value", "Supplier", "Location",
]


def serialize_part(part):
    return {
        "id": part.id,
        "sku": part.sku,
        "name": part.name,
        "description": part.description,
        "category": part.category,
        "unit": part.unit,
        "quantity_in_stock": part.quantity_in_stock,
        "minimum_stock": part.minimum_stock,
        "reorder_threshold": part.reorder_threshold,
        "reorder_quantity": part.reorder_quantity,
        "unit_cost": part.unit_cost,
        "supplier": part.supplier,
        "location": part.location,
        "is_low_stock": is_low_stock(part),
        "is_archived": part.is_archived,
        "created_at": isoformat(part.created_at),
        "updated_at": isoformat(part.updated_at),
    }


def _serialize_movement(movement):
    return {
        "id": movement.id,
        "part_id": movement.part_id,
        "work_order_id": movement.work_order_id,
        "movement_type": movement.movement_type,
        "quantity_change": movement.quantity_change,
        "previous_quantity": movement.previous_quantity,
        "new_quantity": movement.new_quantity,
        "unit_cost": movement.unit_cost,
        "notes": movement.notes,
        "user_id": movement.user_id,
        "created_at": isoformat(movement.created_at),
    }


def _filtered_parts(organisation_id):
    query = db.session.query(Part).filter(Part.organisation_id == organisation_id)
    if not parse_bool_arg("include_archived"):
        query = query.filter(Part.is_archived.is_(False))
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Part.sku.ilike(like), Part.name.ilike(like), Part.description.ilike(like)))
    category = request.args.get("category")
    if category:
        query = query.filter(Part.category == category)
    supplier = request.args.get("supplier")
    if supplier:
        query = query.filter(Part.supplier.ilike(f"%{supplier}%"))
    return query.order_by(Part.name)


def _low_stock_filter():
    threshold = func.coalesce(Part.reorder_threshold, Part.minimum_stock)
    return Part.quantity_in_stock <= threshold


# -----------------------------
# Parts
# -----------------------------
@parts_bp.get('')
@require_permission("parts:read")
def list_parts():
    query = _filtered_parts(current_org_id())
    if parse_bool_arg("low_stock"):
        query = query.filter(_low_stock_filter())
    items, meta = paginate(query)
    return jsonify({"data": [serialize_part(p) for p in items], "pagination": meta})


@parts_bp.get('/low-stock')
@require_permission("parts:read")
def low_stock():
    parts = (
        db.session.query(Part)
        .filter(Part.organisation_id == current_org_id(), Part.is_archived.is_(False), _low_stock_filter())
        .order_by(Part.quantity_in_stock, Part.name)
        .all()
    )
    return jsonify({"data": [serialize_part(p) for p in parts], "count": len(parts)})


@parts_bp.get('/export')
@require_permission("parts:read")
def export_parts():
    rows = []
    for p in _filtered_parts(current_org_id()).all():
        value = round(p.quantity_in_stock * p.unit_cost, 2) if p.unit_cost is not None else None
        rows.append([p.sku, p.name, p.category, p.unit, p.quantity_in_stock, p.minimum_stock,
                     p.reorder_threshold, p.reorder_quantity, p.unit_cost, value, p.supplier, p.location])
    return csv_response(rows_to_csv(EXPORT_HEADERS, rows), f"parts_{date.today().isoformat()}.csv")


@parts_bp.post('')
@require_permission("parts:write")
def create_part():
    body = parse_body(PartCreate)
    user = current_user()
    values = body.model_dump()
    initial = values.pop("quantity_in_stock")

    part = Part(organisation_id=user.organisation_id, quantity_in_stock=0, **values)
    db.session.add(part)
    flush_or_409("A part with this SKU already exists")
    record_audit(user.organisation_id, user.id, "create", "part", part.id,
                 new_values=snapshot(part, AUDIT_COLUMNS))
    if initial:
        move_stock(part, initial, "initial", user.id, notes="Initial stock")
    commit_or_500("A part with this SKU already exists")
    return jsonify({"part": serialize_part(part)}), 201


@parts_bp.get('/<int:part_id>')
@require_permission("parts:read")
def get_part(part_id: int):
    part = get_or_404(Part, part_id, current_org_id(), "Part")
    return jsonify({"part": serialize_part(part)})


@parts_bp.put('/<int:part_id>')
@require_permission("parts:write")
def update_part(part_id: int):
    user = current_user()
    part = get_or_404(Part, part_id, user.organisation_id, "Part")
    changes = parse_body(PartUpdate).model_dump(exclude_unset=True)
    for required in ("sku", "name", "unit", "minimum_stock"):
        if required in changes and changes[required] is None:
            abort(400, description=f"{required} cannot be empty")

    old_values = snapshot(part, AUDIT_COLUMNS)
    for key, value in changes.items():
        setattr(part, key, value)
    record_audit(user.organisation_id, user.id, "update", "part", part.id,
                 old_values=old_values, new_values=snapshot(part, AUDIT_COLUMNS))
    commit_or_500("A part with this SKU already exists")
    return jsonify({"part": serialize_part(part)})


@parts_bp.delete('/<int:part_id>')
@require_permission("parts:write")
def archive_part(part_id: int):
    user = current_user()
    part = get_or_404(Part, part_id, user.organisation_id, "Part")
    part.is_archived = True
    record_audit(user.organisation_id, user.id, "archive", "part", part.id,
                 old_values={"is_archived": False}, new_values={"is_archived": True})
    commit_or_500()
    return jsonify({"success": True})


# -----------------------------
# Stock
# -----------------------------
@parts_bp.post('/<int:part_id>/adjust-stock')
@require_permission("parts:write")
def adjust_stock(part_id: int):
    user = current_user()
    part = get_or_404(Part, part_id, user.organisation_id, "Part")
    body = parse_body(StockAdjust)
    try:
        movement = move_stock(part, body.quantity_change, body.usage_type, user.id, notes=body.notes)
    except StockError as e:
        abort(400, description=str(e))
    commit_or_500()
    return jsonify({"part": serialize_part(part), "movement": _serialize_movement(movement)})


@parts_bp.post('/<int:part_id>/receive')
@require_permission("parts:write")
def receive_stock(part_id: int):
    user = current_user()
    part = get_or_404(Part, part_id, user.organisation_id, "Part")
    body = parse_body(StockReceive)
    if body.unit_cost is not None:
        part.unit_cost = body.unit_cost
    try:
        movement = move_stock(part, body.quantity, "receive", user.id, notes=body.notes)
    except StockError as e:
        abort(400, description=str(e))
    commit_or_500()
    return jsonify({"part": serialize_part(part), "movement": _serialize_movement(movement)})


def _movement_page(query):
    movement_type = request.args.get("movement_type")
    if movement_type:
        query = query.filter(PartMovement.movement_type == movement_type)
    work_order_id = request.args.get("work_order_id", type=int)
    if work_order_id:
        query = query.filter(PartMovement.work_order_id == work_order_id)
    date_from = parse_date_arg("date_from")
    if date_from:
        query = query.filter(PartMovement.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    date_to = parse_date_arg("date_to")
    if date_to:
        query = query.filter(PartMovement.created_at <= datetime.combine(date_to, time.max, tzinfo=timezone.utc))

    items, meta = paginate(query.order_by(PartMovement.created_at.desc(), PartMovement.id.desc()), default_per_page=50)
    return jsonify({"data": [_serialize_movement(m) for m in items], "pagination": meta})


@parts_bp.get('/movements')
@require_permission("parts:read")
def list_all_movements():
    query = db.session.query(PartMovement).filter(PartMovement.organisation_id == current_org_id())
    part_id = request.args.get("part_id", type=int)
    if part_id:
        query = query.filter(PartMovement.part_id == part_id)
    return _movement_page(query)


@parts_bp.get('/<int:part_id>/movements')
@require_permission("parts:read")
def list_movements(part_id: int):
    part = get_or_404(Part, part_id, current_org_id(), "Part")
    return _movement_page(db.session.query(PartMovement).filter(PartMovement.part_id == part.id))
