# fleetdesk/routes/work_orders.py
from datetime import date

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy import or_

from fleetdesk.db_models import (
    db, isoformat, utcnow,
    Asset, Part, TaskTemplate, User, WorkOrder, WorkOrderChecklistItem, WorkOrderPart,
)
from fleetdesk.schemas import ChecklistItemUpdate, StatusChange, WorkOrderCreate, WorkOrderPartAdd, WorkOrderUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.inventory import StockError, move_stock
from fleetdesk.services.work_orders import AUDIT_COLUMNS, InvalidTransition, change_status, create_work_order
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate, parse_bool_arg
from fleetdesk.utils.validation import parse_body

work_orders_bp = Blueprint('work_orders', __name__, url_prefix='/api/work-orders')

LOCKED_STATUSES = ("completed", "closed")


# -----------------------------
# Serialization
# -----------------------------
def serialize_work_order(wo):
    return {
        "id": wo.id,
        "work_order_number": wo.work_order_number,
        "asset_id": wo.asset_id,
        "asset_number": wo.asset.asset_number if wo.asset else None,
        "template_id": wo.template_id,
        "title": wo.title,
        "description": wo.description,
        "priority": wo.priority,
        "status": wo.status,
        "source": wo.source,
        "assigned_to_id": wo.assigned_to_id,
        "assigned_to_name": wo.assigned_to.name if wo.assigned_to else None,
        "created_by_id": wo.created_by_id,
        "due_date": isoformat(wo.due_date),
        "started_at": isoformat(wo.started_at),
        "completed_at": isoformat(wo.completed_at),
        "closed_at": isoformat(wo.closed_at),
        "completion_notes": wo.completion_notes,
        "estimated_hours": wo.estimated_hours,
        "actual_hours": wo.actual_hours,
        "created_at": isoformat(wo.created_at),
        "updated_at": isoformat(wo.updated_at),
    }


def _serialize_checklist_item(item):
    return {
        "id": item.id,
        "title": item.title,
        "description": item.description,
        "is_required": item.is_required,
        "position": item.position,
        "is_completed": item.is_completed,
        "completed_at": isoformat(item.completed_at),
        "completed_by_id": item.completed_by_id,
        "notes": item.notes,
    }


def _serialize_history(entry):
    return {
        "from_status": entry.from_status,
        "to_status": entry.to_status,
        "changed_by_id": entry.changed_by_id,
        "notes": entry.notes,
        "changed_at": isoformat(entry.changed_at),
    }


def _serialize_part_line(line):
    return {
        "id": line.id,
        "part_id": line.part_id,
        "sku": line.part.sku if line.part else None,
        "name": line.part.name if line.part else None,
        "quantity": line.quantity,
        "unit_cost": line.unit_cost,
        "total_cost": round(line.quantity * line.unit_cost, 2) if line.unit_cost is not None else None,
        "added_by_id": line.added_by_id,
        "created_at": isoformat(line.created_at),
    }


def _serialize_detail(wo):
    data = serialize_work_order(wo)
    data["checklist_items"] = [_serialize_checklist_item(i) for i in wo.checklist_items]
    data["status_history"] = [_serialize_history(h) for h in wo.status_history]
    data["parts"] = [_serialize_part_line(p) for p in wo.parts]
    return data


def _check_assignee(user_id, organisation_id):
    if user_id is not None:
        get_or_404(User, user_id, organisation_id, "Assignee")


# -----------------------------
# Work orders
# -----------------------------
@work_orders_bp.get('')
@require_permission("work_orders:read")
def list_work_orders():
    query = db.session.query(WorkOrder).filter(WorkOrder.organisation_id == current_org_id())

    statuses = [s for s in request.args.getlist("status") if s]
    if statuses:
        query = query.filter(WorkOrder.status.in_(statuses))
    priority = request.args.get("priority")
    if priority:
        query = query.filter(WorkOrder.priority == priority)
    asset_id = request.args.get("asset_id", type=int)
    if asset_id:
        query = query.filter(WorkOrder.asset_id == asset_id)
    assigned_to_id = request.args.get("assigned_to_id", type=int)
    if assigned_to_id:
        query = query.filter(WorkOrder.assigned_to_id == assigned_to_id)
    source = request.args.get("source")
    if source:
        query = query.filter(WorkOrder.source == source)
    if parse_bool_arg("overdue"):
        query = query.filter(
            WorkOrder.due_date < date.today(),
            WorkOrder.status.notin_(LOCKED_STATUSES),
        )
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            WorkOrder.work_order_number.ilike(like),
            WorkOrder.title.ilike(like),
            WorkOrder.description.ilike(like),
        ))

    items, meta = paginate(query.order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()))
    return jsonify({"data": [serialize_work_order(w) for w in items], "pagination": meta})


@work_orders_bp.post('')
@require_permission("work_orders:write")
def create():
    body = parse_body(WorkOrderCreate)
    user = current_user()
    asset = get_or_404(Asset, body.asset_id, user.organisation_id, "Asset")
    if asset.is_archived:
        abort(400, description="Cannot create work orders for archived assets")
    template = None
    if body.template_id is not None:
        template = get_or_404(TaskTemplate, body.template_id, user.organisation_id, "Task template")
    _check_assignee(body.assigned_to_id, user.organisation_id)

    work_order = create_work_order(
        user.organisation_id,
        asset.id,
        body.title,
        user_id=user.id,
        description=body.description,
        priority=body.priority,
        status=body.status,
        template=template,
        assigned_to_id=body.assigned_to_id,
        due_date=body.due_date,
        estimated_hours=body.estimated_hours,
    )
    commit_or_500("Work order number already in use, please retry")
    current_app.logger.info("Created work order %s", work_order.work_order_number)
    return jsonify({"work_order": _serialize_detail(work_order)}), 201


@work_orders_bp.get('/<int:work_order_id>')
@require_permission("work_orders:read")
def get_work_order(work_order_id: int):
    work_order = get_or_404(WorkOrder, work_order_id, current_org_id(), "Work order")
    return jsonify({"work_order": _serialize_detail(work_order)})


@work_orders_bp.put('/<int:work_order_id>')
@require_permission("work_orders:write")
def update_work_order(work_order_id: int):
    user = current_user()
    work_order = get_or_404(WorkOrder, work_order_id, user.organisation_id, "Work order")
    if work_order.status == "closed":
        abort(400, description="Closed work orders cannot be edited")

    changes = parse_body(WorkOrderUpdate).model_dump(exclude_unset=True)
    if "assigned_to_id" in changes:
        _check_assignee(changes["assigned_to_id"], user.organisation_id)
    if "title" in changes and not changes["title"]:
        abort(400, description="title cannot be empty")
    if "priority" in changes and changes["priority"] is None:
        changes.pop("priority")

    old_values = snapshot(work_order, AUDIT_COLUMNS)
    for key, value in changes.items():
        setattr(work_order, key, value)
    record_audit(user.organisation_id, user.id, "update", "work_order", work_order.id,
                 old_values=old_values, new_values=snapshot(work_order, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"work_order": _serialize_detail(work_order)})


@work_orders_bp.post('/<int:work_order_id>/status')
@require_permission("work_orders:write")
def update_status(work_order_id: int):
    user = current_user()
    work_order = get_or_404(WorkOrder, work_order_id, user.organisation_id, "Work order")
    body = parse_body(StatusChange)
    try:
        change_status(work_order, body.status, user.id, body.notes)
    except InvalidTransition as e:
        abort(400, description=str(e))
    commit_or_500()
    return jsonify({"work_order": _serialize_detail(work_order)})


# -----------------------------
# Checklist / parts
# -----------------------------
@work_orders_bp.put('/<int:work_order_id>/checklist/<int:item_id>')
@require_permission("work_orders:write")
def update_checklist_item(work_order_id: int, item_id: int):
    user = current_user()
    work_order = get_or_404(WorkOrder, work_order_id, user.organisation_id, "Work order")
    if work_order.status in LOCKED_STATUSES:
        abort(400, description=f"Cannot change the checklist of a {work_order.status} work order")

    item = (
        db.session.query(WorkOrderChecklistItem)
        .filter(WorkOrderChecklistItem.id == item_id, WorkOrderChecklistItem.work_order_id == work_order.id)
        .first()
    )
    if item is None:
        abort(404, description="Checklist item not found")

    body = parse_body(ChecklistItemUpdate)
    was_completed = item.is_completed
    item.is_completed = body.is_completed
    item.completed_at = utcnow() if body.is_completed else None
    item.completed_by_id = user.id if body.is_completed else None
    if body.notes is not None:
        item.notes = body.notes
    record_audit(user.organisation_id, user.id, "checklist_update", "work_order", work_order.id,
                 old_values={"item_id": item.id, "is_completed": was_completed},
                 new_values={"item_id": item.id, "is_completed": item.is_completed})
    commit_or_500()
    return jsonify({"item": _serialize_checklist_item(item)})


@work_orders_bp.post('/<int:work_order_id>/parts')
@require_permission("work_orders:write")
def add_part(work_order_id: int):
    user = current_user()
    work_order = get_or_404(WorkOrder, work_order_id, user.organisation_id, "Work order")
    if work_order.status in LOCKED_STATUSES:
        abort(400, description=f"Cannot add parts to a {work_order.status} work order")
    body = parse_body(WorkOrderPartAdd)
    part = get_or_404(Part, body.part_id, user.organisation_id, "Part")
    if part.is_archived:
        abort(400, description="Part is archived")

    try:
        move_stock(part, -body.quantity, "work_order", user.id,
                   notes=body.notes or f"Used on {work_order.work_order_number}",
                   work_order_id=work_order.id)
    except StockError as e:
        abort(400, description=str(e))

    line = WorkOrderPart(part_id=part.id, quantity=body.quantity, unit_cost=part.unit_cost, added_by_id=user.id)
    line.part = part
    work_order.parts.append(line)
    commit_or_500()
    return jsonify({"part": _serialize_part_line(line), "quantity_in_stock": part.quantity_in_stock}), 201
