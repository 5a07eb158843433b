# fleetdesk/routes/maintenance.py
from datetime import date

from flask import Blueprint, abort, current_app, jsonify, request

from fleetdesk.db_models import (
    db, isoformat,
    Asset, AssetCategory, MaintenanceSchedule, MaintenanceScheduleWorkOrder, TaskTemplate, User, WorkOrder,
)
from fleetdesk.schemas import ScheduleCreate, SchedulePreview, ScheduleUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.schedule_calculator import preview_occurrences
from fleetdesk.services.work_order_generator import (
    generate_for_schedule, generate_scheduled_work_orders, summarize,
)
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate, parse_bool_arg
from fleetdesk.utils.validation import parse_body

maintenance_bp = Blueprint('maintenance', __name__, url_prefix='/api/maintenance-schedules')

AUDIT_COLUMNS = (
    "name", "description", "asset_id", "category_id", "template_id", "schedule_type",
    "interval_type", "interval_value", "day_of_week", "day_of_month", "month_of_year",
    "start_date", "end_date", "next_due_date", "lead_time_days", "mileage_interval",
    "hours_interval", "default_priority", "assigned_to_id", "is_active", "is_archived",
)


def serialize_schedule(schedule):
    data = snapshot(schedule, AUDIT_COLUMNS)
    data.update({
        "id": schedule.id,
        "template_name": schedule.template.name if schedule.template else None,
        "last_generated_at": isoformat(schedule.last_generated_at),
        "created_at": isoformat(schedule.created_at),
        "updated_at": isoformat(schedule.updated_at),
    })
    return data


def _serialize_generation(row, work_order):
    return {
        "id": row.id,
        "asset_id": row.asset_id,
        "work_order_id": row.work_order_id,
        "work_order_number": work_order.work_order_number if work_order else None,
        "work_order_status": work_order.status if work_order else None,
        "scheduled_date": isoformat(row.scheduled_date),
        "trigger": row.trigger,
        "mileage_at_generation": row.mileage_at_generation,
        "hours_at_generation": row.hours_at_generation,
        "created_at": isoformat(row.created_at),
    }


def _check_references(values, organisation_id):
    if values.get("asset_id") is not None:
        get_or_404(Asset, values["asset_id"], organisation_id, "Asset")
    if values.get("category_id") is not None:
        get_or_404(AssetCategory, values["category_id"], organisation_id, "Category")
    if values.get("template_id") is not None:
        get_or_404(TaskTemplate, values["template_id"], organisation_id, "Task template")
    if values.get("assigned_to_id") is not None:
        get_or_404(User, values["assigned_to_id"], organisation_id, "Assignee")


@maintenance_bp.get('')
@require_permission("maintenance:read")
def list_schedules():
    query = db.session.query(MaintenanceSchedule).filter(MaintenanceSchedule.organisation_id == current_org_id())
    if not parse_bool_arg("include_archived"):
        query = query.filter(MaintenanceSchedule.is_archived.is_(False))
    if request.args.get("is_active") is not None:
        query = query.filter(MaintenanceSchedule.is_active.is_(parse_bool_arg("is_active")))
    asset_id = request.args.get("asset_id", type=int)
    if asset_id:
        query = query.filter(MaintenanceSchedule.asset_id == asset_id)
    category_id = request.args.get("category_id", type=int)
    if category_id:
        query = query.filter(MaintenanceSchedule.category_id == category_id)
    schedule_type = request.args.get("schedule_type")
    if schedule_type:
        query = query.filter(MaintenanceSchedule.schedule_type == schedule_type)

    items, meta = paginate(query.order_by(MaintenanceSchedule.next_due_date, MaintenanceSchedule.name))
    return jsonify({"data": [serialize_schedule(s) for s in items], "pagination": meta})


@maintenance_bp.post('')
@require_permission("maintenance:write")
def create_schedule():
    body = parse_body(ScheduleCreate)
    user = current_user()
    values = body.model_dump()
    _check_references(values, user.organisation_id)

    schedule = MaintenanceSchedule(organisation_id=user.organisation_id, created_by_id=user.id, **values)
    # the first occurrence is the start date itself
    schedule.next_due_date = body.start_date if body.schedule_type != "usage_based" else None
    db.session.add(schedule)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "maintenance_schedule", schedule.id,
                 new_values=snapshot(schedule, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"schedule": serialize_schedule(schedule)}), 201


@maintenance_bp.post('/preview')
@require_permission("maintenance:read")
def preview():
    body = parse_body(SchedulePreview)
    occurrences = preview_occurrences(
        body.interval_type,
        body.interval_value,
        body.start_date,
        lead_time_days=body.lead_time_days,
        end_date=body.end_date,
        day_of_week=body.day_of_week,
        day_of_month=body.day_of_month,
        month_of_year=body.month_of_year,
        count=body.count,
    )
    return jsonify({"occurrences": [o.to_dict() for o in occurrences]})


@maintenance_bp.post('/generate')
@require_permission("maintenance:write")
def generate_all():
    results = generate_scheduled_work_orders(organisation_id=current_org_id())
    summary = summarize(results)
    current_app.logger.info("Schedule generation: %s", summary)
    return jsonify({"summary": summary, "results": [r.to_dict() for r in results]})


@maintenance_bp.get('/<int:schedule_id>')
@require_permission("maintenance:read")
def get_schedule(schedule_id: int):
    schedule = get_or_404(MaintenanceSchedule, schedule_id, current_org_id(), "Schedule")
    rows = (
        db.session.query(MaintenanceScheduleWorkOrder, WorkOrder)
        .outerjoin(WorkOrder, WorkOrder.id == MaintenanceScheduleWorkOrder.work_order_id)
        .filter(MaintenanceScheduleWorkOrder.schedule_id == schedule.id)
        .order_by(MaintenanceScheduleWorkOrder.id.desc())
        .limit(50)
        .all()
    )
    data = serialize_schedule(schedule)
    data["generated_work_orders"] = [_serialize_generation(row, wo) for row, wo in rows]
    return jsonify({"schedule": data})


@maintenance_bp.put('/<int:schedule_id>')
@require_permission("maintenance:write")
def update_schedule(schedule_id: int):
    user = current_user()
    schedule = get_or_404(MaintenanceSchedule, schedule_id, user.organisation_id, "Schedule")
    if schedule.is_archived:
        abort(400, description="Archived schedules cannot be edited")
    changes = parse_body(ScheduleUpdate).model_dump(exclude_unset=True)
    for required in ("name", "interval_value", "lead_time_days", "default_priority", "is_active"):
        if required in changes and changes[required] is None:
            changes.pop(required)
    _check_references(changes, user.organisation_id)

    merged = {**snapshot(schedule, AUDIT_COLUMNS), **changes}
    if merged["schedule_type"] in ("time_based", "combined") and not merged["interval_type"]:
        abort(400, description="Time-based schedules need interval_type")
    if merged["schedule_type"] in ("usage_based", "combined") and not (
            merged["mileage_interval"] or merged["hours_interval"]):
        abort(400, description="Usage-based schedules need mileage_interval or hours_interval")
    if changes.get("end_date") and schedule.start_date and changes["end_date"] < schedule.start_date:
        abort(400, description="end_date must be on or after start_date")

    old_values = snapshot(schedule, AUDIT_COLUMNS)
    for key, value in changes.items():
        setattr(schedule, key, value)
    record_audit(user.organisation_id, user.id, "update", "maintenance_schedule", schedule.id,
                 old_values=old_values, new_values=snapshot(schedule, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"schedule": serialize_schedule(schedule)})


@maintenance_bp.delete('/<int:schedule_id>')
@require_permission("maintenance:write")
def archive_schedule(schedule_id: int):
    user = current_user()
    schedule = get_or_404(MaintenanceSchedule, schedule_id, user.organisation_id, "Schedule")
    schedule.is_archived = True
    schedule.is_active = False
    record_audit(user.organisation_id, user.id, "archive", "maintenance_schedule", schedule.id,
                 old_values={"is_archived": False}, new_values={"is_archived": True})
    commit_or_500()
    return jsonify({"success": True})


@maintenance_bp.post('/<int:schedule_id>/generate')
@require_permission("maintenance:write")
def generate_one(schedule_id: int):
    schedule = get_or_404(MaintenanceSchedule, schedule_id, current_org_id(), "Schedule")
    if not schedule.is_active or schedule.is_archived:
        abort(400, description="Schedule is not active")
    if schedule.end_date and schedule.end_date < date.today():
        abort(400, description="Schedule has ended")
    results = generate_for_schedule(schedule)
    commit_or_500()
    return jsonify({"summary": summarize(results), "results": [r.to_dict() for r in results]})
