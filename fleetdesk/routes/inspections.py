# fleetdesk/routes/inspections.py
from datetime import date

from flask import Blueprint, abort, jsonify, request

from fleetdesk.db_models import db, isoformat, utcnow, Asset, Inspection, InspectionItem, TaskTemplate
from fleetdesk.schemas import InspectionItemResult, InspectionSignOff, InspectionStart
from fleetdesk.services.audit import record_audit
from fleetdesk.services.csv_export import csv_response, rows_to_csv
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate
from fleetdesk.utils.validation import parse_body, parse_date_arg

inspections_bp = Blueprint('inspections', __name__, url_prefix='/api/inspections')

EXPORT_HEADERS = [
    "Inspection ID", "Asset Number", "Template", "Inspector", "Status", "Overall Result",
    "Initiation Method", "Started At", "Completed At", "Failed Items", "Notes",
]


def _serialize_item(item):
    return {
        "id": item.id,
        "checklist_item_id": item.checklist_item_id,
        "title": item.title,
        "description": item.description,
        "is_required": item.is_required,
        "position": item.position,
        "result": item.result,
        "value_numeric": item.value_numeric,
        "value_text": item.value_text,
        "notes": item.notes,
        "checked_at": isoformat(item.checked_at),
    }


def serialize_inspection(inspection, with_items=True):
    data = {
        "id": inspection.id,
        "asset_id": inspection.asset_id,
        "asset_number": inspection.asset.asset_number if inspection.asset else None,
        "template_id": inspection.template_id,
        "template_name": inspection.template.name if inspection.template else None,
        "inspector_id": inspection.inspector_id,
        "inspector_name": inspection.inspector.name if inspection.inspector else None,
        "status": inspection.status,
        "initiation_method": inspection.initiation_method,
        "overall_result": inspection.overall_result,
        "latitude": inspection.latitude,
        "longitude": inspection.longitude,
        "notes": inspection.notes,
        "declaration_accepted": inspection.declaration_accepted,
        "has_signature": bool(inspection.signature_data),
        "started_at": isoformat(inspection.started_at),
        "completed_at": isoformat(inspection.completed_at),
    }
    if with_items:
        data["items"] = [_serialize_item(i) for i in inspection.items]
    return data


def _filtered_inspections(organisation_id):
    query = db.session.query(Inspection).filter(Inspection.organisation_id == organisation_id)
    asset_id = request.args.get("asset_id", type=int)
    if asset_id:
        query = query.filter(Inspection.asset_id == asset_id)
    status = request.args.get("status")
    if status:
        query = query.filter(Inspection.status == status)
    result = request.args.get("overall_result")
    if result:
        query = query.filter(Inspection.overall_result == result)
    inspector_id = request.args.get("inspector_id", type=int)
    if inspector_id:
        query = query.filter(Inspection.inspector_id == inspector_id)
    date_from = parse_date_arg("date_from")
    if date_from:
        query = query.filter(Inspection.started_at >= date_from)
    return query.order_by(Inspection.started_at.desc(), Inspection.id.desc())


@inspections_bp.post('')
@require_permission("inspections:write")
def start_inspection():
    body = parse_body(InspectionStart)
    user = current_user()
    asset = get_or_404(Asset, body.asset_id, user.organisation_id, "Asset")
    if asset.is_archived:
        abort(400, description="Cannot inspect an archived asset")
    template = get_or_404(TaskTemplate, body.template_id, user.organisation_id, "Task template")
    checklist = sorted(template.checklist_items or [], key=lambda i: i.get("order", 0))
    if not checklist:
        abort(400, description="Template has no checklist items")

    inspection = Inspection(
        organisation_id=user.organisation_id,
        asset_id=asset.id,
        template_id=template.id,
        inspector_id=user.id,
        initiation_method=body.initiation_method,
        latitude=body.latitude,
        longitude=body.longitude,
    )
    for index, item in enumerate(checklist):
        inspection.items.append(InspectionItem(
            checklist_item_id=item.get("id"),
            title=item.get("title") or f"Item {index + 1}",
            description=item.get("description"),
            is_required=bool(item.get("is_required")),
            position=item.get("order", index),
        ))
    db.session.add(inspection)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "start", "inspection", inspection.id,
                 new_values={"asset_id": asset.id, "template_id": template.id,
                             "initiation_method": body.initiation_method})
    commit_or_500()
    return jsonify({"inspection": serialize_inspection(inspection)}), 201


@inspections_bp.get('')
@require_permission("inspections:read")
def inspection_history():
    items, meta = paginate(_filtered_inspections(current_org_id()))
    return jsonify({"data": [serialize_inspection(i, with_items=False) for i in items], "pagination": meta})


@inspections_bp.get('/export')
@require_permission("inspections:read")
def export_inspections():
    rows = []
    for i in _filtered_inspections(current_org_id()).all():
        failed = "; ".join(item.title for item in i.items if item.result == "fail")
        rows.append([
            i.id, i.asset.asset_number if i.asset else "", i.template.name if i.template else "",
            i.inspector.name if i.inspector else "", i.status, i.overall_result, i.initiation_method,
            isoformat(i.started_at), isoformat(i.completed_at), failed, i.notes,
        ])
    return csv_response(rows_to_csv(EXPORT_HEADERS, rows), f"inspections_{date.today().isoformat()}.csv")


@inspections_bp.get('/<int:inspection_id>')
@require_permission("inspections:read")
def get_inspection(inspection_id: int):
    inspection = get_or_404(Inspection, inspection_id, current_org_id(), "Inspection")
    return jsonify({"inspection": serialize_inspection(inspection)})


@inspections_bp.put('/<int:inspection_id>/items/<int:item_id>')
@require_permission("inspections:write")
def record_item_result(inspection_id: int, item_id: int):
    user = current_user()
    inspection = get_or_404(Inspection, inspection_id, user.organisation_id, "Inspection")
    if inspection.status != "in_progress":
        abort(400, description="Inspection is already completed")
    item = next((i for i in inspection.items if i.id == item_id), None)
    if item is None:
        abort(404, description="Inspection item not found")

    body = parse_body(InspectionItemResult)
    item.result = body.result
    item.value_numeric = body.value_numeric
    item.value_text = body.value_text
    item.notes = body.notes
    item.checked_at = utcnow()
    commit_or_500()
    return jsonify({"item": _serialize_item(item)})


@inspections_bp.post('/<int:inspection_id>/sign-off')
@require_permission("inspections:write")
def sign_off(inspection_id: int):
    user = current_user()
    inspection = get_or_404(Inspection, inspection_id, user.organisation_id, "Inspection")
    if inspection.status != "in_progress":
        abort(400, description="Inspection is already completed")
    body = parse_body(InspectionSignOff)

    pending = [i.title for i in inspection.items if i.result == "pending"]
    if pending:
        abort(400, description=f"All items must be checked before sign-off. Pending: {', '.join(pending)}")

    inspection.overall_result = "fail" if any(i.result == "fail" for i in inspection.items) else "pass"
    inspection.status = "completed"
    inspection.signature_data = body.signature_data
    inspection.declaration_accepted = True
    inspection.notes = body.notes
    inspection.completed_at = utcnow()
    record_audit(user.organisation_id, user.id, "sign_off", "inspection", inspection.id,
                 old_values={"status": "in_progress"},
                 new_values={"status": "completed", "overall_result": inspection.overall_result})
    commit_or_500()
    return jsonify({"inspection": serialize_inspection(inspection)})
