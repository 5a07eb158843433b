# fleetdesk/routes/form_assignments.py
from flask import Blueprint, abort, jsonify, request
from sqlalchemy import and_, or_

from fleetdesk.db_models import db, isoformat, Asset, AssetCategory, CustomForm, CustomFormAssignment, WorkOrder
from fleetdesk.routes.custom_forms import serialize_form
from fleetdesk.schemas import AssignmentCreate, AssignmentUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, flush_or_409, get_or_404
from fleetdesk.utils.validation import parse_body

form_assignments_bp = Blueprint('form_assignments', __name__, url_prefix='/api/form-assignments')

AUDIT_COLUMNS = ("form_id", "target_type", "asset_category_id", "is_required", "position")
TARGET_TYPES = ("asset", "work_order", "inspection", "operator")


def _serialize_assignment(assignment):
    return {
        "id": assignment.id,
        "form_id": assignment.form_id,
        "form_name": assignment.form.name if assignment.form else None,
        "form_status": assignment.form.status if assignment.form else None,
        "target_type": assignment.target_type,
        "asset_category_id": assignment.asset_category_id,
        "is_required": assignment.is_required,
        "position": assignment.position,
        "created_at": isoformat(assignment.created_at),
    }


def _check_category(category_id, organisation_id):
    if category_id is not None:
        get_or_404(AssetCategory, category_id, organisation_id, "Category")


def entity_category_id(entity_type, entity_id, organisation_id):
    """Asset category for an asset or a work order's asset; None for other entities."""
    if entity_type == "asset":
        return get_or_404(Asset, entity_id, organisation_id, "Asset").category_id
    if entity_type == "work_order":
        work_order = get_or_404(WorkOrder, entity_id, organisation_id, "Work order")
        return work_order.asset.category_id if work_order.asset else None
    return None


@form_assignments_bp.get('')
@require_permission("forms:read")
def list_assignments():
    query = db.session.query(CustomFormAssignment).filter(
        CustomFormAssignment.organisation_id == current_org_id()
    )
    form_id = request.args.get("form_id", type=int)
    if form_id:
        query = query.filter(CustomFormAssignment.form_id == form_id)
    target_type = request.args.get("target_type")
    if target_type:
        query = query.filter(CustomFormAssignment.target_type == target_type)
    assignments = query.order_by(CustomFormAssignment.position, CustomFormAssignment.id).all()
    return jsonify({"data": [_serialize_assignment(a) for a in assignments]})


@form_assignments_bp.post('')
@require_permission("forms:write")
def create_assignment():
    body = parse_body(AssignmentCreate)
    user = current_user()
    form = get_or_404(CustomForm, body.form_id, user.organisation_id, "Form")
    if form.status == "archived":
        abort(400, description="Cannot assign an archived form")
    _check_category(body.asset_category_id, user.organisation_id)

    # NULL categories slip past the unique constraint
    duplicate = db.session.query(CustomFormAssignment.id).filter(
        CustomFormAssignment.organisation_id == user.organisation_id,
        CustomFormAssignment.form_id == form.id,
        CustomFormAssignment.target_type == body.target_type,
        CustomFormAssignment.asset_category_id.is_(None) if body.asset_category_id is None
        else CustomFormAssignment.asset_category_id == body.asset_category_id,
    ).first()
    if duplicate:
        abort(409, description="This form is already assigned to that target")

    assignment = CustomFormAssignment(organisation_id=user.organisation_id, **body.model_dump())
    db.session.add(assignment)
    flush_or_409("This form is already assigned to that target")
    record_audit(user.organisation_id, user.id, "create", "form_assignment", assignment.id,
                 new_values=snapshot(assignment, AUDIT_COLUMNS))
    commit_or_500("This form is already assigned to that target")
    return jsonify({"assignment": _serialize_assignment(assignment)}), 201


@form_assignments_bp.put('/<int:assignment_id>')
@require_permission("forms:write")
def update_assignment(assignment_id: int):
    user = current_user()
    assignment = get_or_404(CustomFormAssignment, assignment_id, user.organisation_id, "Assignment")
    changes = parse_body(AssignmentUpdate).model_dump(exclude_unset=True)
    if "asset_category_id" in changes:
        _check_category(changes["asset_category_id"], user.organisation_id)

    old_values = snapshot(assignment, AUDIT_COLUMNS)
    for key, value in changes.items():
        if value is None and key in ("is_required", "position"):
            continue
        setattr(assignment, key, value)
    record_audit(user.organisation_id, user.id, "update", "form_assignment", assignment.id,
                 old_values=old_values, new_values=snapshot(assignment, AUDIT_COLUMNS))
    commit_or_500("This form is already assigned to that target")
    return jsonify({"assignment": _serialize_assignment(assignment)})


@form_assignments_bp.delete('/<int:assignment_id>')
@require_permission("forms:write")
def delete_assignment(assignment_id: int):
    user = current_user()
    assignment = get_or_404(CustomFormAssignment, assignment_id, user.organisation_id, "Assignment")
    record_audit(user.organisation_id, user.id, "delete", "form_assignment", assignment.id,
                 old_values=snapshot(assignment, AUDIT_COLUMNS))
    db.session.delete(assignment)
    commit_or_500()
    return jsonify({"success": True})


@form_assignments_bp.get('/for-entity')
@require_permission("forms:read")
def forms_for_entity():
    entity_type = request.args.get("entity_type")
    entity_id = request.args.get("entity_id", type=int)
    if entity_type not in TARGET_TYPES:
        abort(400, description=f"entity_type must be one of: {', '.join(TARGET_TYPES)}")

    organisation_id = current_org_id()
    category_id = entity_category_id(entity_type, entity_id, organisation_id) if entity_id else None

    category_filter = CustomFormAssignment.asset_category_id.is_(None)
    if category_id is not None:
        category_filter = or_(category_filter, CustomFormAssignment.asset_category_id == category_id)

    rows = (
        db.session.query(CustomFormAssignment, CustomForm)
        .join(CustomForm, CustomForm.id == CustomFormAssignment.form_id)
        .filter(
            CustomFormAssignment.organisation_id == organisation_id,
            CustomFormAssignment.target_type == entity_type,
            category_filter,
            or_(
                CustomForm.status == "active",
                and_(CustomForm.status == "draft", CustomFormAssignment.is_required.is_(True)),
            ),
        )
        .order_by(CustomFormAssignment.position, CustomFormAssignment.id)
        .all()
    )

    forms, seen = [], set()
    for assignment, form in rows:
        if form.id in seen:
            continue
        seen.add(form.id)
        forms.append({
            **serialize_form(form),
            "assignment_id": assignment.id,
            "is_required": assignment.is_required,
            "position": assignment.position,
        })
    return jsonify({"entity_type": entity_type, "entity_id": entity_id,
                    "asset_category_id": category_id, "data": forms})
