# fleetdesk/routes/task_templates.py
from flask import Blueprint, jsonify, request

from fleetdesk.db_models import db, isoformat, TaskTemplate
from fleetdesk.schemas import TaskTemplateCreate, TaskTemplateUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, parse_bool_arg
from fleetdesk.utils.validation import parse_body

task_templates_bp = Blueprint('task_templates', __name__, url_prefix='/api/task-templates')

AUDIT_COLUMNS = ("name", "description", "category", "estimated_duration_minutes", "checklist_items", "is_active")


def serialize_template(template):
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "category": template.category,
        "estimated_duration_minutes": template.estimated_duration_minutes,
        "checklist_items": sorted(template.checklist_items or [], key=lambda i: i.get("order", 0)),
        "is_active": template.is_active,
        "created_at": isoformat(template.created_at),
        "updated_at": isoformat(template.updated_at),
    }


@task_templates_bp.get('')
@require_permission("work_orders:read")
def list_templates():
    query = db.session.query(TaskTemplate).filter(TaskTemplate.organisation_id == current_org_id())
    if not parse_bool_arg("include_inactive"):
        query = query.filter(TaskTemplate.is_active.is_(True))
    category = request.args.get("category")
    if category:
        query = query.filter(TaskTemplate.category == category)
    templates = query.order_by(TaskTemplate.name).all()
    return jsonify({"data": [serialize_template(t) for t in templates]})


@task_templates_bp.post('')
@require_permission("maintenance:write")
def create_template():
    body = parse_body(TaskTemplateCreate)
    user = current_user()
    template = TaskTemplate(organisation_id=user.organisation_id, **body.model_dump())
    db.session.add(template)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "task_template", template.id,
                 new_values=snapshot(template, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"template": serialize_template(template)}), 201


@task_templates_bp.get('/<int:template_id>')
@require_permission("work_orders:read")
def get_template(template_id: int):
    template = get_or_404(TaskTemplate, template_id, current_org_id(), "Task template")
    return jsonify({"template": serialize_template(template)})


@task_templates_bp.put('/<int:template_id>')
@require_permission("maintenance:write")
def update_template(template_id: int):
    user = current_user()
    template = get_or_404(TaskTemplate, template_id, user.organisation_id, "Task template")
    changes = parse_body(TaskTemplateUpdate).model_dump(exclude_unset=True)

    old_values = snapshot(template, AUDIT_COLUMNS)
    for key, value in changes.items():
        if value is None and key in ("name", "checklist_items", "is_active"):
            continue
        setattr(template, key, value)
    record_audit(user.organisation_id, user.id, "update", "task_template", template.id,
                 old_values=old_values, new_values=snapshot(template, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"template": serialize_template(template)})


@task_templates_bp.delete('/<int:template_id>')
@require_permission("maintenance:write")
def deactivate_template(template_id: int):
    user = current_user()
    template = get_or_404(TaskTemplate, template_id, user.organisation_id, "Task template")
    template.is_active = False
    record_audit(user.organisation_id, user.id, "deactivate", "task_template", template.id,
                 old_values={"is_active": True}, new_values={"is_active": False})
    commit_or_500()
    return jsonify({"success": True})
