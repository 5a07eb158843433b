# fleetdesk/routes/custom_forms.py
from datetime import datetime, time, timezone
from typing import get_args

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy import or_

from fleetdesk.db_models import db, isoformat, CustomForm, CustomFormSubmission, CustomFormVersion
from fleetdesk.errors import ValidationFailed
from fleetdesk.schemas import EvaluateRequest, FormCreate, FormUpdate, PublishRequest, RollbackRequest
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.conditional_logic import (
    OPERATOR_LABELS, OPERATORS, condition_source_fields, evaluate_form, operators_for_field_type,
)
from fleetdesk.services.csv_export import csv_response, submissions_csv
from fleetdesk.services.form_definitions import FieldType, FormDefinitionError, check_field_references, dump_fields
from fleetdesk.services.form_stats import compute_form_stats
from fleetdesk.services.form_versions import PublishError, publish_form, rollback_form
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate
from fleetdesk.utils.validation import parse_body, parse_date_arg

custom_forms_bp = Blueprint('custom_forms', __name__, url_prefix='/api/custom-forms')

AUDIT_COLUMNS = ("name", "description", "category", "status", "current_version")


# -----------------------------
# Serialization
# -----------------------------
def serialize_form(form, with_fields=True):
    data = {
        "id": form.id,
        "name": form.name,
        "description": form.description,
        "category": form.category,
        "status": form.status,
        "current_version": form.current_version,
        "field_count": len(form.fields or []),
        "created_by_id": form.created_by_id,
        "created_at": isoformat(form.created_at),
        "updated_at": isoformat(form.updated_at),
    }
    if with_fields:
        data["fields"] = form.fields or []
        data["settings"] = form.settings or {}
    return data


def serialize_version(version, with_fields=True):
    data = {
        "id": version.id,
        "form_id": version.form_id,
        "version": version.version,
        "name": version.name,
        "description": version.description,
        "changelog": version.changelog,
        "published_by_id": version.published_by_id,
        "published_at": isoformat(version.published_at),
    }
    if with_fields:
        data["fields"] = version.fields
        data["settings"] = version.settings
    return data


def serialize_submission(submission):
    return {
        "id": submission.id,
        "form_id": submission.form_id,
        "version_id": submission.version_id,
        "version": submission.version.version if submission.version else None,
        "status": submission.status,
        "responses": submission.responses or {},
        "context_type": submission.context_type,
        "context_id": submission.context_id,
        "notes": submission.notes,
        "submitted_by_id": submission.submitted_by_id,
        "submitted_by_name": submission.submitted_by.name if submission.submitted_by else None,
        "started_at": isoformat(submission.started_at),
        "submitted_at": isoformat(submission.submitted_at),
        "reviewed_by_id": submission.reviewed_by_id,
        "reviewed_at": isoformat(submission.reviewed_at),
        "review_notes": submission.review_notes,
        "created_at": isoformat(submission.created_at),
    }


def _checked_fields(fields):
    try:
        check_field_references(fields)
    except FormDefinitionError as e:
        raise ValidationFailed("Invalid form definition", e.problems)
    return dump_fields(fields)


def _day_start(d):
    return datetime.combine(d, time.min, tzinfo=timezone.utc) if d else None


def _day_end(d):
    return datetime.combine(d, time.max, tzinfo=timezone.utc) if d else None


def _version_or_404(form, number):
    version = (
        db.session.query(CustomFormVersion)
        .filter(CustomFormVersion.form_id == form.id, CustomFormVersion.version == number)
        .first()
    )
    if version is None:
        abort(404, description=f"Version {number} not found")
    return version


def _export_fields(form):
    """Live fields first, then answers only found in older versions."""
    fields = list(form.fields or [])
    seen = {f["id"] for f in fields}
    for version in reversed(form.versions):
        for f in version.fields or []:
            if f["id"] not in seen:
                fields.append(f)
                seen.add(f["id"])
    return fields


def _filtered_submissions(form):
    query = db.session.query(CustomFormSubmission).filter(
        CustomFormSubmission.form_id == form.id,
        CustomFormSubmission.organisation_id == form.organisation_id,
    )
    status = request.args.get("status")
    if status:
        query = query.filter(CustomFormSubmission.status == status)
    context_type = request.args.get("context_type")
    if context_type:
        query = query.filter(CustomFormSubmission.context_type == context_type)
    context_id = request.args.get("context_id", type=int)
    if context_id:
        query = query.filter(CustomFormSubmission.context_id == context_id)
    submitted_by_id = request.args.get("submitted_by_id", type=int)
    if submitted_by_id:
        query = query.filter(CustomFormSubmission.submitted_by_id == submitted_by_id)
    version = request.args.get("version", type=int)
    if version:
        query = query.join(CustomFormVersion, CustomFormVersion.id == CustomFormSubmission.version_id)
        query = query.filter(CustomFormVersion.version == version)

    date_from = _day_start(parse_date_arg("date_from"))
    if date_from:
        query = query.filter(CustomFormSubmission.created_at >= date_from)
    date_to = _day_end(parse_date_arg("date_to"))
    if date_to:
        query = query.filter(CustomFormSubmission.created_at <= date_to)
    return query.order_by(CustomFormSubmission.created_at.desc(), CustomFormSubmission.id.desc())


def _response_filters():
    """``field_<id>=value`` query args."""
    return {key[len("field_"):]: value for key, value in request.args.items()
            if key.startswith("field_") and len(key) > len("field_")}


def _matches_filters(submission, filters):
    responses = submission.responses or {}
    for field_id, expected in filters.items():
        value = responses.get(field_id)
        if isinstance(value, list):
            if expected not in [str(v) for v in value]:
                return False
        elif isinstance(value, bool):
            if expected.lower() not in (("true", "yes", "1") if value else ("false", "no", "0")):
                return False
        elif value is None or expected.lower() not in str(value).lower():
            return False
    return True


# -----------------------------
# Metadata
# -----------------------------
@custom_forms_bp.get('/operators')
@require_permission("forms:read")
def operator_metadata():
    return jsonify({
        "operators": [{"value": op, "label": OPERATOR_LABELS[op]} for op in OPERATORS],
        "by_field_type": {t: operators_for_field_type(t) for t in get_args(FieldType)},
    })


# -----------------------------
# Forms
# -----------------------------
@custom_forms_bp.get('')
@require_permission("forms:read")
def list_forms():
    query = db.session.query(CustomForm).filter(CustomForm.organisation_id == current_org_id())
    status = request.args.get("status")
    if status:
        query = query.filter(CustomForm.status == status)
    else:
        query = query.filter(CustomForm.status != "archived")
    category = request.args.get("category")
    if category:
        query = query.filter(CustomForm.category == category)
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(CustomForm.name.ilike(like), CustomForm.description.ilike(like)))

    items, meta = paginate(query.order_by(CustomForm.name))
    return jsonify({"data": [serialize_form(f, with_fields=False) for f in items], "pagination": meta})


@custom_forms_bp.post('')
@require_permission("forms:write")
def create_form():
    body = parse_body(FormCreate)
    user = current_user()
    form = CustomForm(
        organisation_id=user.organisation_id,
        name=body.name,
        description=body.description,
        category=body.category,
        fields=_checked_fields(body.fields),
        settings=body.settings,
        status="draft",
        current_version=0,
        created_by_id=user.id,
    )
    db.session.add(form)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "custom_form", form.id,
                 new_values={**snapshot(form, AUDIT_COLUMNS), "field_count": len(form.fields)})
    commit_or_500()
    return jsonify({"form": serialize_form(form)}), 201


@custom_forms_bp.get('/<int:form_id>')
@require_permission("forms:read")
def get_form(form_id: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    return jsonify({"form": serialize_form(form)})


@custom_forms_bp.put('/<int:form_id>')
@require_permission("forms:write")
def update_form(form_id: int):
    user = current_user()
    form = get_or_404(CustomForm, form_id, user.organisation_id, "Form")
    body = parse_body(FormUpdate)
    changes = body.model_dump(exclude_unset=True, exclude={"fields"})

    if changes.get("status") == "active" and not form.current_version:
        abort(400, description="Publish the form before activating it")
    for required in ("name", "status", "settings"):
        if required in changes and changes[required] is None:
            changes.pop(required)

    old_values = {**snapshot(form, AUDIT_COLUMNS), "field_count": len(form.fields or [])}
    for key, value in changes.items():
        setattr(form, key, value)
    if body.fields is not None:
        # reassign so the JSON column is flagged dirty
        form.fields = _checked_fields(body.fields)

    record_audit(user.organisation_id, user.id, "update", "custom_form", form.id,
                 old_values=old_values,
                 new_values={**snapshot(form, AUDIT_COLUMNS), "field_count": len(form.fields or [])})
    commit_or_500()
    return jsonify({"form": serialize_form(form)})


@custom_forms_bp.delete('/<int:form_id>')
@require_permission("forms:write")
def delete_form(form_id: int):
    user = current_user()
    form = get_or_404(CustomForm, form_id, user.organisation_id, "Form")
    if form.versions:
        abort(409, description="Published forms cannot be deleted; archive them instead")

    record_audit(user.organisation_id, user.id, "delete", "custom_form", form.id,
                 old_values=snapshot(form, AUDIT_COLUMNS))
    db.session.delete(form)
    commit_or_500()
    return jsonify({"success": True})


# -----------------------------
# Versions
# -----------------------------
@custom_forms_bp.post('/<int:form_id>/publish')
@require_permission("forms:write")
def publish(form_id: int):
    user = current_user()
    form = get_or_404(CustomForm, form_id, user.organisation_id, "Form")
    body = parse_body(PublishRequest)
    try:
        result = publish_form(form, user.id, body.changelog)
    except PublishError as e:
        abort(400, description=str(e))
    commit_or_500("This form was published by someone else at the same time, please retry")
    current_app.logger.info("Form %s published as version %s", form.id, result.version.version)
    return jsonify({"form": serialize_form(result.form), "version": serialize_version(result.version)}), 201


@custom_forms_bp.post('/<int:form_id>/rollback')
@require_permission("forms:write")
def rollback(form_id: int):
    user = current_user()
    form = get_or_404(CustomForm, form_id, user.organisation_id, "Form")
    body = parse_body(RollbackRequest)
    if form.status == "archived":
        abort(400, description="Cannot roll back an archived form")
    try:
        result = rollback_form(form, body.target_version, user.id)
    except LookupError as e:
        abort(404, description=str(e))
    commit_or_500("This form was published by someone else at the same time, please retry")
    return jsonify({
        "form": serialize_form(result.form),
        "version": serialize_version(result.version),
        "rolled_back_from": result.rolled_back_from,
        "rolled_back_to": result.rolled_back_to,
    }), 201


@custom_forms_bp.get('/<int:form_id>/versions')
@require_permission("forms:read")
def list_versions(form_id: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    versions = sorted(form.versions, key=lambda v: v.version, reverse=True)
    return jsonify({
        "current_version": form.current_version,
        "data": [serialize_version(v, with_fields=False) for v in versions],
    })


@custom_forms_bp.get('/<int:form_id>/versions/<int:version>')
@require_permission("forms:read")
def get_version(form_id: int, version: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    return jsonify({"version": serialize_version(_version_or_404(form, version))})


# -----------------------------
# Conditional logic
# -----------------------------
@custom_forms_bp.post('/<int:form_id>/evaluate')
@require_permission("forms:read")
def evaluate(form_id: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    body = parse_body(EvaluateRequest)
    fields = _version_or_404(form, body.version).fields if body.version else (form.fields or [])
    return jsonify({"fields": evaluate_form(fields, body.values)})


@custom_forms_bp.get('/<int:form_id>/condition-sources')
@require_permission("forms:read")
def condition_sources(form_id: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    sources = condition_source_fields(form.fields or [], request.args.get("exclude"))
    return jsonify({"data": [
        {"id": f["id"], "label": f.get("label"), "type": f.get("type"),
         "operators": operators_for_field_type(f.get("type"))}
        for f in sources
    ]})


# -----------------------------
# Responses / export / stats
# -----------------------------
@custom_forms_bp.get('/<int:form_id>/responses')
@require_permission("forms:review")
def list_responses(form_id: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    query = _filtered_submissions(form)
    filters = _response_filters()
    if filters:
        # answers live in JSON, so value filters are applied after loading
        matching = [s for s in query.all() if _matches_filters(s, filters)]
        page = max(request.args.get("page", 1, type=int) or 1, 1)
        per_page = min(max(request.args.get("per_page", 25, type=int) or 25, 1), 100)
        items = matching[(page - 1) * per_page: page * per_page]
        meta = {"page": page, "per_page": per_page, "total": len(matching),
                "pages": (len(matching) + per_page - 1) // per_page}
    else:
        items, meta = paginate(query)
    return jsonify({"data": [serialize_submission(s) for s in items], "pagination": meta})


@custom_forms_bp.get('/<int:form_id>/export')
@require_permission("forms:review")
def export_responses(form_id: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    filters = _response_filters()
    submissions = [s for s in _filtered_submissions(form).all() if _matches_filters(s, filters)]
    content, filename = submissions_csv(form.name, _export_fields(form), submissions)
    return csv_response(content, filename)


@custom_forms_bp.get('/<int:form_id>/stats')
@require_permission("forms:review")
def form_stats(form_id: int):
    form = get_or_404(CustomForm, form_id, current_org_id(), "Form")
    date_from = _day_start(parse_date_arg("date_from"))
    date_to = _day_end(parse_date_arg("date_to"))
    query = db.session.query(CustomFormSubmission).filter(CustomFormSubmission.form_id == form.id)
    if date_from:
        query = query.filter(CustomFormSubmission.created_at >= date_from)
    if date_to:
        query = query.filter(CustomFormSubmission.created_at <= date_to)
    stats = compute_form_stats(form.fields or [], query.all(), date_from, date_to)
    return jsonify({"form_id": form.id, **stats})
