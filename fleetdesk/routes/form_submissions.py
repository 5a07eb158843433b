# fleetdesk/routes/form_submissions.py
from flask import Blueprint, abort, current_app, jsonify, request

from fleetdesk.db_models import (
    db, utcnow,
    Asset, CustomForm, CustomFormSubmission, CustomFormVersion, Inspection, User, WorkOrder,
)
from fleetdesk.errors import ValidationFailed
from fleetdesk.routes.custom_forms import serialize_submission
from fleetdesk.schemas import SubmissionCreate, SubmissionReview, SubmissionUpdate
from fleetdesk.services.audit import record_audit
from fleetdesk.services.form_validation import validate_responses
from fleetdesk.services.form_versions import latest_version
from fleetdesk.utils.auth import current_org_id, current_user, has_permission, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate
from fleetdesk.utils.validation import parse_body

form_submissions_bp = Blueprint('form_submissions', __name__, url_prefix='/api/form-submissions')

CONTEXT_MODELS = {
    "asset": Asset,
    "work_order": WorkOrder,
    "inspection": Inspection,
    "operator": User,
}


def _check_context(context_type, context_id, organisation_id):
    if context_type is None and context_id is None:
        return
    if context_type is None or context_id is None:
        abort(400, description="context_type and context_id must be provided together")
    get_or_404(CONTEXT_MODELS[context_type], context_id, organisation_id,
               context_type.replace("_", " ").capitalize())


def _validate_for_submit(version, responses):
    errors = validate_responses(version.fields, responses)
    if errors:
        raise ValidationFailed(
            f"Validation failed: {'; '.join(errors)}",
            [{"field": "responses", "message": e} for e in errors],
        )


def _get_submission(submission_id):
    user = current_user()
    submission = get_or_404(CustomFormSubmission, submission_id, user.organisation_id, "Submission")
    if submission.submitted_by_id != user.id and not has_permission(user, "forms:review"):
        abort(404, description="Submission not found")
    return submission


@form_submissions_bp.get('')
@require_permission("forms:submit")
def list_submissions():
    user = current_user()
    query = db.session.query(CustomFormSubmission).filter(
        CustomFormSubmission.organisation_id == user.organisation_id
    )
    if not has_permission(user, "forms:review") or request.args.get("mine"):
        query = query.filter(CustomFormSubmission.submitted_by_id == user.id)
    form_id = request.args.get("form_id", type=int)
    if form_id:
        query = query.filter(CustomFormSubmission.form_id == form_id)
    status = request.args.get("status")
    if status:
        query = query.filter(CustomFormSubmission.status == status)
    context_type = request.args.get("context_type")
    if context_type:
        query = query.filter(CustomFormSubmission.context_type == context_type)
    context_id = request.args.get("context_id", type=int)
    if context_id:
        query = query.filter(CustomFormSubmission.context_id == context_id)

    items, meta = paginate(query.order_by(CustomFormSubmission.created_at.desc(), CustomFormSubmission.id.desc()))
    return jsonify({"data": [serialize_submission(s) for s in items], "pagination": meta})


@form_submissions_bp.post('')
@require_permission("forms:submit")
def create_submission():
    body = parse_body(SubmissionCreate)
    user = current_user()
    form = get_or_404(CustomForm, body.form_id, user.organisation_id, "Form")
    if form.status == "archived":
        abort(400, description="Cannot submit responses to an archived form")

    if body.version_id is not None:
        version = db.session.get(CustomFormVersion, body.version_id)
        if version is None or version.form_id != form.id:
            abort(400, description="Version does not belong to this form")
    else:
        version = latest_version(form.id)
        if version is None:
            abort(400, description="No published version found for this form")

    _check_context(body.context_type, body.context_id, user.organisation_id)
    if body.status == "submitted":
        _validate_for_submit(version, body.responses)

    now = utcnow()
    submission = CustomFormSubmission(
        organisation_id=user.organisation_id,
        form_id=form.id,
        version_id=version.id,
        status=body.status,
        responses=body.responses,
        context_type=body.context_type,
        context_id=body.context_id,
        notes=body.notes,
        submitted_by_id=user.id,
        started_at=now,
        submitted_at=now if body.status == "submitted" else None,
    )
    db.session.add(submission)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "form_submission", submission.id,
                 new_values={"form_id": form.id, "version": version.version, "status": body.status})
    commit_or_500()
    current_app.logger.info("Submission %s created for form %s v%s", submission.id, form.id, version.version)
    return jsonify({"submission": serialize_submission(submission)}), 201


@form_submissions_bp.get('/<int:submission_id>')
@require_permission("forms:submit")
def get_submission(submission_id: int):
    submission = _get_submission(submission_id)
    data = serialize_submission(submission)
    data["form_name"] = submission.version.name if submission.version else None
    data["fields"] = submission.version.fields if submission.version else []
    return jsonify({"submission": data})


@form_submissions_bp.put('/<int:submission_id>')
@require_permission("forms:submit")
def update_submission(submission_id: int):
    user = current_user()
    submission = _get_submission(submission_id)
    if submission.status != "draft":
        abort(400, description="Only draft submissions can be edited")
    if submission.submitted_by_id != user.id:
        abort(403, description="Only the author can edit a draft")
    if submission.form.status == "archived":
        abort(400, description="Cannot submit responses to an archived form")

    body = parse_body(SubmissionUpdate)
    if body.status == "submitted":
        # drafts stay pinned to the version they were started on
        _validate_for_submit(submission.version, body.responses)

    submission.responses = body.responses
    if body.notes is not None:
        submission.notes = body.notes
    submission.status = body.status
    if body.status == "submitted":
        submission.submitted_at = utcnow()
    record_audit(user.organisation_id, user.id, "update", "form_submission", submission.id,
                 old_values={"status": "draft"}, new_values={"status": body.status})
    commit_or_500()
    return jsonify({"submission": serialize_submission(submission)})


@form_submissions_bp.post('/<int:submission_id>/review')
@require_permission("forms:review")
def review_submission(submission_id: int):
    user = current_user()
    submission = get_or_404(CustomFormSubmission, submission_id, user.organisation_id, "Submission")
    if submission.status != "submitted":
        abort(400, description="Only submitted responses can be reviewed")

    body = parse_body(SubmissionReview)
    submission.status = body.status
    submission.reviewed_by_id = user.id
    submission.reviewed_at = utcnow()
    submission.review_notes = body.review_notes
    record_audit(user.organisation_id, user.id, "review", "form_submission", submission.id,
                 old_values={"status": "submitted"},
                 new_values={"status": body.status, "review_notes": body.review_notes})
    commit_or_500()
    return jsonify({"submission": serialize_submission(submission)})
