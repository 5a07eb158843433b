# fleetdesk/routes/documents.py
import os
import uuid

from flask import Blueprint, abort, current_app, jsonify, request, send_from_directory
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from fleetdesk.db_models import db, isoformat, Asset, Document, Inspection, Part, User, WorkOrder
from fleetdesk.errors import ValidationFailed
from fleetdesk.schemas import DocumentMeta, DocumentUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.documents import days_until_expiry, expired_documents, expiring_documents
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate
from fleetdesk.utils.validation import flatten_errors, parse_body

documents_bp = Blueprint('documents', __name__, url_prefix='/api/documents')

ENTITY_MODELS = {
    "asset": Asset,
    "work_order": WorkOrder,
    "part": Part,
    "inspection": Inspection,
    "operator": User,
}

AUDIT_COLUMNS = ("name", "description", "category", "file_name", "expiry_date", "entity_type", "entity_id")


def serialize_document(document):
    return {
        "id": document.id,
        **snapshot(document, AUDIT_COLUMNS),
        "mime_type": document.mime_type,
        "file_size": document.file_size,
        "days_until_expiry": days_until_expiry(document),
        "uploaded_by_id": document.uploaded_by_id,
        "created_at": isoformat(document.created_at),
        "updated_at": isoformat(document.updated_at),
    }


def _org_folder(organisation_id):
    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], str(organisation_id))
    os.makedirs(folder, exist_ok=True)
    return folder


@documents_bp.post('')
@require_permission("documents:write")
def upload_document():
    user = current_user()
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        abort(400, description="A file is required")
    file_name = secure_filename(upload.filename)
    if not file_name:
        abort(400, description="Invalid file name")

    data = request.form.to_dict()
    data.setdefault("name", upload.filename)
    try:
        meta = DocumentMeta.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed("Invalid document metadata", flatten_errors(e))
    if meta.entity_type:
        get_or_404(ENTITY_MODELS[meta.entity_type], meta.entity_id, user.organisation_id,
                   meta.entity_type.replace("_", " ").capitalize())

    stored_name = f"{uuid.uuid4().hex}_{file_name}"
    path = os.path.join(_org_folder(user.organisation_id), stored_name)
    upload.save(path)

    document = Document(
        organisation_id=user.organisation_id,
        file_name=file_name,
        stored_name=stored_name,
        mime_type=upload.mimetype,
        file_size=os.path.getsize(path),
        uploaded_by_id=user.id,
        **meta.model_dump(),
    )
    db.session.add(document)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "upload", "document", document.id,
                 new_values=snapshot(document, AUDIT_COLUMNS))
    try:
        commit_or_500()
    except HTTPException:
        os.remove(path)
        raise
    current_app.logger.info("Stored document %s (%s bytes)", stored_name, document.file_size)
    return jsonify({"document": serialize_document(document)}), 201


@documents_bp.get('')
@require_permission("documents:read")
def list_documents():
    query = db.session.query(Document).filter(Document.organisation_id == current_org_id())
    category = request.args.get("category")
    if category:
        query = query.filter(Document.category == category)
    entity_type = request.args.get("entity_type")
    if entity_type:
        query = query.filter(Document.entity_type == entity_type)
    entity_id = request.args.get("entity_id", type=int)
    if entity_id:
        query = query.filter(Document.entity_id == entity_id)
    search = (request.args.get("search") or "").strip()
    if search:
        query = query.filter(Document.name.ilike(f"%{search}%"))
    items, meta = paginate(query.order_by(Document.created_at.desc(), Document.id.desc()))
    return jsonify({"data": [serialize_document(d) for d in items], "pagination": meta})


@documents_bp.get('/expiring')
@require_permission("documents:read")
def expiring():
    days = request.args.get("days", current_app.config["DOCUMENT_EXPIRY_WARNING_DAYS"], type=int)
    if days is None or days < 0 or days > 365:
        abort(400, description="days must be between 0 and 365")
    documents = expiring_documents(current_org_id(), days)
    return jsonify({"days": days, "data": [serialize_document(d) for d in documents]})


@documents_bp.get('/expired')
@require_permission("documents:read")
def expired():
    documents = expired_documents(current_org_id())
    return jsonify({"data": [serialize_document(d) for d in documents]})


@documents_bp.get('/<int:document_id>')
@require_permission("documents:read")
def get_document(document_id: int):
    document = get_or_404(Document, document_id, current_org_id(), "Document")
    return jsonify({"document": serialize_document(document)})


@documents_bp.get('/<int:document_id>/download')
@require_permission("documents:read")
def download_document(document_id: int):
    document = get_or_404(Document, document_id, current_org_id(), "Document")
    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], str(document.organisation_id))
    if not os.path.exists(os.path.join(folder, document.stored_name)):
        current_app.logger.error("Document %s is missing from storage", document.id)
        abort(404, description="Stored file not found")
    return send_from_directory(folder, document.stored_name, as_attachment=True,
                               download_name=document.file_name, mimetype=document.mime_type)


@documents_bp.put('/<int:document_id>')
@require_permission("documents:write")
def update_document(document_id: int):
    user = current_user()
    document = get_or_404(Document, document_id, user.organisation_id, "Document")
    changes = parse_body(DocumentUpdate).model_dump(exclude_unset=True)
    for required in ("name", "category"):
        if required in changes and changes[required] is None:
            changes.pop(required)

    old_values = snapshot(document, AUDIT_COLUMNS)
    for key, value in changes.items():
        setattr(document, key, value)
    record_audit(user.organisation_id, user.id, "update", "document", document.id,
                 old_values=old_values, new_values=snapshot(document, AUDIT_COLUMNS))
    commit_or_500()
    return jsonify({"document": serialize_document(document)})


@documents_bp.delete('/<int:document_id>')
@require_permission("documents:write")
def delete_document(document_id: int):
    user = current_user()
    document = get_or_404(Document, document_id, user.organisation_id, "Document")
    path = os.path.join(current_app.config["UPLOAD_FOLDER"], str(document.organisation_id), document.stored_name)
    record_audit(user.organisation_id, user.id, "delete", "document", document.id,
                 old_values=snapshot(document, AUDIT_COLUMNS))
    db.session.delete(document)
    commit_or_500()
    try:
        os.remove(path)
    except OSError as e:
        current_app.logger.error("Could not remove stored file %s: %s", path, e)
    return jsonify({"success": True})
