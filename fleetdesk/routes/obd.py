# fleetdesk/routes/obd.py
import re

from flask import Blueprint, abort, current_app, jsonify, request

from fleetdesk.db_models import (
    db, isoformat, utcnow,
    Asset, DiagnosticCode, DtcWorkOrderHistory, DtcWorkOrderRule, TaskTemplate, User,
)
from fleetdesk.schemas import DtcClearRequest, DtcProcessRequest, DtcReadRequest, DtcRuleCreate, DtcRuleUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.dtc_codes import is_valid_code, lookup_dtc_code, normalize_code, parse_dtc_response
from fleetdesk.services.dtc_work_orders import DetectedDtc, dtc_system_info, process_dtcs, summarize
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404, paginate
from fleetdesk.utils.validation import parse_body

obd_bp = Blueprint('obd', __name__, url_prefix='/api/obd')

RULE_COLUMNS = (
    "name", "dtc_pattern", "is_regex", "should_create_work_order", "priority_mapping",
    "fixed_priority", "title_template", "description_template", "template_id",
    "auto_assign_to_id", "position", "is_active",
)


def _serialize_code(code):
    return {
        "id": code.id,
        "asset_id": code.asset_id,
        "code": code.code,
        "description": code.description,
        "system": code.system,
        "severity": code.severity,
        "status": code.status,
        "occurrence_count": code.occurrence_count,
        "mileage_at_read": code.mileage_at_read,
        "first_seen_at": isoformat(code.first_seen_at),
        "last_seen_at": isoformat(code.last_seen_at),
        "cleared_at": isoformat(code.cleared_at),
        "cleared_by_id": code.cleared_by_id,
    }


def _serialize_rule(rule):
    return {"id": rule.id, **snapshot(rule, RULE_COLUMNS),
            "created_at": isoformat(rule.created_at), "updated_at": isoformat(rule.updated_at)}


def _serialize_history(entry):
    return {
        "id": entry.id,
        "asset_id": entry.asset_id,
        "dtc_code": entry.dtc_code,
        "rule_id": entry.rule_id,
        "work_order_id": entry.work_order_id,
        "is_active": entry.is_active,
        "resolved_at": isoformat(entry.resolved_at),
        "created_at": isoformat(entry.created_at),
    }


def _check_rule_refs(values, organisation_id):
    if values.get("template_id") is not None:
        get_or_404(TaskTemplate, values["template_id"], organisation_id, "Task template")
    if values.get("auto_assign_to_id") is not None:
        get_or_404(User, values["auto_assign_to_id"], organisation_id, "Assignee")


def _upsert_code(asset, code, raw_response, mileage, now):
    definition = lookup_dtc_code(code)
    existing = (
        db.session.query(DiagnosticCode)
        .filter(DiagnosticCode.asset_id == asset.id, DiagnosticCode.code == code,
                DiagnosticCode.status == "active")
        .first()
    )
    if existing is not None:
        existing.occurrence_count += 1
        existing.last_seen_at = now
        existing.raw_response = raw_response
        if mileage is not None:
            existing.mileage_at_read = mileage
        return existing

    record = DiagnosticCode(
        organisation_id=asset.organisation_id,
        asset_id=asset.id,
        code=code,
        description=definition.description,
        system=definition.system,
        severity=definition.severity,
        status="active",
        occurrence_count=1,
        raw_response=raw_response,
        mileage_at_read=mileage,
        first_seen_at=now,
        last_seen_at=now,
    )
    db.session.add(record)
    return record


# -----------------------------
# Reading / clearing codes
# -----------------------------
@obd_bp.get('/lookup/<code>')
@require_permission("diagnostics:read")
def lookup(code: str):
    code = normalize_code(code)
    if not is_valid_code(code):
        abort(400, description=f"Invalid DTC code: {code}")
    return jsonify({**lookup_dtc_code(code).to_dict(), "system_info": dtc_system_info(code)})


@obd_bp.post('/assets/<int:asset_id>/read')
@require_permission("diagnostics:write")
def read_codes(asset_id: int):
    user = current_user()
    asset = get_or_404(Asset, asset_id, user.organisation_id, "Asset")
    body = parse_body(DtcReadRequest)

    if body.raw_response:
        try:
            codes = parse_dtc_response(body.raw_response)
        except ValueError as e:
            abort(400, description=str(e))
    else:
        codes = [normalize_code(c) for c in body.codes]
    invalid = [c for c in codes if not is_valid_code(c)]
    if invalid:
        abort(400, description=f"Invalid DTC code(s): {', '.join(invalid)}")
    # a code may be reported more than once in one response
    codes = list(dict.fromkeys(codes))

    now = utcnow()
    records = [_upsert_code(asset, code, body.raw_response, body.mileage, now) for code in codes]
    db.session.flush()
    record_audit(user.organisation_id, user.id, "dtc_read", "asset", asset.id,
                 new_values={"codes": codes, "mileage": body.mileage})

    processing = None
    if body.auto_process and codes:
        detected = [DetectedDtc(code=r.code, description=r.description, is_confirmed=True) for r in records]
        results = process_dtcs(asset, detected, user.id)
        processing = {"summary": summarize(results), "results": [r.to_dict() for r in results]}

    commit_or_500()
    current_app.logger.info("Read %s DTC(s) for asset %s", len(codes), asset.asset_number)
    return jsonify({"codes": [_serialize_code(r) for r in records], "processing": processing})


@obd_bp.post('/assets/<int:asset_id>/process')
@require_permission("diagnostics:write")
def process_codes(asset_id: int):
    user = current_user()
    asset = get_or_404(Asset, asset_id, user.organisation_id, "Asset")
    body = parse_body(DtcProcessRequest)
    detected = [DetectedDtc(**d.model_dump()) for d in body.dtcs]
    results = process_dtcs(asset, detected, user.id)
    commit_or_500()
    return jsonify({"summary": summarize(results), "results": [r.to_dict() for r in results]})


@obd_bp.post('/assets/<int:asset_id>/clear')
@require_permission("diagnostics:write")
def clear_codes(asset_id: int):
    user = current_user()
    asset = get_or_404(Asset, asset_id, user.organisation_id, "Asset")
    body = parse_body(DtcClearRequest)

    query = db.session.query(DiagnosticCode).filter(
        DiagnosticCode.asset_id == asset.id, DiagnosticCode.status == "active"
    )
    if body.codes:
        query = query.filter(DiagnosticCode.code.in_([normalize_code(c) for c in body.codes]))
    now = utcnow()
    cleared = query.all()
    for code in cleared:
        code.status = "cleared"
        code.cleared_at = now
        code.cleared_by_id = user.id
    record_audit(user.organisation_id, user.id, "dtc_clear", "asset", asset.id,
                 new_values={"codes": [c.code for c in cleared]})
    commit_or_500()
    return jsonify({"cleared": len(cleared), "codes": [_serialize_code(c) for c in cleared]})


@obd_bp.get('/assets/<int:asset_id>/codes')
@require_permission("diagnostics:read")
def code_history(asset_id: int):
    asset = get_or_404(Asset, asset_id, current_org_id(), "Asset")
    query = db.session.query(DiagnosticCode).filter(DiagnosticCode.asset_id == asset.id)
    status = request.args.get("status")
    if status:
        query = query.filter(DiagnosticCode.status == status)
    items, meta = paginate(query.order_by(DiagnosticCode.last_seen_at.desc(), DiagnosticCode.id.desc()))
    return jsonify({"data": [_serialize_code(c) for c in items], "pagination": meta})


@obd_bp.get('/assets/<int:asset_id>/work-order-history')
@require_permission("diagnostics:read")
def work_order_history(asset_id: int):
    asset = get_or_404(Asset, asset_id, current_org_id(), "Asset")
    entries = (
        db.session.query(DtcWorkOrderHistory)
        .filter(DtcWorkOrderHistory.asset_id == asset.id)
        .order_by(DtcWorkOrderHistory.created_at.desc(), DtcWorkOrderHistory.id.desc())
        .all()
    )
    return jsonify({"data": [_serialize_history(e) for e in entries]})


# -----------------------------
# Work-order rules
# -----------------------------
@obd_bp.get('/rules')
@require_permission("diagnostics:read")
def list_rules():
    rules = (
        db.session.query(DtcWorkOrderRule)
        .filter(DtcWorkOrderRule.organisation_id == current_org_id())
        .order_by(DtcWorkOrderRule.position, DtcWorkOrderRule.id)
        .all()
    )
    return jsonify({"data": [_serialize_rule(r) for r in rules]})


@obd_bp.post('/rules')
@require_permission("work_orders:write")
def create_rule():
    body = parse_body(DtcRuleCreate)
    user = current_user()
    values = body.model_dump()
    _check_rule_refs(values, user.organisation_id)
    if not values["is_regex"]:
        values["dtc_pattern"] = normalize_code(values["dtc_pattern"])

    rule = DtcWorkOrderRule(organisation_id=user.organisation_id, **values)
    db.session.add(rule)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "dtc_rule", rule.id,
                 new_values=snapshot(rule, RULE_COLUMNS))
    commit_or_500()
    return jsonify({"rule": _serialize_rule(rule)}), 201


@obd_bp.put('/rules/<int:rule_id>')
@require_permission("work_orders:write")
def update_rule(rule_id: int):
    user = current_user()
    rule = get_or_404(DtcWorkOrderRule, rule_id, user.organisation_id, "Rule")
    changes = parse_body(DtcRuleUpdate).model_dump(exclude_unset=True)
    for required in ("name", "dtc_pattern", "is_regex", "should_create_work_order",
                     "priority_mapping", "position", "is_active"):
        if required in changes and changes[required] is None:
            changes.pop(required)
    _check_rule_refs(changes, user.organisation_id)

    merged = {**snapshot(rule, RULE_COLUMNS), **changes}
    if merged["is_regex"]:
        try:
            re.compile(merged["dtc_pattern"])
        except re.error as e:
            abort(400, description=f"dtc_pattern is not a valid regular expression: {e}")
    elif "dtc_pattern" in changes:
        changes["dtc_pattern"] = normalize_code(changes["dtc_pattern"])
    if merged["priority_mapping"] == "fixed" and not merged["fixed_priority"]:
        abort(400, description="fixed_priority is required when priority_mapping is 'fixed'")

    old_values = snapshot(rule, RULE_COLUMNS)
    for key, value in changes.items():
        setattr(rule, key, value)
    record_audit(user.organisation_id, user.id, "update", "dtc_rule", rule.id,
                 old_values=old_values, new_values=snapshot(rule, RULE_COLUMNS))
    commit_or_500()
    return jsonify({"rule": _serialize_rule(rule)})


@obd_bp.delete('/rules/<int:rule_id>')
@require_permission("work_orders:write")
def delete_rule(rule_id: int):
    user = current_user()
    rule = get_or_404(DtcWorkOrderRule, rule_id, user.organisation_id, "Rule")
    in_use = db.session.query(DtcWorkOrderHistory.id).filter(DtcWorkOrderHistory.rule_id == rule.id).first()
    if in_use:
        rule.is_active = False
        action = "deactivate"
    else:
        db.session.delete(rule)
        action = "delete"
    record_audit(user.organisation_id, user.id, action, "dtc_rule", rule_id, old_values=snapshot(rule, RULE_COLUMNS))
    commit_or_500()
    return jsonify({"success": True, "action": action})
