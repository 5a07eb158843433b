# fleetdesk/services/dtc_work_orders.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, asdict
from typing import Optional

from fleetdesk.db_models import db, Asset, DtcWorkOrderHistory, DtcWorkOrderRule
from fleetdesk.services.dtc_codes import is_valid_code, normalize_code
from fleetdesk.services.work_orders import create_work_order

log = logging.getLogger(__name__)

SEVERITY_TO_PRIORITY = {
    "critical": "critical",
    "severe": "high",
    "moderate": "medium",
    "minor": "low",
    "unknown": "medium",
}

DTC_SYSTEM_PREFIXES = {
    "P0": ("Powertrain", "Generic"),
    "P1": ("Powertrain", "Manufacturer"),
    "P2": ("Powertrain", "Generic"),
    "P3": ("Powertrain", "Generic/Manufacturer"),
    "C0": ("Chassis", "Generic"),
    "C1": ("Chassis", "Manufacturer"),
    "C2": ("Chassis", "Manufacturer"),
    "C3": ("Chassis", "Generic"),
    "B0": ("Body", "Generic"),
    "B1": ("Body", "Manufacturer"),
    "B2": ("Body", "Manufacturer"),
    "B3": ("Body", "Generic"),
    "U0": ("Network", "Generic"),
    "U1": ("Network", "Manufacturer"),
    "U2": ("Network", "Manufacturer"),
    "U3": ("Network", "Generic"),
}

ACTIONS = ("created", "skipped", "duplicate", "no_rule", "error")


@dataclass
class DetectedDtc:
    code: str
    description: Optional[str] = None
    severity: Optional[str] = None
    is_pending: bool = False
    is_confirmed: bool = False


@dataclass
class DtcProcessingResult:
    dtc_code: str
    action: str
    reason: Optional[str] = None
    work_order_id: Optional[int] = None
    work_order_number: Optional[str] = None
    rule_id: Optional[int] = None

    def to_dict(self):
        return asdict(self)


def dtc_system_info(code: str):
    info = DTC_SYSTEM_PREFIXES.get(normalize_code(code)[:2])
    if info is None:
        return None
    return {"system": info[0], "type": info[1]}


def estimate_dtc_severity(code: str) -> str:
    """Rough severity in work-order terms (critical/severe/moderate/minor)."""
    code = normalize_code(code)
    if code in ("P0300", "P0301", "P0302", "P0303", "P0304"):
        return "severe"
    if code in ("P0217", "P0218") or code.startswith("P052"):
        return "critical"
    if code.startswith("P07") or code.startswith("C0"):
        return "severe"
    return "moderate"


def rule_matches(rule: DtcWorkOrderRule, code: str) -> bool:
    code = normalize_code(code)
    if rule.is_regex:
        try:
            return re.search(rule.dtc_pattern, code, re.IGNORECASE) is not None
        except re.error:
            log.warning("DTC rule %s has an invalid pattern: %s", rule.id, rule.dtc_pattern)
            return False
    return normalize_code(rule.dtc_pattern) == code


def matching_rules(organisation_id: int, code: str) -> list[DtcWorkOrderRule]:
    rules = (
        db.session.query(DtcWorkOrderRule)
        .filter(DtcWorkOrderRule.organisation_id == organisation_id,
                DtcWorkOrderRule.is_active.is_(True))
        .order_by(DtcWorkOrderRule.position, DtcWorkOrderRule.id)
        .all()
    )
    return [r for r in rules if rule_matches(r, code)]


def has_active_history(organisation_id: int, asset_id: int, code: str) -> bool:
    return (
        db.session.query(DtcWorkOrderHistory.id)
        .filter(DtcWorkOrderHistory.organisation_id == organisation_id,
                DtcWorkOrderHistory.asset_id == asset_id,
                DtcWorkOrderHistory.dtc_code == normalize_code(code),
                DtcWorkOrderHistory.is_active.is_(True))
        .first()
        is not None
    )


def _priority_for(rule: DtcWorkOrderRule, severity: str) -> str:
    if rule.priority_mapping == "fixed" and rule.fixed_priority:
        return rule.fixed_priority
    return SEVERITY_TO_PRIORITY.get(severity, "medium")


def _description_for(dtc: DetectedDtc, severity: str) -> str:
    info = dtc_system_info(dtc.code)
    lines = [f"Diagnostic Trouble Code detected: {dtc.code}"]
    if dtc.description:
        lines.append(f"Description: {dtc.description}")
    if info:
        lines.append(f"System: {info['system']} ({info['type']})")
    lines.append(f"Severity: {severity}")
    if dtc.is_pending:
        lines.append("Status: Pending")
    elif dtc.is_confirmed:
        lines.append("Status: Confirmed")
    lines.append("")
    lines.append("This work order was automatically created based on DTC detection rules.")
    return "\n".join(lines)


def process_dtc(asset: Asset, dtc: DetectedDtc, user_id: Optional[int]) -> DtcProcessingResult:
    """
    Apply the first matching active rule to one detected code.

    An active history row for the same asset and code means a work order is
    already open for it, so nothing new is created. Work is staged on the
    session; the caller commits.
    """
    code = normalize_code(dtc.code)
    dtc.code = code
    organisation_id = asset.organisation_id

    if not is_valid_code(code):
        return DtcProcessingResult(dtc_code=code, action="error", reason="Invalid DTC code format")

    if has_active_history(organisation_id, asset.id, code):
        return DtcProcessingResult(
            dtc_code=code, action="duplicate",
            reason="An open work order already exists for this DTC on this asset",
        )

    rules = matching_rules(organisation_id, code)
    if not rules:
        return DtcProcessingResult(
            dtc_code=code, action="no_rule",
            reason="No matching DTC rules configured for this code",
        )

    rule = rules[0]
    if not rule.should_create_work_order:
        return DtcProcessingResult(
            dtc_code=code, action="skipped", rule_id=rule.id,
            reason=f'Rule "{rule.name}" matched but work order creation is disabled',
        )

    severity = dtc.severity or estimate_dtc_severity(code)
    info = dtc_system_info(code)
    title = rule.title_template or (
        f"DTC {code}: {dtc.description or (info and info['system']) or 'Diagnostic Code Detected'}"
    )
    work_order = create_work_order(
        organisation_id,
        asset.id,
        title[:255],
        user_id=user_id,
        description=rule.description_template or _description_for(dtc, severity),
        priority=_priority_for(rule, severity),
        status="open",
        source="dtc",
        template=rule.template,
        assigned_to_id=rule.auto_assign_to_id,
        history_note=f"Auto-created from DTC {code}",
        audit_metadata={"source": "dtc", "dtc_code": code, "rule_id": rule.id},
    )
    db.session.add(DtcWorkOrderHistory(
        organisation_id=organisation_id,
        asset_id=asset.id,
        dtc_code=code,
        rule_id=rule.id,
        work_order_id=work_order.id,
        is_active=True,
    ))
    log.info("Created %s for DTC %s on asset %s", work_order.work_order_number, code, asset.id)
    return DtcProcessingResult(
        dtc_code=code, action="created", rule_id=rule.id,
        work_order_id=work_order.id, work_order_number=work_order.work_order_number,
        reason=f'Work order created from rule "{rule.name}"',
    )


def process_dtcs(asset: Asset, dtcs: list[DetectedDtc], user_id: Optional[int]) -> list[DtcProcessingResult]:
    return [process_dtc(asset, dtc, user_id) for dtc in dtcs]


def summarize(results: list[DtcProcessingResult]) -> dict:
    summary = {"total": len(results)}
    for action in ACTIONS:
        summary[action] = sum(1 for r in results if r.action == action)
    return summary
