from fleetdesk.db_models import db, DtcWorkOrderHistory, DtcWorkOrderRule, WorkOrder
from fleetdesk.services.dtc_work_orders import (
    DetectedDtc,
    dtc_system_info,
    estimate_dtc_severity,
    process_dtc,
    process_dtcs,
    rule_matches,
    summarize,
)
from fleetdesk.services.work_orders import change_status


def make_rule(org, **kwargs):
    rule = DtcWorkOrderRule(
        organisation_id=org.id,
        name=kwargs.pop("name", "Misfires"),
        dtc_pattern=kwargs.pop("dtc_pattern", "^P030"),
        is_regex=kwargs.pop("is_regex", True),
        **kwargs,
    )
    db.session.add(rule)
    db.session.commit()
    return rule


def test_rule_matching():
    assert rule_matches(DtcWorkOrderRule(dtc_pattern="^P03", is_regex=True), "p0301")
    assert not rule_matches(DtcWorkOrderRule(dtc_pattern="^P03", is_regex=True), "P0420")
    assert rule_matches(DtcWorkOrderRule(dtc_pattern="p0420", is_regex=False), "P0420")
    assert not rule_matches(DtcWorkOrderRule(dtc_pattern="([", is_regex=True), "P0420")


def test_system_info_and_estimated_severity():
    assert dtc_system_info("P1234") == {"system": "Powertrain", "type": "Manufacturer"}
    assert dtc_system_info("X1234") is None
    assert estimate_dtc_severity("P0302") == "severe"
    assert estimate_dtc_severity("P0524") == "critical"
    assert estimate_dtc_severity("C0035") == "severe"
    assert estimate_dtc_severity("P0420") == "moderate"


def test_matching_rule_creates_work_order(org, admin, make_asset):
    asset = make_asset()
    rule = make_rule(org)

    result = process_dtc(asset, DetectedDtc(code="p0301", description="Cylinder 1 Misfire Detected"), admin.id)
    db.session.commit()

    assert result.action == "created"
    assert result.rule_id == rule.id
    work_order = db.session.get(WorkOrder, result.work_order_id)
    assert work_order.source == "dtc"
    assert work_order.priority == "high"
    assert work_order.title == "DTC P0301: Cylinder 1 Misfire Detected"
    assert "Severity: severe" in work_order.description
    history = db.session.query(DtcWorkOrderHistory).one()
    assert history.dtc_code == "P0301" and history.is_active


def test_open_work_order_suppresses_duplicates(org, admin, make_asset):
    asset = make_asset()
    make_rule(org)
    process_dtc(asset, DetectedDtc(code="P0301"), admin.id)
    db.session.commit()

    again = process_dtc(asset, DetectedDtc(code="P0301"), admin.id)
    assert again.action == "duplicate"
    assert db.session.query(WorkOrder).count() == 1


def test_completing_work_order_resolves_history(org, admin, make_asset):
    asset = make_asset()
    make_rule(org)
    result = process_dtc(asset, DetectedDtc(code="P0301"), admin.id)
    db.session.commit()

    work_order = db.session.get(WorkOrder, result.work_order_id)
    change_status(work_order, "in_progress", admin.id)
    change_status(work_order, "completed", admin.id, "Replaced coil pack")
    db.session.commit()

    history = db.session.query(DtcWorkOrderHistory).one()
    db.session.refresh(history)
    assert history.is_active is False
    assert history.resolved_at is not None
    assert process_dtc(asset, DetectedDtc(code="P0301"), admin.id).action == "created"


def test_fixed_priority_and_disabled_rules(org, admin, make_asset):
    asset = make_asset()
    make_rule(org, name="Emissions", dtc_pattern="P0420", is_regex=False,
              priority_mapping="fixed", fixed_priority="low", title_template="Check catalytic converter")
    make_rule(org, name="Ignore evap", dtc_pattern="^P044", should_create_work_order=False)

    results = process_dtcs(asset, [
        DetectedDtc(code="P0420"),
        DetectedDtc(code="P0442"),
        DetectedDtc(code="B1234"),
        DetectedDtc(code="bogus"),
    ], admin.id)
    db.session.commit()

    assert [r.action for r in results] == ["created", "skipped", "no_rule", "error"]
    work_order = db.session.get(WorkOrder, results[0].work_order_id)
    assert work_order.priority == "low"
    assert work_order.title == "Check catalytic converter"
    assert summarize(results) == {
        "total": 4, "created": 1, "skipped": 1, "duplicate": 0, "no_rule": 1, "error": 1,
    }


def test_first_rule_by_position_wins(org, admin, make_asset):
    asset = make_asset()
    make_rule(org, name="Broad", dtc_pattern="^P0", position=5, priority_mapping="fixed", fixed_priority="low")
    make_rule(org, name="Specific", dtc_pattern="^P030", position=1)

    result = process_dtc(asset, DetectedDtc(code="P0303"), admin.id)
    assert "Specific" in result.reason
