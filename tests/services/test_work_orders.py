import pytest

from fleetdesk.db_models import db, WorkOrderStatusHistory
from fleetdesk.services.work_orders import (
    InvalidTransition,
    can_transition,
    change_status,
    create_work_order,
    next_work_order_number,
)


def test_transition_graph():
    assert can_transition("draft", "open")
    assert can_transition("completed", "in_progress")
    assert not can_transition("draft", "completed")
    assert not can_transition("closed", "open")


def test_numbers_continue_from_highest_existing(org, admin, make_asset):
    asset = make_asset()
    assert next_work_order_number(org.id) == "WO-0001"
    first = create_work_order(org.id, asset.id, "Replace brake pads", user_id=admin.id)
    db.session.commit()
    assert first.work_order_number == "WO-0001"

    first.work_order_number = "WO-0041"
    db.session.commit()
    assert next_work_order_number(org.id) == "WO-0042"


def test_template_checklist_is_copied(org, admin, make_asset, make_template):
    work_order = create_work_order(
        org.id, make_asset().id, "Pre-start", user_id=admin.id, template=make_template(),
    )
    db.session.commit()
    assert [i.title for i in work_order.checklist_items] == ["Check tyres", "Check lights"]
    assert work_order.checklist_items[0].is_required is True
    assert work_order.status_history[0].to_status == "open"


def test_completion_requires_required_checklist_items(org, admin, make_asset, make_template):
    work_order = create_work_order(
        org.id, make_asset().id, "Pre-start", user_id=admin.id, template=make_template(),
    )
    change_status(work_order, "in_progress", admin.id)
    with pytest.raises(InvalidTransition, match="Check tyres"):
        change_status(work_order, "completed", admin.id)

    work_order.checklist_items[0].is_completed = True
    change_status(work_order, "completed", admin.id, "All good")
    db.session.commit()
    assert work_order.completed_at is not None
    assert work_order.completion_notes == "All good"


def test_started_at_survives_pause_and_resume(org, admin, make_asset):
    work_order = create_work_order(org.id, make_asset().id, "Fix hydraulics", user_id=admin.id)
    change_status(work_order, "in_progress", admin.id)
    db.session.commit()
    started = work_order.started_at

    change_status(work_order, "pending_parts", admin.id, "Waiting on hose")
    change_status(work_order, "in_progress", admin.id)
    db.session.commit()
    assert work_order.started_at == started

    history = db.session.query(WorkOrderStatusHistory).filter_by(work_order_id=work_order.id).all()
    assert [(h.from_status, h.to_status) for h in history] == [
        (None, "open"), ("open", "in_progress"), ("in_progress", "pending_parts"), ("pending_parts", "in_progress"),
    ]


def test_invalid_transition_and_closed_is_terminal(org, admin, make_asset):
    work_order = create_work_order(org.id, make_asset().id, "Inspect", user_id=admin.id)
    with pytest.raises(InvalidTransition):
        change_status(work_order, "completed", admin.id)
    change_status(work_order, "closed", admin.id)
    assert work_order.closed_at is not None
    with pytest.raises(InvalidTransition):
        change_status(work_order, "open", admin.id)
