# fleetdesk/services/work_orders.py
from __future__ import annotations

import logging
from typing import Optional

from fleetdesk.db_models import (
    db, utcnow,
    WorkOrder, WorkOrderChecklistItem, WorkOrderStatusHistory, DtcWorkOrderHistory,
)
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.services.numbering import next_sequence_number

log = logging.getLogger(__name__)

WORK_ORDER_STATUSES = ("draft", "open", "in_progress", "pending_parts", "completed", "closed")
PRIORITIES = ("low", "medium", "high", "critical")

ALLOWED_TRANSITIONS = {
    "draft": ("open",),
    "open": ("in_progress", "closed"),
    "in_progress": ("pending_parts", "completed", "open"),
    "pending_parts": ("in_progress", "open"),
    "completed": ("closed", "in_progress"),
    "closed": (),
}

AUDIT_COLUMNS = (
    "work_order_number", "asset_id", "title", "description", "priority", "status",
    "assigned_to_id", "due_date", "estimated_hours", "actual_hours",
)


class InvalidTransition(ValueError):
    pass


def next_work_order_number(organisation_id: int) -> str:
    return next_sequence_number(WorkOrder, WorkOrder.work_order_number, organisation_id, "WO")


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, ())


def copy_template_checklist(work_order: WorkOrder, template) -> int:
    items = sorted(template.checklist_items or [], key=lambda i: i.get("order", 0))
    for index, item in enumerate(items):
        work_order.checklist_items.append(WorkOrderChecklistItem(
            title=item.get("title") or f"Item {index + 1}",
            description=item.get("description"),
            is_required=bool(item.get("is_required")),
            position=item.get("order", index),
        ))
    return len(items)


def create_work_order(
    organisation_id: int,
    asset_id: int,
    title: str,
    *,
    user_id: Optional[int],
    description: Optional[str] = None,
    priority: str = "medium",
    status: str = "open",
    source: str = "manual",
    template=None,
    assigned_to_id: Optional[int] = None,
    due_date=None,
    estimated_hours: Optional[float] = None,
    history_note: Optional[str] = None,
    audit_metadata: Optional[dict] = None,
) -> WorkOrder:
    """Stage a work order with its checklist, first history row and audit entry."""
    work_order = WorkOrder(
        organisation_id=organisation_id,
        work_order_number=next_work_order_number(organisation_id),
        asset_id=asset_id,
        template_id=template.id if template is not None else None,
        title=title,
        description=description,
        priority=priority,
        status=status,
        source=source,
        assigned_to_id=assigned_to_id,
        created_by_id=user_id,
        due_date=due_date,
        estimated_hours=estimated_hours,
    )
    if template is not None:
        copy_template_checklist(work_order, template)
    work_order.status_history.append(WorkOrderStatusHistory(
        from_status=None,
        to_status=status,
        changed_by_id=user_id,
        notes=history_note,
    ))
    db.session.add(work_order)
    db.session.flush()

    new_values = snapshot(work_order, AUDIT_COLUMNS)
    if audit_metadata:
        new_values["_metadata"] = audit_metadata
    record_audit(organisation_id, user_id, "create", "work_order", work_order.id, new_values=new_values)
    return work_order


def change_status(work_order: WorkOrder, new_status: str, user_id: Optional[int],
                  notes: Optional[str] = None) -> WorkOrder:
    """
    Move a work order along the status graph.

    ``started_at`` is set the first time work starts and kept through
    pause/resume cycles. Completing requires every required checklist item
    done, and resolves DTC history linked to the work order.
    """
    old_status = work_order.status
    if new_status not in WORK_ORDER_STATUSES:
        raise InvalidTransition(f"Unknown status '{new_status}'")
    if not can_transition(old_status, new_status):
        raise InvalidTransition(f"Cannot change status from {old_status} to {new_status}")

    if new_status == "completed":
        outstanding = [i.title for i in work_order.checklist_items if i.is_required and not i.is_completed]
        if outstanding:
            raise InvalidTransition(
                f"Required checklist items are incomplete: {', '.join(outstanding)}"
            )

    now = utcnow()
    work_order.status = new_status
    if new_status == "in_progress" and work_order.started_at is None:
        work_order.started_at = now
    elif new_status == "completed":
        work_order.completed_at = now
        if notes:
            work_order.completion_notes = notes
        resolved = (
            db.session.query(DtcWorkOrderHistory)
            .filter(DtcWorkOrderHistory.work_order_id == work_order.id,
                    DtcWorkOrderHistory.is_active.is_(True))
            .update({"is_active": False, "resolved_at": now}, synchronize_session=False)
        )
        if resolved:
            log.info("Resolved %s DTC history row(s) for %s", resolved, work_order.work_order_number)
    elif new_status == "closed":
        work_order.closed_at = now

    work_order.status_history.append(WorkOrderStatusHistory(
        from_status=old_status,
        to_status=new_status,
        changed_by_id=user_id,
        notes=notes,
    ))
    record_audit(
        work_order.organisation_id, user_id, "status_change", "work_order", work_order.id,
        old_values={"status": old_status},
        new_values={"status": new_status, "notes": notes},
    )
    return work_order
