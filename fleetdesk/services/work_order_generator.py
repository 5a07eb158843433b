# fleetdesk/services/work_order_generator.py
"""
Turns due maintenance schedules into work orders.

A schedule is evaluated once per run: the time trigger (today on or after
``next_due_date - lead_time_days``) is computed for the schedule, then each
in-scope asset gets its own work order. Usage triggers are per asset, measured
from the mileage/hours recorded on that asset's last generation row. The
schedule's ``next_due_date`` advances once per run no matter how many assets
were covered. Only ``run_schedule`` commits.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from fleetdesk.db_models import (
    db, utcnow,
    Asset, MaintenanceSchedule, MaintenanceScheduleWorkOrder,
)
from fleetdesk.services.schedule_calculator import calculate_next_due_date
from fleetdesk.services.work_orders import create_work_order

log = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    schedule_id: int
    schedule_name: str
    asset_id: Optional[int] = None
    asset_number: Optional[str] = None
    status: str = "skipped"
    reason: Optional[str] = None
    work_order_id: Optional[int] = None
    work_order_number: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def schedule_assets(schedule: MaintenanceSchedule) -> list[Asset]:
    query = db.session.query(Asset).filter(
        Asset.organisation_id == schedule.organisation_id,
        Asset.is_archived.is_(False),
    )
    if schedule.asset_id:
        return query.filter(Asset.id == schedule.asset_id).all()
    if schedule.category_id:
        return query.filter(Asset.category_id == schedule.category_id).order_by(Asset.id).all()
    return []


def time_trigger_due(schedule: MaintenanceSchedule, today: date) -> bool:
    if schedule.schedule_type not in ("time_based", "combined"):
        return False
    if not schedule.next_due_date or not schedule.interval_type:
        return False
    lead_date = schedule.next_due_date - timedelta(days=schedule.lead_time_days or 0)
    return today >= lead_date


def _last_generation(schedule_id: int, asset_id: int) -> Optional[MaintenanceScheduleWorkOrder]:
    return (
        db.session.query(MaintenanceScheduleWorkOrder)
        .filter(MaintenanceScheduleWorkOrder.schedule_id == schedule_id,
                MaintenanceScheduleWorkOrder.asset_id == asset_id)
        .order_by(MaintenanceScheduleWorkOrder.id.desc())
        .first()
    )


def usage_triggers(schedule: MaintenanceSchedule, asset: Asset) -> list[str]:
    if schedule.schedule_type not in ("usage_based", "combined"):
        return []
    last = _last_generation(schedule.id, asset.id)
    reasons = []
    if schedule.mileage_interval and asset.mileage:
        baseline = (last.mileage_at_generation if last and last.mileage_at_generation else 0)
        threshold = baseline + schedule.mileage_interval
        if asset.mileage >= threshold:
            reasons.append(f"Mileage: {asset.mileage:g} >= {threshold:g}")
    if schedule.hours_interval and asset.operational_hours:
        baseline = (last.hours_at_generation if last and last.hours_at_generation else 0)
        threshold = baseline + schedule.hours_interval
        if asset.operational_hours >= threshold:
            reasons.append(f"Hours: {asset.operational_hours:g} >= {threshold:g}")
    return reasons


def _already_generated(schedule_id: int, asset_id: int, scheduled_date: date) -> bool:
    return (
        db.session.query(MaintenanceScheduleWorkOrder.id)
        .filter(MaintenanceScheduleWorkOrder.schedule_id == schedule_id,
                MaintenanceScheduleWorkOrder.asset_id == asset_id,
                MaintenanceScheduleWorkOrder.scheduled_date == scheduled_date)
        .first()
        is not None
    )


def generate_for_schedule(schedule: MaintenanceSchedule, today: Optional[date] = None) -> list[GenerationResult]:
    """Stage work orders for one schedule. The caller commits."""
    today = today or date.today()
    results = []
    time_due = time_trigger_due(schedule, today)

    for asset in schedule_assets(schedule):
        result = GenerationResult(
            schedule_id=schedule.id,
            schedule_name=schedule.name,
            asset_id=asset.id,
            asset_number=asset.asset_number,
        )
        reasons = []
        if time_due:
            reasons.append(f"Time-based: due {schedule.next_due_date.isoformat()}")
        reasons.extend(usage_triggers(schedule, asset))

        if not reasons:
            result.reason = "Not yet due"
            results.append(result)
            continue

        scheduled_date = schedule.next_due_date if time_due else today
        if _already_generated(schedule.id, asset.id, scheduled_date):
            result.reason = f"Already generated for {scheduled_date.isoformat()}"
            results.append(result)
            continue

        trigger = " + ".join(reasons)
        work_order = create_work_order(
            schedule.organisation_id,
            asset.id,
            schedule.name,
            user_id=schedule.created_by_id,
            description=schedule.description,
            priority=schedule.default_priority,
            status="open",
            source="schedule",
            template=schedule.template,
            assigned_to_id=schedule.assigned_to_id,
            due_date=schedule.next_due_date or today,
            history_note=f"Auto-generated from maintenance schedule: {schedule.name}",
            audit_metadata={
                "source": "maintenance_schedule",
                "schedule_id": schedule.id,
                "trigger": trigger,
            },
        )
        db.session.add(MaintenanceScheduleWorkOrder(
            schedule_id=schedule.id,
            asset_id=asset.id,
            work_order_id=work_order.id,
            scheduled_date=scheduled_date,
            trigger="time" if time_due else "usage",
            mileage_at_generation=asset.mileage,
            hours_at_generation=asset.operational_hours,
        ))

        result.status = "created"
        result.reason = trigger
        result.work_order_id = work_order.id
        result.work_order_number = work_order.work_order_number
        results.append(result)

    if any(r.status == "created" for r in results):
        schedule.last_generated_at = utcnow()

    if time_due:
        schedule.next_due_date = calculate_next_due_date(
            schedule.interval_type,
            schedule.interval_value,
            schedule.next_due_date,
            schedule.day_of_week,
            schedule.day_of_month,
            schedule.month_of_year,
        )
    return results


def due_schedules(today: Optional[date] = None, organisation_id: Optional[int] = None):
    today = today or date.today()
    query = db.session.query(MaintenanceSchedule).filter(
        MaintenanceSchedule.is_active.is_(True),
        MaintenanceSchedule.is_archived.is_(False),
        or_(MaintenanceSchedule.end_date.is_(None), MaintenanceSchedule.end_date >= today),
    )
    if organisation_id is not None:
        query = query.filter(MaintenanceSchedule.organisation_id == organisation_id)
    return query.order_by(MaintenanceSchedule.id).all()


def run_schedule(schedule: MaintenanceSchedule, today: Optional[date] = None) -> list[GenerationResult]:
    """
    Generate and commit one schedule. A database failure rolls back only this
    schedule and is reported as an error row.
    """
    schedule_id, schedule_name = schedule.id, schedule.name
    try:
        results = generate_for_schedule(schedule, today)
        db.session.commit()
        return results
    except SQLAlchemyError as e:
        db.session.rollback()
        log.error("Failed to generate work orders for schedule %s: %s", schedule_id, e)
        return [GenerationResult(
            schedule_id=schedule_id,
            schedule_name=schedule_name,
            status="error",
            reason=str(e),
        )]


def generate_scheduled_work_orders(today: Optional[date] = None,
                                   organisation_id: Optional[int] = None) -> list[GenerationResult]:
    """Run every active schedule, committing each one separately."""
    results = []
    for schedule in due_schedules(today, organisation_id):
        results.extend(run_schedule(schedule, today))
    return results


def summarize(results: list[GenerationResult]) -> dict:
    return {
        "total": len(results),
        "created": sum(1 for r in results if r.status == "created"),
        "skipped": sum(1 for r in results if r.status == "skipped"),
        "errors": sum(1 for r in results if r.status == "error"),
    }
