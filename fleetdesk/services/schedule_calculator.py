# fleetdesk/services/schedule_calculator.py
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

INTERVAL_TYPES = ("daily", "weekly", "monthly", "quarterly", "annually", "custom")


def _clamp_day(d: date, day_of_month: Optional[int]) -> date:
    if not day_of_month:
        return d
    last_day = calendar.monthrange(d.year, d.month)[1]
    return d.replace(day=min(day_of_month, last_day))


def _sunday_based_weekday(d: date) -> int:
    # 0 = Sunday ... 6 = Saturday
    return (d.weekday() + 1) % 7


def calculate_next_due_date(
    interval_type: str,
    interval_value: int,
    from_date: date,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    month_of_year: Optional[int] = None,
) -> date:
    """
    Next occurrence after ``from_date``.

    Month arithmetic clamps to the end of shorter months (Jan 31 + 1 month is
    Feb 28/29), then ``day_of_month`` is applied and clamped the same way.
    ``day_of_week`` uses 0 = Sunday.
    """
    if interval_type == "daily" or interval_type == "custom":
        return from_date + timedelta(days=interval_value)

    if interval_type == "weekly":
        nxt = from_date + timedelta(days=7 * interval_value)
        if day_of_week is not None:
            nxt += timedelta(days=(day_of_week - _sunday_based_weekday(nxt) + 7) % 7)
        return nxt

    if interval_type == "monthly":
        return _clamp_day(from_date + relativedelta(months=interval_value), day_of_month)

    if interval_type == "quarterly":
        return _clamp_day(from_date + relativedelta(months=3 * interval_value), day_of_month)

    if interval_type == "annually":
        nxt = from_date + relativedelta(years=interval_value)
        if month_of_year:
            nxt = nxt + relativedelta(month=month_of_year)
        return _clamp_day(nxt, day_of_month)

    raise ValueError(f"Unknown interval type: {interval_type}")


@dataclass(frozen=True)
class Occurrence:
    due_date: date
    lead_date: date

    def to_dict(self):
        return {"due_date": self.due_date.isoformat(), "lead_date": self.lead_date.isoformat()}


def preview_occurrences(
    interval_type: str,
    interval_value: int,
    start_date: date,
    lead_time_days: int = 0,
    end_date: Optional[date] = None,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
    month_of_year: Optional[int] = None,
    count: int = 10,
) -> list[Occurrence]:
    occurrences = []
    current = start_date
    for _ in range(count):
        due = calculate_next_due_date(
            interval_type, interval_value, current, day_of_week, day_of_month, month_of_year
        )
        if end_date and due > end_date:
            break
        occurrences.append(Occurrence(due_date=due, lead_date=due - timedelta(days=lead_time_days or 0)))
        current = due
    return occurrences
