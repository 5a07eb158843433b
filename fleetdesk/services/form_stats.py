# fleetdesk/services/form_stats.py
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from fleetdesk.db_models import as_utc, utcnow

SUBMISSION_STATUSES = ("draft", "submitted", "approved", "rejected")
ANALYZABLE_FIELD_TYPES = ("dropdown", "radio", "multi_select", "checkbox")


def _pct(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def field_distribution(field: dict, submissions) -> dict:
    counts = Counter()
    filled = 0
    for s in submissions:
        value = (s.responses or {}).get(field["id"])
        if value is None or value == "":
            continue
        filled += 1
        if field.get("type") == "checkbox":
            counts["Yes" if value else "No"] += 1
        elif isinstance(value, list):
            counts.update(str(v) for v in value)
        else:
            counts[str(value)] += 1

    total = len(submissions)
    return {
        "field_id": field["id"],
        "label": field.get("label"),
        "field_type": field.get("type"),
        "distribution": [
            {"value": value, "count": count, "percentage": _pct(count, total)}
            for value, count in counts.most_common(10)
        ],
        "completion_rate": _pct(filled, total),
    }


def compute_form_stats(fields: list[dict], submissions,
                       date_from: Optional[datetime] = None,
                       date_to: Optional[datetime] = None) -> dict:
    """
    Aggregate a form's submissions (already filtered to the requested range).

    ``submissions_by_date`` covers the last 30 days unless a range is given.
    Completion rate counts submitted and approved against everything,
    drafts included.
    """
    total = len(submissions)
    status_counts = Counter(s.status for s in submissions)
    status_breakdown = [
        {"status": status, "count": status_counts[status], "percentage": _pct(status_counts[status], total)}
        for status in SUBMISSION_STATUSES if status_counts[status]
    ]

    range_end = date_to or utcnow()
    range_start = date_from or (range_end - timedelta(days=30))
    by_date = Counter()
    for s in submissions:
        submitted = as_utc(s.submitted_at)
        if submitted and as_utc(range_start) <= submitted <= as_utc(range_end):
            by_date[submitted.date().isoformat()] += 1

    durations = [
        (as_utc(s.submitted_at) - as_utc(s.started_at)).total_seconds()
        for s in submissions
        if s.status != "draft" and s.submitted_at and s.started_at
    ]

    submitters = Counter()
    names = {}
    for s in submissions:
        submitters[s.submitted_by_id] += 1
        if s.submitted_by is not None:
            names[s.submitted_by_id] = s.submitted_by.name

    return {
        "total_submissions": total,
        "status_breakdown": status_breakdown,
        "submissions_by_date": [{"date": d, "count": by_date[d]} for d in sorted(by_date)],
        "completion_rate": _pct(status_counts["submitted"] + status_counts["approved"], total),
        "average_completion_time": round(sum(durations) / len(durations)) if durations else None,
        "field_stats": [
            field_distribution(f, submissions) for f in fields if f.get("type") in ANALYZABLE_FIELD_TYPES
        ],
        "top_submitters": [
            {"user_id": user_id, "name": names.get(user_id, "Unknown"), "count": count}
            for user_id, count in submitters.most_common(10)
        ],
        "date_range": {"from": as_utc(range_start).isoformat(), "to": as_utc(range_end).isoformat()},
    }
