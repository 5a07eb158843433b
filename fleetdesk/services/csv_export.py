# fleetdesk/services/csv_export.py
from __future__ import annotations

import csv
import io
import json
import re
from datetime import date
from typing import Any, Iterable

from flask import Response

SUBMISSION_HEADERS = [
    "Submission ID", "Status", "Submitted At", "Submitted By", "Submitter Email",
    "Version", "Context Type", "Context ID", "Notes",
]


def rows_to_csv(headers: list[str], rows: Iterable[list[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return buffer.getvalue()


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def safe_filename(name: str) -> str:
    cleaned = re.sub(r"[^a-z0-9]+", "_", (name or "export").lower()).strip("_")
    return cleaned or "export"


def format_response_value(value: Any, field_type: str) -> str:
    """Flatten one answer into a CSV cell."""
    if value is None or value == "":
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, list):
        return "; ".join(format_response_value(v, field_type) for v in value)
    if isinstance(value, dict):
        if field_type == "location" and "lat" in value and "lng" in value:
            return f"{value['lat']}, {value['lng']}"
        if field_type in ("file", "photo") and "url" in value:
            return str(value["url"])
        return json.dumps(value, sort_keys=True)
    return str(value)


def submissions_csv(form_name: str, fields: list[dict], submissions) -> tuple[str, str]:
    """
    CSV of submissions using ``fields`` for the answer columns.
    Returns ``(content, filename)``.
    """
    answer_fields = [f for f in fields if f.get("type") != "section"]
    headers = SUBMISSION_HEADERS + [f.get("label") or f["id"] for f in answer_fields]

    rows = []
    for s in submissions:
        submitter = s.submitted_by
        responses = s.responses or {}
        rows.append([
            s.id,
            s.status,
            s.submitted_at.isoformat() if s.submitted_at else "",
            submitter.name if submitter else "",
            submitter.email if submitter else "",
            s.version.version if s.version else "",
            s.context_type,
            s.context_id,
            s.notes,
        ] + [format_response_value(responses.get(f["id"]), f.get("type")) for f in answer_fields])

    filename = f"{safe_filename(form_name)}_responses_{date.today().isoformat()}.csv"
    return rows_to_csv(headers, rows), filename
