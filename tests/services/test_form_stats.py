from datetime import datetime, timezone
from types import SimpleNamespace

from fleetdesk.services.form_stats import compute_form_stats, field_distribution

FIELDS = [
    {"id": "damage", "type": "radio", "label": "Damage?", "options": ["Yes", "No"]},
    {"id": "cleaned", "type": "checkbox", "label": "Cleaned"},
    {"id": "notes", "type": "textarea", "label": "Notes"},
]

ALICE = SimpleNamespace(name="Alice")
BOB = SimpleNamespace(name="Bob")


def submission(status, responses, started=None, submitted=None, user_id=1, user=ALICE):
    return SimpleNamespace(
        status=status,
        responses=responses,
        started_at=started,
        submitted_at=submitted,
        submitted_by_id=user_id,
        submitted_by=user,
    )


def at(day, hour=9, minute=0):
    return datetime(2026, 5, day, hour, minute, tzinfo=timezone.utc)


SUBMISSIONS = [
    submission("submitted", {"damage": "Yes", "cleaned": True}, at(1), at(1, 9, 10)),
    submission("approved", {"damage": "No", "cleaned": False}, at(1), at(1, 9, 20)),
    submission("submitted", {"damage": "Yes"}, at(2), at(2, 9, 30), user_id=2, user=BOB),
    submission("draft", {}, at(3), None),
]


def test_totals_and_status_breakdown():
    stats = compute_form_stats(FIELDS, SUBMISSIONS, at(1, 0), at(31, 0))
    assert stats["total_submissions"] == 4
    assert stats["status_breakdown"] == [
        {"status": "draft", "count": 1, "percentage": 25},
        {"status": "submitted", "count": 2, "percentage": 50},
        {"status": "approved", "count": 1, "percentage": 25},
    ]
    assert stats["completion_rate"] == 75


def test_submissions_by_date_and_average_time():
    stats = compute_form_stats(FIELDS, SUBMISSIONS, at(1, 0), at(31, 0))
    assert stats["submissions_by_date"] == [
        {"date": "2026-05-01", "count": 2},
        {"date": "2026-05-02", "count": 1},
    ]
    # 10, 20 and 30 minutes
    assert stats["average_completion_time"] == 1200


def test_field_stats_only_cover_choice_fields():
    stats = compute_form_stats(FIELDS, SUBMISSIONS, at(1, 0), at(31, 0))
    assert [f["field_id"] for f in stats["field_stats"]] == ["damage", "cleaned"]

    damage = stats["field_stats"][0]
    assert damage["distribution"][0] == {"value": "Yes", "count": 2, "percentage": 50}
    assert damage["completion_rate"] == 75


def test_checkbox_and_multi_select_distribution():
    cleaned = field_distribution(FIELDS[1], SUBMISSIONS)
    assert {d["value"]: d["count"] for d in cleaned["distribution"]} == {"Yes": 1, "No": 1}

    extras = {"id": "extras", "type": "multi_select"}
    rows = [submission("submitted", {"extras": ["GPS", "Tail lift"]}),
            submission("submitted", {"extras": ["GPS"]})]
    assert field_distribution(extras, rows)["distribution"][0] == {"value": "GPS", "count": 2, "percentage": 100}


def test_top_submitters_and_empty_form():
    stats = compute_form_stats(FIELDS, SUBMISSIONS)
    assert stats["top_submitters"][0] == {"user_id": 1, "name": "Alice", "count": 3}

    empty = compute_form_stats(FIELDS, [])
    assert empty["completion_rate"] == 0
    assert empty["average_completion_time"] is None
    assert empty["field_stats"][0]["distribution"] == []
