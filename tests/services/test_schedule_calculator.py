from datetime import date

import pytest

from fleetdesk.services.schedule_calculator import calculate_next_due_date, preview_occurrences


def test_daily_and_custom_add_days():
    assert calculate_next_due_date("daily", 3, date(2026, 1, 30)) == date(2026, 2, 2)
    assert calculate_next_due_date("custom", 45, date(2026, 1, 1)) == date(2026, 2, 15)


def test_weekly_snaps_to_day_of_week():
    # 2026-03-02 is a Monday; 0 = Sunday, 5 = Friday
    assert calculate_next_due_date("weekly", 1, date(2026, 3, 2)) == date(2026, 3, 9)
    assert calculate_next_due_date("weekly", 1, date(2026, 3, 2), day_of_week=5) == date(2026, 3, 13)
    assert calculate_next_due_date("weekly", 2, date(2026, 3, 2), day_of_week=1) == date(2026, 3, 16)


def test_monthly_clamps_to_month_end():
    assert calculate_next_due_date("monthly", 1, date(2026, 1, 31)) == date(2026, 2, 28)
    assert calculate_next_due_date("monthly", 1, date(2024, 1, 31)) == date(2024, 2, 29)
    assert calculate_next_due_date("monthly", 1, date(2026, 1, 15), day_of_month=31) == date(2026, 2, 28)
    assert calculate_next_due_date("monthly", 2, date(2026, 1, 10), day_of_month=5) == date(2026, 3, 5)


def test_quarterly_and_annually():
    assert calculate_next_due_date("quarterly", 1, date(2026, 11, 30)) == date(2027, 2, 28)
    assert calculate_next_due_date("annually", 1, date(2024, 2, 29)) == date(2025, 2, 28)
    assert calculate_next_due_date("annually", 1, date(2026, 1, 10), day_of_month=1, month_of_year=6) == \
        date(2027, 6, 1)


def test_unknown_interval_type():
    with pytest.raises(ValueError):
        calculate_next_due_date("fortnightly", 1, date(2026, 1, 1))


def test_preview_applies_lead_time_and_end_date():
    occurrences = preview_occurrences(
        "monthly", 1, date(2026, 1, 31), lead_time_days=7, end_date=date(2026, 5, 1), count=10,
    )
    assert [o.due_date for o in occurrences] == [
        date(2026, 2, 28), date(2026, 3, 28), date(2026, 4, 28),
    ]
    assert occurrences[0].lead_date == date(2026, 2, 21)
    assert occurrences[0].to_dict() == {"due_date": "2026-02-28", "lead_date": "2026-02-21"}


def test_preview_respects_count():
    assert len(preview_occurrences("daily", 1, date(2026, 1, 1), count=5)) == 5
