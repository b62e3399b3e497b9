from datetime import date, datetime, timedelta

from app.achievements.streaks import advance_streak, effective_streak
from app.commitments.schedule import commitment_progress, derive_status, next_occurrence

NOW = datetime(2026, 10, 19, 12, 0)  # a Monday


def test_derive_status():
    start = NOW - timedelta(days=1)
    due = NOW + timedelta(days=1)
    assert derive_status(False, start, due, NOW) == "in-progress"
    assert derive_status(False, NOW + timedelta(hours=1), due, NOW) == "pending"
    assert derive_status(False, start, NOW - timedelta(minutes=1), NOW) == "overdue"
    assert derive_status(True, start, NOW - timedelta(days=3), NOW) == "completed"


def test_next_occurrence_fixed_steps():
    assert next_occurrence(NOW, "daily") == NOW + timedelta(days=1)
    assert next_occurrence(NOW, "daily", interval=3) == NOW + timedelta(days=3)
    assert next_occurrence(NOW, "weekly", interval=2) == NOW + timedelta(weeks=2)
    assert next_occurrence(datetime(2027, 1, 31, 9, 0), "monthly") == datetime(2027, 2, 28, 9, 0)
    assert next_occurrence(datetime(2026, 11, 30), "monthly", interval=3) == datetime(2027, 2, 28)


def test_next_occurrence_custom_weekdays():
    # Sunday = 0, so Wednesday = 3
    assert next_occurrence(NOW, "custom", days_of_week=[3]) == datetime(2026, 10, 21, 12, 0)
    assert next_occurrence(NOW, "custom", days_of_week=[1]) == datetime(2026, 10, 26, 12, 0)
    assert next_occurrence(NOW, "custom", days_of_week=[]) is None


def test_series_end():
    assert next_occurrence(NOW, None) is None
    assert next_occurrence(NOW, "daily", end_date=NOW + timedelta(hours=12)) is None
    assert next_occurrence(NOW, "daily", count=1) is None
    assert next_occurrence(NOW, "daily", count=2) == NOW + timedelta(days=1)


def test_commitment_progress():
    assert commitment_progress(True, []) == 100
    assert commitment_progress(False, []) == 0
    assert commitment_progress(False, [True, False]) == 50
    assert commitment_progress(False, [True, True, False]) == 67


def test_streaks():
    today = date(2026, 10, 19)
    assert advance_streak(0, 0, None, today) == (1, 1, today)
    assert advance_streak(4, 6, today - timedelta(days=1), today) == (5, 6, today)
    assert advance_streak(4, 4, today, today) == (4, 4, today)
    assert advance_streak(9, 9, today - timedelta(days=3), today) == (1, 9, today)

    assert effective_streak(5, today - timedelta(days=1), today) == 5
    assert effective_streak(5, today - timedelta(days=2), today) == 0
    assert effective_streak(0, None, today) == 0


def test_next_occurrence_keeps_time_of_day():
    due = datetime(2026, 3, 15, 8, 30, 5, 250000)
    assert next_occurrence(due, "monthly") == datetime(2026, 4, 15, 8, 30, 5, 250000)
    assert next_occurrence(due, "daily", interval=2) == datetime(2026, 3, 17, 8, 30, 5, 250000)
    # Sunday = 0; the 15th is a Sunday, so the next Sunday is a week later
    assert next_occurrence(due, "custom", days_of_week=[0, 6]) == datetime(2026, 3, 21, 8, 30, 5, 250000)
    assert next_occurrence(due, "custom", days_of_week=[0]) == datetime(2026, 3, 22, 8, 30, 5, 250000)
    assert next_occurrence(due, "weekly", end_date=datetime(2026, 3, 22, 8, 30, 5)) is None
