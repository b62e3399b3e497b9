"""
Daily activity streaks.
A day counts when the user completes at least one commitment on it.
"""
from datetime import date, timedelta
from typing import Optional


def advance_streak(
    current: int, longest: int, last_activity: Optional[date], today: date
) -> tuple[int, int, date]:
    """Returns (current, longest, last_activity) after activity on ``today``."""
    if last_activity == today:
        current = max(current, 1)
    elif last_activity is not None and last_activity == today - timedelta(days=1):
        current = current + 1
    elif last_activity is not None and last_activity > today:
        # Clock went backwards (timezone change); keep what we have
        return current, max(longest, current), last_activity
    else:
        current = 1
    return current, max(longest, current), today


def effective_streak(current: int, last_activity: Optional[date], today: date) -> int:
    """The stored streak is stale once a full day passes with no activity."""
    if last_activity is None:
        return 0
    if last_activity >= today - timedelta(days=1):
        return current
    return 0
