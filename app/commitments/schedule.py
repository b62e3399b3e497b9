"""
Pure scheduling rules for commitments: status derivation, recurrence and
sub-commitment progress. Nothing here touches the database.
"""
import math
from datetime import datetime, timedelta
from typing import Iterable, Optional

from dateutil.rrule import DAILY, MONTHLY, WEEKLY, rrule


def derive_status(is_completed: bool, start_date: Optional[datetime], due_date: datetime, now: datetime) -> str:
    """Status is a function of completion, the two dates and the clock; never set directly."""
    if is_completed:
        return "completed"
    if now > due_date:
        return "overdue"
    if start_date is None or now >= start_date:
        return "in-progress"
    return "pending"


def _weekday(day: int) -> int:
    # stored rules use Sunday == 0, dateutil uses Monday == 0
    return (day - 1) % 7


def _recurrence_rule(due_date: datetime, frequency: str, step: int, days_of_week, end_date) -> Optional[rrule]:
    if frequency == "daily":
        return rrule(DAILY, interval=step, dtstart=due_date, until=end_date)
    if frequency == "weekly":
        return rrule(WEEKLY, interval=step, dtstart=due_date, until=end_date)
    if frequency == "monthly":
        # earliest of "same day" and "last day": Jan 31 -> Feb 28
        return rrule(
            MONTHLY, interval=step, bymonthday=(due_date.day, -1), bysetpos=1, dtstart=due_date, until=end_date
        )
    if frequency == "custom":
        days = sorted({_weekday(int(d)) for d in (days_of_week or []) if 0 <= int(d) <= 6})
        if not days:
            return None
        return rrule(WEEKLY, byweekday=days, dtstart=due_date, until=end_date)
    return None


def next_occurrence(
    due_date: datetime,
    frequency: Optional[str],
    interval: Optional[int] = None,
    days_of_week: Optional[Iterable[int]] = None,
    end_date: Optional[datetime] = None,
    count: Optional[int] = None,
) -> Optional[datetime]:
    """
    Next due date of a recurring commitment, or None when the series is over.

    daily/weekly/monthly step by ``interval`` units (default 1); custom moves to
    the next listed weekday. The series ends once the next date passes
    ``end_date`` or when only one occurrence is left (``count <= 1``).
    """
    if not frequency:
        return None
    if count is not None and count <= 1:
        return None

    step = interval if interval and interval > 0 else 1
    # rrule works in whole seconds
    base = due_date.replace(microsecond=0)
    rule = _recurrence_rule(base, frequency, step, days_of_week, end_date)
    if rule is None:
        return None
    next_date = rule.after(base)
    if next_date is None:
        return None
    next_date += timedelta(microseconds=due_date.microsecond)
    if end_date is not None and next_date > end_date:
        return None
    return next_date


def commitment_progress(is_completed: bool, sub_completed: Iterable[bool]) -> int:
    """100 when done, otherwise the share of finished sub-commitments."""
    if is_completed:
        return 100
    flags = list(sub_completed)
    if not flags:
        return 0
    return math.floor(100 * sum(1 for f in flags if f) / len(flags) + 0.5)
