"""Due-date arithmetic and reminder-day rules.

Everything here is pure: callers pass `now` and the entity dates, and get
dates or booleans back. Reminder idempotency rests on these rules matching
an exact day, so a tick must run at most once per calendar day.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from typing import Collection, Optional

from wvpdb.utils.rounding import round_half_up

ANNUAL_INTERVAL_DAYS = 365

TRAINING_DUE_REMINDER_DAYS = frozenset({30, 7, 1})
ANNUAL_REVIEW_REMINDER_DAYS = frozenset({30, 7})
OVERDUE_REMINDER_DAYS = frozenset({0, 7})
INCIDENT_FOLLOWUP_INTERVAL_DAYS = 7
# Annual retraining opens with the first due-date reminder.
RETRAINING_WINDOW_DAYS = max(TRAINING_DUE_REMINDER_DAYS)

_SECONDS_PER_DAY = 24 * 60 * 60


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_annual_due_date(completion_date: datetime) -> datetime:
    """Training and plan-review due dates both fall 365 days after the event."""
    return completion_date + timedelta(days=ANNUAL_INTERVAL_DAYS)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from `earlier` to `later`, rounded to the nearest day."""
    delta = as_utc(later) - as_utc(earlier)
    return round_half_up(delta.total_seconds() / _SECONDS_PER_DAY)


def days_until(target: datetime, now: datetime) -> int:
    """Days until `target`, rounded up; negative once it has passed."""
    delta = as_utc(target) - as_utc(now)
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)


def is_reminder_day(days_until_due: int, thresholds: Collection[int]) -> bool:
    """True only on an exact threshold day; 29 does not match {30, 7, 1}."""
    return days_until_due in thresholds


def is_overdue_reminder_day(days_overdue: int) -> bool:
    """Two touchpoints only: the day it lapses and one week later."""
    return days_overdue in OVERDUE_REMINDER_DAYS


def is_incident_followup_day(days_since_incident: int, investigation_open: bool = True) -> bool:
    """Weekly follow-up for as long as the investigation stays open."""
    if not investigation_open:
        return False
    return days_since_incident > 0 and days_since_incident % INCIDENT_FOLLOWUP_INTERVAL_DAYS == 0


def shift_months(base: datetime, months: int) -> datetime:
    """
    Move a datetime by calendar months (negative goes back), clamping the
    day to the last valid day of the target month.
    """
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    next_month_start = date(year + (month // 12), month % 12 + 1, 1)
    days_in_month = (next_month_start - timedelta(days=1)).day
    return base.replace(year=year, month=month, day=min(base.day, days_in_month))


def is_retraining_open(next_due_date: Optional[datetime], now: datetime) -> bool:
    """A new annual cycle may be signed off once the due date is 30 days out or has passed."""
    if next_due_date is None:
        return True
    return days_until(next_due_date, now) <= RETRAINING_WINDOW_DAYS
