"""
recurring.py
------------
Plans the future occurrences of a recurring appointment series.

Given the first occurrence and a repeat interval, every candidate date up to
the horizon (3 calendar months after the first date by default) is checked
against active bookings of the same staff and against dates already accepted
in the same pass. The resulting RecurringPlan is shown to the client before
anything is written.
"""

import calendar
from dataclasses import dataclass, field
from datetime import timedelta

from .availability_engine import conflicts_with_bookings
from .slot_utils import format_date_str, parse_date_str

INTERVAL_DAYS = {
    "weekly": 7,
    "biweekly": 14,
    "fourweekly": 28,
}

INTERVAL_LABELS = {
    "weekly": "week",
    "biweekly": "2 weeks",
    "fourweekly": "4 weeks",
    "monthly": "month",
}


@dataclass
class RecurringPlan:
    first_date: str
    interval: str
    accepted: list = field(default_factory=list)
    skipped: list = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.accepted) + 1

    @property
    def end_date(self) -> str:
        return self.accepted[-1] if self.accepted else self.first_date

    @property
    def interval_label(self) -> str:
        return INTERVAL_LABELS[self.interval]

    def as_dict(self) -> dict:
        return {
            "first_date": self.first_date,
            "interval": self.interval,
            "interval_label": self.interval_label,
            "accepted": list(self.accepted),
            "skipped": list(self.skipped),
            "total": self.total,
            "end_date": self.end_date,
        }


def add_months(date_str: str, months: int) -> str:
    """Same day-of-month `months` later, clamped to the last day of that month."""
    start = parse_date_str(date_str)
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return f"{year:04d}-{month:02d}-{day:02d}"


def occurrence_date(first_date: str, interval: str, k: int) -> str:
    """The k-th occurrence after first_date (k >= 1)."""
    if interval == "monthly":
        return add_months(first_date, k)
    return format_date_str(parse_date_str(first_date) + timedelta(days=INTERVAL_DAYS[interval] * k))


def candidate_dates(first_date: str, interval: str, horizon_months: int = 3) -> list:
    """Occurrence dates strictly after first_date, up to and including the horizon end."""
    if interval not in INTERVAL_LABELS:
        raise ValueError(f"Unknown recurring interval: {interval!r}")

    horizon_end = add_months(first_date, horizon_months)
    dates = []
    k = 1
    while True:
        candidate = occurrence_date(first_date, interval, k)
        if candidate > horizon_end:
            break
        dates.append(candidate)
        k += 1
    return dates


def plan_recurring_series(
    first_occurrence,
    interval: str,
    bookings,
    buffer_minutes: int = 0,
    horizon_months: int = 3,
) -> RecurringPlan:
    """
    Classify each future occurrence as accepted or skipped.

    first_occurrence needs date, time, duration and (optionally) staff_id.
    """
    first_date = first_occurrence["date"]
    time_str = first_occurrence["time"]
    duration = first_occurrence["duration"]
    staff_id = first_occurrence.get("staff_id")

    plan = RecurringPlan(first_date=first_date, interval=interval)
    accepted_dates = set()

    for candidate in candidate_dates(first_date, interval, horizon_months):
        if candidate in accepted_dates or conflicts_with_bookings(
            candidate, time_str, duration, staff_id, bookings, buffer_minutes
        ):
            plan.skipped.append(candidate)
            continue
        accepted_dates.add(candidate)
        plan.accepted.append(candidate)

    return plan
