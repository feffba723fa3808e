"""
slot_utils.py
-------------
Time arithmetic on "HH:MM" / "YYYY-MM-DD" strings and expansion of a staff
member's weekly hours into concrete, dated appointment slots.

Dates are always built at noon ("YYYY-MM-DDT12:00:00") so that day
arithmetic never lands on a DST or midnight boundary.
"""

import logging
from datetime import date as date_cls, datetime, timedelta

logger = logging.getLogger(__name__)

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

GENERATED_PREFIX = "wh-"


def time_to_minutes(value: str) -> int:
    h, m = value.split(":")
    return int(h) * 60 + int(m)


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_date_str(value) -> str:
    """Format a date/datetime as 'YYYY-MM-DD' from its local calendar fields."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_date_str(value: str) -> datetime:
    """Parse 'YYYY-MM-DD' into a naive datetime anchored at noon."""
    return datetime.fromisoformat(f"{value}T12:00:00")


def add_days(date_str: str, days: int) -> str:
    return format_date_str(parse_date_str(date_str) + timedelta(days=days))


def day_name_for(date_str: str) -> str:
    return DAY_NAMES[parse_date_str(date_str).weekday()]


def _day_config(weekly_hours, date_str):
    if not weekly_hours:
        return None
    config = weekly_hours.get(day_name_for(date_str))
    if not config or not config.get("enabled"):
        return None
    return config


def _breaks_of(config) -> list:
    # "breaks" is the list form; a lone "break" is still honoured.
    breaks = config.get("breaks")
    if breaks is None:
        breaks = [config["break"]] if config.get("break") else []
    return [b for b in breaks if b and b.get("start") and b.get("end")]


def get_breaks_for_date(weekly_hours, date_str: str) -> list:
    """Breaks in force for this staff member on date_str (empty if not working)."""
    config = _day_config(weekly_hours, date_str)
    if config is None:
        return []
    return _breaks_of(config)


def generate_slots_for_date(
    weekly_hours,
    date_str: str,
    service_duration: int,
    buffer_minutes: int,
    staff_id,
    staff_name,
) -> list:
    """
    Generate the bookable slots for one staff member on one date.

    Walks the working window [start, end) in steps of
    service_duration + buffer_minutes. A slot that would overlap a break makes
    the walk jump to the end of that break and continue from there.

    Missing, disabled or malformed day configuration yields no slots.
    """
    config = _day_config(weekly_hours, date_str)
    if config is None:
        return []

    try:
        start_min = time_to_minutes(config["start"])
        end_min = time_to_minutes(config["end"])
        breaks = sorted(
            (time_to_minutes(b["start"]), time_to_minutes(b["end"]))
            for b in _breaks_of(config)
        )
    except (KeyError, ValueError, TypeError, AttributeError):
        logger.debug("Ignoring malformed weekly hours for staff %s on %s", staff_id, date_str)
        return []

    step = service_duration + buffer_minutes
    slots = []

    current = start_min
    while current + service_duration <= end_min:
        slot_end = current + service_duration

        overlapping = next(
            (b_end for b_start, b_end in breaks if current < b_end and slot_end > b_start),
            None,
        )
        if overlapping is not None:
            current = overlapping
            continue

        time_str = minutes_to_time(current)
        slots.append({
            "id": f"{GENERATED_PREFIX}{staff_id}-{date_str}-{time_str}",
            "date": date_str,
            "time": time_str,
            "duration": service_duration,
            "available": True,
            "staff_id": staff_id,
            "staff_name": staff_name,
            "generated": True,
        })

        if step <= 0:
            break
        current += step

    return slots


def generate_all_slots(
    staff_members,
    service_duration: int,
    buffer_minutes: int = 0,
    weeks_ahead: int = 4,
    today=None,
) -> list:
    """
    Expand every staff member's weekly hours over the next `weeks_ahead` weeks,
    starting at `today` (defaults to the current local date).

    Staff without weekly hours are skipped.
    """
    if today is None:
        today = date_cls.today()
    start = parse_date_str(format_date_str(today))
    total_days = weeks_ahead * 7

    slots = []
    for staff in staff_members:
        weekly_hours = staff.get("weekly_hours")
        if not weekly_hours:
            continue

        for offset in range(total_days):
            date_str = format_date_str(start + timedelta(days=offset))
            slots.extend(
                generate_slots_for_date(
                    weekly_hours,
                    date_str,
                    service_duration,
                    buffer_minutes,
                    staff.get("id"),
                    staff.get("name"),
                )
            )

    return slots
