"""
waitlist.py
-----------
Matches waitlist entries against a slot that has just been freed by a
cancelled or rejected booking.

freed_slot: {"date", "time", "staff_id", "service_id"}
"""

from .slot_utils import day_name_for, time_to_minutes

ANY_TIME = ("00:00", "23:59")


def does_entry_match_slot(entry, freed_slot) -> bool:
    if entry.get("status") != "waiting":
        return False

    entry_service = entry.get("service_id")
    if entry_service and freed_slot.get("service_id") and entry_service != freed_slot["service_id"]:
        return False

    entry_staff = entry.get("staff_id")
    if entry_staff and entry_staff != "any" and freed_slot.get("staff_id"):
        if entry_staff != freed_slot["staff_id"]:
            return False

    slot_date = freed_slot.get("date")
    if slot_date:
        if entry.get("preferred_date") and entry["preferred_date"] != slot_date:
            return False
        preferred_days = entry.get("preferred_days")
        if preferred_days and day_name_for(slot_date) not in preferred_days:
            return False

    time_range = entry.get("preferred_time_range")
    if freed_slot.get("time") and time_range:
        if (time_range["start"], time_range["end"]) != ANY_TIME:
            minutes = time_to_minutes(freed_slot["time"])
            if minutes < time_to_minutes(time_range["start"]) or minutes > time_to_minutes(time_range["end"]):
                return False

    return True


def find_matching_entries(entries, freed_slot) -> list:
    """Matching entries, oldest first."""
    matches = [e for e in entries if does_entry_match_slot(e, freed_slot)]
    return sorted(matches, key=lambda e: e.get("created_at") or "")
