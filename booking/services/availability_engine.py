"""
availability_engine.py
----------------------
Computes bookable slots for a shop by combining:
1) slots generated from staff weekly hours,
2) manually entered one-off slots (which win at identical staff/date/time), and
3) existing active bookings (double-booking prevention under a buffer gap).

The module-level functions are pure: they work on plain-dict snapshots and
never touch the database. AvailabilityEngine loads those snapshots for a shop
and feeds them through.

Overlap rule between a slot and a booking of the same (or unassigned) staff:
    conflict unless slot_end + buffer <= booking_start
                 or booking_end + buffer <= slot_start
"""

import logging
from datetime import datetime

from django.utils import timezone

from ..conf import booking_setting
from ..models import Booking, Staff
from .slot_utils import GENERATED_PREFIX, generate_all_slots, time_to_minutes

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (Booking.STATUS_PENDING, Booking.STATUS_CONFIRMED)
RECURRING_PREFIX = "recurring-"


def is_active_booking(booking) -> bool:
    status = booking.get("status")
    return not status or status in ACTIVE_STATUSES


def is_synthetic_slot_id(slot_id) -> bool:
    """True for slot ids with no stored slot behind them (generated or recurring)."""
    if not slot_id:
        return True
    slot_id = str(slot_id)
    return slot_id.startswith(GENERATED_PREFIX) or slot_id.startswith(RECURRING_PREFIX)


def staff_compatible(a, b) -> bool:
    """An unset staff on either side can collide with anyone."""
    return not a or not b or a == b


def booking_duration(booking, fallback: int) -> int:
    return booking.get("service_duration") or booking.get("duration") or fallback


def intervals_conflict(start_a: int, end_a: int, start_b: int, end_b: int, buffer_minutes: int = 0) -> bool:
    return not (end_a + buffer_minutes <= start_b or end_b + buffer_minutes <= start_a)


def conflicts_with_bookings(date_str, time_str, duration, staff_id, bookings, buffer_minutes=0) -> bool:
    """Does [time, time+duration) on date_str collide with any active booking?"""
    start = time_to_minutes(time_str)
    end = start + duration

    for booking in bookings:
        if not is_active_booking(booking):
            continue
        if booking.get("date") != date_str:
            continue
        if not staff_compatible(staff_id, booking.get("staff_id")):
            continue

        b_start = time_to_minutes(booking["time"])
        b_end = b_start + booking_duration(booking, duration)
        if intervals_conflict(start, end, b_start, b_end, buffer_minutes):
            return True
    return False


def slot_key(slot) -> tuple:
    return (slot.get("staff_id") or "", slot.get("date"), slot.get("time"))


def merge_slots(generated_slots, manual_slots) -> list:
    """Manual slots first, then generated slots not shadowed by a manual one."""
    manual_keys = {slot_key(s) for s in manual_slots}
    unique_generated = [s for s in generated_slots if slot_key(s) not in manual_keys]
    return list(manual_slots) + unique_generated


def filter_booked_slots(slots, bookings, buffer_minutes: int = 0) -> list:
    """Drop every slot that collides with an active booking."""
    active = [b for b in bookings if is_active_booking(b)]
    return [
        slot for slot in slots
        if not conflicts_with_bookings(
            slot["date"], slot["time"], slot["duration"], slot.get("staff_id"), active, buffer_minutes
        )
    ]


def compute_available_slots(
    staff_members,
    manual_slots,
    bookings,
    buffer_minutes: int = 0,
    service=None,
    weeks_ahead: int = 4,
    today=None,
    now=None,
    staff_id=None,
    exclude_booking_id=None,
) -> list:
    """
    Full pipeline: generate -> merge -> filter.

    Args:
        staff_members: staff snapshots; inactive ones are ignored
        manual_slots: manual slot snapshots; only available ones long enough
            for the service are offered
        bookings: booking snapshots (any status)
        service: optional service snapshot; its duration sizes the slots
        staff_id: restrict to one staff member (plus manual slots with no staff)
        now: naive local datetime; slots starting at or before it are dropped
        exclude_booking_id: ignore this booking when checking conflicts
            (used when rescheduling it)
    """
    if service and service.get("duration"):
        duration = service["duration"]
    else:
        duration = booking_setting("DEFAULT_SERVICE_DURATION")

    staff_members = [s for s in staff_members if s.get("active", True)]
    if staff_id:
        staff_members = [s for s in staff_members if s.get("id") == staff_id]

    manual = [s for s in manual_slots if s.get("available") and s.get("duration", 0) >= duration]
    if staff_id:
        manual = [s for s in manual if not s.get("staff_id") or s.get("staff_id") == staff_id]

    generated = generate_all_slots(staff_members, duration, buffer_minutes, weeks_ahead, today=today)
    merged = merge_slots(generated, manual)

    if now is not None:
        merged = [
            s for s in merged
            if datetime.fromisoformat(f"{s['date']}T{s['time']}:00") > now
        ]

    if exclude_booking_id is not None:
        bookings = [b for b in bookings if b.get("id") != exclude_booking_id]

    return filter_booked_slots(merged, bookings, buffer_minutes)


class AvailabilityEngine:
    """Loads a shop's snapshot from the database and runs the pure pipeline."""

    def __init__(self, shop):
        self.shop = shop

    def staff_snapshot(self):
        return [s.to_snapshot() for s in Staff.objects.filter(shop=self.shop)]

    def manual_slot_snapshot(self):
        from staff.models import AvailabilitySlot

        qs = AvailabilitySlot.objects.filter(shop=self.shop).select_related("staff")
        return [s.to_snapshot() for s in qs]

    def booking_snapshot(self, dates=None):
        qs = Booking.objects.filter(shop=self.shop, status__in=ACTIVE_STATUSES)
        if dates is not None:
            qs = qs.filter(date__in=dates)
        return [b.to_snapshot() for b in qs]

    def _local_now(self):
        return timezone.localtime().replace(tzinfo=None)

    def find_available_slots(self, service=None, staff_id=None, exclude_booking_id=None):
        now = self._local_now()
        slots = compute_available_slots(
            staff_members=self.staff_snapshot(),
            manual_slots=self.manual_slot_snapshot(),
            bookings=self.booking_snapshot(),
            buffer_minutes=self.shop.buffer_minutes,
            service=service,
            weeks_ahead=self.shop.slot_horizon_weeks,
            today=now.date(),
            now=now,
            staff_id=staff_id,
            exclude_booking_id=exclude_booking_id,
        )
        logger.debug("Shop %s: %d slots available", self.shop.slug, len(slots))
        return slots

    def find_slot(self, slot_id, service=None, staff_id=None, exclude_booking_id=None):
        """Resolve a slot id the client picked against what is bookable right now."""
        slot_id = str(slot_id)
        for slot in self.find_available_slots(service, staff_id, exclude_booking_id):
            if str(slot["id"]) == slot_id:
                return slot
        return None
