"""
booking_manager.py
------------------
Coordinates booking creation, recurring series, rescheduling, cancellation
and shop-side approval.

Every action is planned first and executed second:
- plan_* functions are pure. They take snapshots (plain dicts) and return a
  WritePlan, an ordered list of ClaimSlot / ReleaseSlot / CreateBooking /
  PatchBooking writes.
- BookingManager loads snapshots from the database, calls a planner and
  applies the resulting writes.

Notes:
- Claiming a manual slot is a conditional update (only while available=True);
  losing that race raises SlotUnavailable and rolls the action back.
- Synthetic slot ids ("wh-..." / "recurring-...") are never claimed or released.
- Every booking write re-checks conflicts under a lock on the shop row, so
  a booking committed after the slot was offered still wins.
- Recurring occurrences are written one by one. A failure stops the loop but
  keeps the occurrences already written; SeriesResult reports the counts.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date as date_cls, time as time_cls

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from shops.models import Shop

from ..conf import booking_setting
from ..exceptions import BookingError, InvalidTransition, SlotUnavailable
from ..models import Booking, Staff
from .availability_engine import AvailabilityEngine, conflicts_with_bookings, is_synthetic_slot_id
from .recurring import RecurringPlan, plan_recurring_series
from .ref_codes import generate_ref_code

logger = logging.getLogger(__name__)

CANCEL_MODES = ("single", "future")

ALLOWED_TRANSITIONS = {
    Booking.STATUS_PENDING: {Booking.STATUS_CONFIRMED, Booking.STATUS_REJECTED, Booking.STATUS_CANCELLED},
    Booking.STATUS_CONFIRMED: {Booking.STATUS_PENDING, Booking.STATUS_REJECTED, Booking.STATUS_CANCELLED},
    Booking.STATUS_CANCELLED: set(),
    Booking.STATUS_REJECTED: set(),
}

# Booking fields copied from the first occurrence into every recurring one.
SERIES_TEMPLATE_FIELDS = (
    "time",
    "duration",
    "service_id",
    "service_name",
    "service_duration",
    "price",
    "deposit_amount",
    "staff_id",
    "staff_name",
    "status",
    "client_name",
    "client_email",
    "client_phone",
    "notes",
)


# -------------------------
# Write plan
# -------------------------
@dataclass(frozen=True)
class ClaimSlot:
    slot_id: str


@dataclass(frozen=True)
class ReleaseSlot:
    slot_id: str


@dataclass(frozen=True)
class CreateBooking:
    fields: dict


@dataclass(frozen=True)
class PatchBooking:
    booking_id: int
    changes: dict


@dataclass
class WritePlan:
    writes: list = field(default_factory=list)

    def claim(self, slot_id):
        if not is_synthetic_slot_id(slot_id):
            self.writes.append(ClaimSlot(str(slot_id)))

    def release(self, slot_id):
        if not is_synthetic_slot_id(slot_id):
            self.writes.append(ReleaseSlot(str(slot_id)))

    def create(self, fields):
        self.writes.append(CreateBooking(dict(fields)))

    def patch(self, booking_id, changes):
        self.writes.append(PatchBooking(booking_id, dict(changes)))

    def of_type(self, write_type) -> list:
        return [w for w in self.writes if isinstance(w, write_type)]


# -------------------------
# Pure planners
# -------------------------
def plan_create_booking(payload, slot, require_approval: bool = False, ref_code=None) -> WritePlan:
    """
    Primary booking on `slot`.

    payload carries the client/service data (client_name, client_email,
    client_phone, notes, service_id, service_name, service_duration, price,
    deposit_amount) and optionally staff_id/staff_name for an unassigned slot.
    """
    fields = dict(payload)
    fields.update(
        ref_code=ref_code or generate_ref_code(),
        date=slot["date"],
        time=slot["time"],
        duration=payload.get("service_duration") or slot["duration"],
        slot_id=str(slot["id"]),
        status=Booking.STATUS_PENDING if require_approval else Booking.STATUS_CONFIRMED,
    )
    if slot.get("staff_id"):
        fields["staff_id"] = slot["staff_id"]
        fields["staff_name"] = slot.get("staff_name") or ""

    plan = WritePlan()
    if not slot.get("generated"):
        plan.claim(slot["id"])
    plan.create(fields)
    return plan


def plan_recurring_occurrences(
    primary,
    interval: str,
    bookings,
    buffer_minutes: int = 0,
    group_id=None,
    horizon_months: int = 3,
):
    """
    Plan the rest of a series after `primary` (a booking snapshot that also
    carries the SERIES_TEMPLATE_FIELDS). Returns (RecurringPlan, WritePlan).
    """
    group_id = group_id or uuid.uuid4().hex
    series = plan_recurring_series(
        {
            "date": primary["date"],
            "time": primary["time"],
            "duration": primary.get("service_duration") or primary["duration"],
            "staff_id": primary.get("staff_id"),
        },
        interval,
        bookings,
        buffer_minutes,
        horizon_months,
    )

    plan = WritePlan()
    if primary.get("id") is not None:
        plan.patch(primary["id"], {"recurring_group_id": group_id, "recurring_interval": interval})

    template = {k: primary.get(k) for k in SERIES_TEMPLATE_FIELDS if k in primary}
    for occurrence in series.accepted:
        fields = dict(template)
        fields.update(
            date=occurrence,
            slot_id=f"recurring-{group_id}-{occurrence}",
            ref_code=generate_ref_code(),
            recurring_group_id=group_id,
            recurring_interval=interval,
        )
        plan.create(fields)

    return series, plan


def plan_reschedule(booking, new_slot, require_approval: bool = False) -> WritePlan:
    """Move one booking to new_slot. Other members of its series are not touched."""
    if booking.get("status") not in Booking.ACTIVE_STATUSES:
        raise InvalidTransition(f"Cannot reschedule a {booking.get('status')} booking.")

    changes = {
        "date": new_slot["date"],
        "time": new_slot["time"],
        "slot_id": str(new_slot["id"]),
    }
    if new_slot.get("staff_id"):
        changes["staff_id"] = new_slot["staff_id"]
        changes["staff_name"] = new_slot.get("staff_name") or ""
    if require_approval:
        changes["status"] = Booking.STATUS_PENDING

    plan = WritePlan()
    plan.release(booking.get("slot_id"))
    if not new_slot.get("generated"):
        plan.claim(new_slot["id"])
    plan.patch(booking["id"], changes)
    return plan


def plan_cancel(booking, group_bookings=(), mode: str = "single") -> WritePlan:
    """
    mode="single": cancel this booking only.
    mode="future": also cancel every active booking of the same recurring
    group dated on or after this one.
    """
    if mode not in CANCEL_MODES:
        raise BookingError(f"Unknown cancel mode: {mode!r}")
    if booking.get("status") not in Booking.ACTIVE_STATUSES:
        raise InvalidTransition(f"This booking is already {booking.get('status')}.")

    plan = WritePlan()
    plan.patch(booking["id"], {"status": Booking.STATUS_CANCELLED})
    plan.release(booking.get("slot_id"))

    group_id = booking.get("recurring_group_id")
    if mode == "future" and group_id:
        for other in group_bookings:
            if other.get("recurring_group_id") != group_id or other.get("id") == booking["id"]:
                continue
            if other["date"] < booking["date"] or other.get("status") not in Booking.ACTIVE_STATUSES:
                continue
            plan.patch(other["id"], {"status": Booking.STATUS_CANCELLED})
            plan.release(other.get("slot_id"))

    return plan


def plan_status_change(booking, status: str) -> WritePlan:
    """Shop-side approve / reject (and any other allowed status move)."""
    current = booking.get("status")
    if status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot change a {current} booking to {status}.")

    plan = WritePlan()
    plan.patch(booking["id"], {"status": status})
    if status not in Booking.ACTIVE_STATUSES:
        plan.release(booking.get("slot_id"))
    return plan


# -------------------------
# Results
# -------------------------
@dataclass
class CreateResult:
    booking: Booking

    @property
    def ref_code(self) -> str:
        return self.booking.ref_code

    @property
    def booking_id(self) -> int:
        return self.booking.id


@dataclass
class SeriesResult:
    plan: RecurringPlan
    created: list = field(default_factory=list)
    failed: int = 0

    @property
    def skipped(self) -> list:
        return self.plan.skipped

    def as_dict(self) -> dict:
        return {
            "created": len(self.created),
            "skipped": len(self.skipped),
            "failed": self.failed,
            "created_dates": [b.date.isoformat() for b in self.created],
            "skipped_dates": list(self.skipped),
            "recurring_group_id": self.created[0].recurring_group_id if self.created else None,
        }


# -------------------------
# Executor
# -------------------------
class BookingManager:
    def __init__(self, shop):
        self.shop = shop
        self.availability = AvailabilityEngine(shop)

    # ---- applying writes ----
    def _slots(self):
        from staff.models import AvailabilitySlot

        return AvailabilitySlot.objects.filter(shop=self.shop)

    @staticmethod
    def _slot_pk(slot_id):
        try:
            return int(slot_id)
        except (TypeError, ValueError):
            return None

    def _claim(self, slot_id):
        pk = self._slot_pk(slot_id)
        updated = 0
        if pk is not None:
            updated = self._slots().filter(pk=pk, available=True).update(available=False)
        if not updated:
            raise SlotUnavailable()

    def _release(self, slot_id):
        pk = self._slot_pk(slot_id)
        if pk is None or not self._slots().filter(pk=pk).update(available=True):
            logger.warning("Could not re-open slot %s for shop %s", slot_id, self.shop.slug)

    @staticmethod
    def _model_values(values):
        values = dict(values)
        if isinstance(values.get("date"), str):
            values["date"] = date_cls.fromisoformat(values["date"])
        if isinstance(values.get("time"), str):
            values["time"] = time_cls.fromisoformat(values["time"])
        return values

    def _create(self, fields):
        values = self._model_values(fields)
        attempts = max(booking_setting("REF_CODE_ATTEMPTS"), 1)
        for attempt in range(attempts):
            try:
                with transaction.atomic():
                    return Booking.objects.create(shop=self.shop, **values)
            except IntegrityError:
                if not Booking.objects.filter(ref_code=values["ref_code"]).exists() or attempt == attempts - 1:
                    raise
                logger.info("Reference code %s already taken, retrying", values["ref_code"])
                values["ref_code"] = generate_ref_code()

    def _patch(self, booking_id, changes):
        booking = Booking.objects.get(shop=self.shop, pk=booking_id)
        values = self._model_values(changes)
        if values.get("status") == Booking.STATUS_CANCELLED:
            values["cancellation_time"] = timezone.now()
        for name, value in values.items():
            setattr(booking, name, value)
        booking.save(update_fields=list(values))
        return booking

    def _lock_and_recheck(self, date, time, duration, staff_id, exclude_booking_id=None):
        """
        Re-run the conflict check against the bookings committed right now.
        Must run inside transaction.atomic(); the shop row lock serializes
        booking writes per shop (an unassigned booking collides with every
        staff member, so a per-staff lock is not enough).
        """
        Shop.objects.select_for_update().get(pk=self.shop.pk)
        date_str = str(date)
        bookings = [
            b for b in self.availability.booking_snapshot(dates=[date_str])
            if b["id"] != exclude_booking_id
        ]
        if conflicts_with_bookings(date_str, str(time)[:5], duration, staff_id, bookings, self.shop.buffer_minutes):
            raise SlotUnavailable()

    def apply_write(self, write):
        if isinstance(write, ClaimSlot):
            return self._claim(write.slot_id)
        if isinstance(write, ReleaseSlot):
            return self._release(write.slot_id)
        if isinstance(write, CreateBooking):
            return self._create(write.fields)
        if isinstance(write, PatchBooking):
            return self._patch(write.booking_id, write.changes)
        raise TypeError(f"Unknown write: {write!r}")

    def apply_plan(self, plan: WritePlan) -> list:
        """Apply every write in order inside one transaction; returns each write's result."""
        with transaction.atomic():
            return [self.apply_write(w) for w in plan.writes]

    # ---- snapshots ----
    @staticmethod
    def service_payload(service) -> dict:
        return {
            "service_id": service.id,
            "service_name": service.name,
            "service_duration": service.duration_minutes,
            "price": service.price,
            "deposit_amount": service.deposit_amount(),
        }

    @staticmethod
    def series_snapshot(booking) -> dict:
        snap = booking.to_snapshot()
        snap.update(
            price=booking.price,
            deposit_amount=booking.deposit_amount,
            service_name=booking.service_name,
            client_name=booking.client_name,
            client_email=booking.client_email,
            client_phone=booking.client_phone,
            notes=booking.notes,
        )
        return snap

    # ---- actions ----
    def create_booking(self, service, slot_id, client, notes="", staff_id=None) -> CreateResult:
        """
        Book `service` on the slot the client picked.

        Args:
            service: Service instance (duration sizes the slot)
            slot_id: id of a manual slot or a generated "wh-..." slot
            client: dict with name, email and optional phone
            staff_id: restrict to a staff member (None means any available)

        Raises:
            SlotUnavailable: slot is gone, booked, or was claimed concurrently.
        """
        slot = self.availability.find_slot(
            slot_id,
            service={"id": service.id, "duration": service.duration_minutes},
            staff_id=staff_id,
        )
        if slot is None:
            raise SlotUnavailable()

        payload = self.service_payload(service)
        payload.update(
            client_name=client.get("name", ""),
            client_email=client.get("email", ""),
            client_phone=client.get("phone", ""),
            notes=notes or "",
        )
        if staff_id and not slot.get("staff_id"):
            staff = Staff.objects.filter(shop=self.shop, pk=staff_id).first()
            if staff is not None:
                payload.update(staff_id=staff.id, staff_name=staff.name)

        plan = plan_create_booking(payload, slot, self.shop.require_approval)
        fields = plan.of_type(CreateBooking)[0].fields
        with transaction.atomic():
            self._lock_and_recheck(fields["date"], fields["time"], fields["duration"], fields.get("staff_id"))
            booking = self.apply_plan(plan)[-1]

        logger.info(
            "Booking %s created for shop %s on %s %s (slot %s)",
            booking.ref_code, self.shop.slug, booking.date, slot["time"], booking.slot_id,
        )
        return CreateResult(booking)

    def preview_series(self, first_occurrence, interval) -> RecurringPlan:
        return plan_recurring_series(
            first_occurrence,
            interval,
            self.availability.booking_snapshot(),
            self.shop.buffer_minutes,
            booking_setting("RECURRING_HORIZON_MONTHS"),
        )

    def create_recurring_series(self, booking, interval) -> SeriesResult:
        """
        Create the occurrences following `booking`. Best effort: a database
        failure stops the loop; occurrences already written stay.
        """
        series, plan = plan_recurring_occurrences(
            self.series_snapshot(booking),
            interval,
            [b for b in self.availability.booking_snapshot() if b["id"] != booking.id],
            self.shop.buffer_minutes,
            horizon_months=booking_setting("RECURRING_HORIZON_MONTHS"),
        )
        result = SeriesResult(plan=series)

        with transaction.atomic():
            for write in plan.of_type(PatchBooking):
                self.apply_write(write)
        booking.refresh_from_db()

        creates = plan.of_type(CreateBooking)
        for index, write in enumerate(creates):
            fields = write.fields
            try:
                with transaction.atomic():
                    self._lock_and_recheck(
                        fields["date"],
                        fields["time"],
                        fields.get("service_duration") or fields["duration"],
                        fields.get("staff_id"),
                    )
                    result.created.append(self.apply_write(write))
            except SlotUnavailable:
                # Taken since the series was planned.
                series.accepted.remove(fields["date"])
                series.skipped.append(fields["date"])
                series.skipped.sort()
            except DatabaseError:
                result.failed = len(creates) - index
                logger.exception(
                    "Recurring series %s stopped after %d of %d occurrences",
                    booking.recurring_group_id, index, len(creates),
                )
                break

        for skipped in series.skipped:
            logger.warning("Recurring occurrence on %s skipped: conflicts with an existing booking", skipped)
        logger.info(
            "Recurring series %s: %d created, %d skipped, %d failed",
            booking.recurring_group_id, len(result.created), len(series.skipped), result.failed,
        )
        return result

    def reschedule_booking(self, booking, slot_id) -> Booking:
        slot = self.availability.find_slot(
            slot_id,
            service={"id": booking.service_id, "duration": booking.service_duration or booking.duration},
            staff_id=booking.staff_id,
            exclude_booking_id=booking.id,
        )
        if slot is None:
            raise SlotUnavailable()

        plan = plan_reschedule(booking.to_snapshot(), slot, self.shop.require_approval)
        changes = plan.of_type(PatchBooking)[0].changes
        with transaction.atomic():
            self._lock_and_recheck(
                changes["date"],
                changes["time"],
                booking.service_duration or booking.duration,
                changes.get("staff_id", booking.staff_id),
                exclude_booking_id=booking.id,
            )
            self.apply_plan(plan)
        booking.refresh_from_db()
        logger.info("Booking %s rescheduled to %s %s", booking.ref_code, slot["date"], slot["time"])
        return booking

    def cancel_booking(self, booking, mode="single") -> list:
        """Cancel one booking, or it and the rest of its series. Returns cancelled ids."""
        group = []
        if mode == "future" and booking.recurring_group_id:
            group = [
                b.to_snapshot()
                for b in Booking.objects.filter(shop=self.shop, recurring_group_id=booking.recurring_group_id)
            ]
        plan = plan_cancel(booking.to_snapshot(), group, mode)
        self.apply_plan(plan)
        booking.refresh_from_db()

        cancelled = [w.booking_id for w in plan.of_type(PatchBooking)]
        logger.info("Cancelled %d booking(s) starting from %s (mode=%s)", len(cancelled), booking.ref_code, mode)
        return cancelled

    def set_status(self, booking, status) -> Booking:
        plan = plan_status_change(booking.to_snapshot(), status)
        self.apply_plan(plan)
        booking.refresh_from_db()
        logger.info("Booking %s is now %s", booking.ref_code, status)
        return booking
