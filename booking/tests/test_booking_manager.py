from datetime import time, timedelta
from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase

from booking.exceptions import BookingError, InvalidTransition, SlotUnavailable
from booking.models import Booking
from booking.services import booking_manager as manager_module
from booking.services.availability_engine import AvailabilityEngine
from booking.services.booking_manager import (
    BookingManager,
    ClaimSlot,
    CreateBooking,
    PatchBooking,
    ReleaseSlot,
    plan_cancel,
    plan_create_booking,
    plan_recurring_occurrences,
    plan_reschedule,
    plan_status_change,
)
from booking.services.recurring import candidate_dates
from staff.models import AvailabilitySlot

from .helpers import generated_slot_id, make_booking, make_service, make_shop, make_slot, make_staff, upcoming

CLIENT = {"name": "Jamie Client", "email": "jamie@example.com", "phone": "5551234567"}


# -------------------------
# Pure planners
# -------------------------
class PlanCreateBookingTests(SimpleTestCase):
    payload = {"client_name": "Jamie", "service_id": 3, "service_name": "Haircut", "service_duration": 45}

    def test_manual_slot_is_claimed(self):
        slot = {"id": "12", "date": "2024-01-01", "time": "18:00", "duration": 60, "staff_id": 2, "staff_name": "Sam"}
        plan = plan_create_booking(self.payload, slot, ref_code="BKAAAA")

        self.assertEqual(plan.writes[0], ClaimSlot("12"))
        fields = plan.of_type(CreateBooking)[0].fields
        self.assertEqual(fields["ref_code"], "BKAAAA")
        self.assertEqual(fields["slot_id"], "12")
        self.assertEqual(fields["duration"], 45)
        self.assertEqual(fields["staff_id"], 2)
        self.assertEqual(fields["status"], Booking.STATUS_CONFIRMED)

    def test_generated_slot_is_not_claimed(self):
        slot = {"id": "wh-2-2024-01-01-09:00", "date": "2024-01-01", "time": "09:00",
                "duration": 45, "staff_id": 2, "generated": True}
        plan = plan_create_booking(self.payload, slot, require_approval=True)

        self.assertEqual(plan.of_type(ClaimSlot), [])
        fields = plan.of_type(CreateBooking)[0].fields
        self.assertEqual(fields["status"], Booking.STATUS_PENDING)
        self.assertTrue(fields["ref_code"].startswith("BK"))


class PlanRecurringOccurrencesTests(SimpleTestCase):
    primary = {
        "id": 1, "date": "2024-01-01", "time": "10:00", "duration": 60, "service_duration": 60,
        "staff_id": 2, "staff_name": "Sam", "status": "confirmed", "client_name": "Jamie",
    }

    def test_primary_joins_the_group_and_each_date_gets_a_booking(self):
        series, plan = plan_recurring_occurrences(self.primary, "biweekly", [], group_id="g1")

        patch = plan.of_type(PatchBooking)[0]
        self.assertEqual(patch, PatchBooking(1, {"recurring_group_id": "g1", "recurring_interval": "biweekly"}))

        creates = [w.fields for w in plan.of_type(CreateBooking)]
        self.assertEqual([c["date"] for c in creates], series.accepted)
        self.assertEqual(creates[0]["slot_id"], "recurring-g1-2024-01-15")
        self.assertEqual({c["recurring_group_id"] for c in creates}, {"g1"})
        self.assertEqual({c["time"] for c in creates}, {"10:00"})
        self.assertEqual({c["client_name"] for c in creates}, {"Jamie"})
        self.assertEqual(len({c["ref_code"] for c in creates}), len(creates))
        self.assertEqual(plan.of_type(ClaimSlot), [])

    def test_conflicting_dates_are_left_out(self):
        taken = [{"date": "2024-01-29", "time": "10:30", "duration": 30, "staff_id": 2, "status": "pending"}]
        series, plan = plan_recurring_occurrences(self.primary, "biweekly", taken, group_id="g1")

        self.assertEqual(series.skipped, ["2024-01-29"])
        self.assertNotIn("2024-01-29", [w.fields["date"] for w in plan.of_type(CreateBooking)])


class PlanRescheduleTests(SimpleTestCase):
    booking = {"id": 4, "date": "2024-01-01", "time": "18:00", "slot_id": "12", "status": "confirmed", "staff_id": 2}

    def test_moves_from_manual_slot_to_generated_slot(self):
        new_slot = {"id": "wh-2-2024-01-02-09:00", "date": "2024-01-02", "time": "09:00",
                    "staff_id": 2, "staff_name": "Sam", "generated": True}
        plan = plan_reschedule(self.booking, new_slot)

        self.assertEqual(plan.writes[0], ReleaseSlot("12"))
        self.assertEqual(plan.of_type(ClaimSlot), [])
        changes = plan.of_type(PatchBooking)[0].changes
        self.assertEqual(changes["date"], "2024-01-02")
        self.assertEqual(changes["slot_id"], "wh-2-2024-01-02-09:00")
        self.assertNotIn("status", changes)

    def test_claims_new_manual_slot_and_resets_to_pending_when_approval_needed(self):
        new_slot = {"id": "13", "date": "2024-01-02", "time": "18:00", "staff_id": 2}
        plan = plan_reschedule(self.booking, new_slot, require_approval=True)

        self.assertEqual(plan.of_type(ClaimSlot), [ClaimSlot("13")])
        self.assertEqual(plan.of_type(PatchBooking)[0].changes["status"], Booking.STATUS_PENDING)

    def test_inactive_booking_cannot_move(self):
        with self.assertRaises(InvalidTransition):
            plan_reschedule(dict(self.booking, status="cancelled"), {"id": "13", "date": "2024-01-02", "time": "18:00"})


class PlanCancelTests(SimpleTestCase):
    dates = ["2024-01-15", "2024-01-29", "2024-02-12", "2024-02-26", "2024-03-11", "2024-03-25"]

    def group(self):
        return [
            {"id": i, "date": d, "status": "confirmed", "slot_id": f"recurring-g1-{d}", "recurring_group_id": "g1"}
            for i, d in enumerate(self.dates, start=1)
        ]

    def test_future_cancels_target_and_later_dates(self):
        group = self.group()
        plan = plan_cancel(group[2], group, mode="future")

        self.assertEqual(sorted(w.booking_id for w in plan.of_type(PatchBooking)), [3, 4, 5, 6])
        self.assertEqual(plan.of_type(ReleaseSlot), [])

    def test_future_skips_bookings_no_longer_active(self):
        group = self.group()
        group[4]["status"] = "cancelled"
        plan = plan_cancel(group[2], group, mode="future")
        self.assertEqual(sorted(w.booking_id for w in plan.of_type(PatchBooking)), [3, 4, 6])

    def test_single_cancels_only_target(self):
        group = self.group()
        plan = plan_cancel(group[2], group, mode="single")
        self.assertEqual([w.booking_id for w in plan.of_type(PatchBooking)], [3])

    def test_manual_slot_is_released(self):
        plan = plan_cancel({"id": 9, "date": "2024-01-01", "status": "pending", "slot_id": "12"})
        self.assertEqual(plan.of_type(ReleaseSlot), [ReleaseSlot("12")])

    def test_rejects_bad_mode_and_inactive_booking(self):
        with self.assertRaises(BookingError):
            plan_cancel({"id": 9, "date": "2024-01-01", "status": "confirmed"}, mode="all")
        with self.assertRaises(InvalidTransition):
            plan_cancel({"id": 9, "date": "2024-01-01", "status": "rejected"})


class PlanStatusChangeTests(SimpleTestCase):
    def test_reject_releases_slot(self):
        plan = plan_status_change({"id": 1, "status": "pending", "slot_id": "12"}, "rejected")
        self.assertEqual(plan.of_type(ReleaseSlot), [ReleaseSlot("12")])

    def test_approve_keeps_slot(self):
        plan = plan_status_change({"id": 1, "status": "pending", "slot_id": "12"}, "confirmed")
        self.assertEqual(plan.of_type(ReleaseSlot), [])

    def test_terminal_statuses_are_final(self):
        with self.assertRaises(InvalidTransition):
            plan_status_change({"id": 1, "status": "cancelled"}, "confirmed")


# -------------------------
# BookingManager against the database
# -------------------------
class BookingManagerTests(TestCase):
    def setUp(self):
        self.shop = make_shop()
        self.service = make_service(self.shop)
        self.alex = make_staff(self.shop, "Alex")
        self.monday = upcoming(0)
        self.manager = BookingManager(self.shop)

    def book_generated(self, day=None, at="09:00"):
        slot_id = generated_slot_id(self.alex, day or self.monday, at)
        return self.manager.create_booking(self.service, slot_id, CLIENT).booking

    def test_create_on_manual_slot_claims_it(self):
        slot = make_slot(self.shop, self.alex, self.monday)

        result = self.manager.create_booking(self.service, str(slot.id), CLIENT, notes="first visit")

        booking = result.booking
        slot.refresh_from_db()
        self.assertFalse(slot.available)
        self.assertEqual(booking.status, Booking.STATUS_CONFIRMED)
        self.assertEqual(booking.slot_id, str(slot.id))
        self.assertEqual(booking.staff, self.alex)
        self.assertEqual(booking.time, time(18, 0))
        self.assertEqual(booking.deposit_amount, Decimal("10.00"))
        self.assertEqual(booking.notes, "first visit")
        self.assertRegex(result.ref_code, r"^BK[A-HJ-NP-Z2-9]{4}$")

    def test_claimed_manual_slot_cannot_be_booked_again(self):
        slot = make_slot(self.shop, self.alex, self.monday)
        self.manager.create_booking(self.service, str(slot.id), CLIENT)

        with self.assertRaises(SlotUnavailable):
            self.manager.create_booking(self.service, str(slot.id), CLIENT)
        self.assertEqual(Booking.objects.count(), 1)

    def test_losing_the_claim_race_writes_nothing(self):
        """The slot looked free when planned but was claimed before the write."""
        slot = make_slot(self.shop, self.alex, self.monday)
        snapshot = slot.to_snapshot()
        AvailabilitySlot.objects.filter(pk=slot.pk).update(available=False)

        plan = plan_create_booking(BookingManager.service_payload(self.service), snapshot)
        with self.assertRaises(SlotUnavailable):
            self.manager.apply_plan(plan)
        self.assertFalse(Booking.objects.exists())

    def test_create_on_generated_slot(self):
        booking = self.book_generated()

        self.assertEqual(booking.slot_id, generated_slot_id(self.alex, self.monday))
        self.assertEqual(booking.staff_name, "Alex")
        with self.assertRaises(SlotUnavailable):
            self.book_generated()

    def test_unknown_slot(self):
        with self.assertRaises(SlotUnavailable):
            self.manager.create_booking(self.service, "wh-999-2000-01-01-09:00", CLIENT)

    def test_requested_staff_is_recorded_on_unassigned_slot(self):
        slot = make_slot(self.shop, None, self.monday)
        booking = self.manager.create_booking(self.service, str(slot.id), CLIENT, staff_id=self.alex.id).booking
        self.assertEqual(booking.staff, self.alex)

    def test_require_approval_starts_pending(self):
        self.shop.require_approval = True
        self.shop.save()
        self.assertEqual(self.book_generated().status, Booking.STATUS_PENDING)

    def test_recurring_series_skips_conflicts(self):
        primary = self.book_generated()
        taken = self.monday + timedelta(days=14)
        make_booking(self.shop, taken, time(9, 0), staff=self.alex, service=self.service)

        result = self.manager.create_recurring_series(primary, "weekly")

        expected = candidate_dates(self.monday.isoformat(), "weekly")
        self.assertEqual(result.skipped, [taken.isoformat()])
        self.assertEqual(len(result.created), len(expected) - 1)
        self.assertEqual(result.failed, 0)

        primary.refresh_from_db()
        self.assertTrue(primary.recurring_group_id)
        self.assertEqual(primary.recurring_interval, "weekly")
        group = Booking.objects.filter(recurring_group_id=primary.recurring_group_id)
        self.assertEqual(group.count(), len(expected))
        for occurrence in result.created:
            self.assertTrue(occurrence.slot_id.startswith(f"recurring-{primary.recurring_group_id}-"))
            self.assertEqual(occurrence.time, time(9, 0))
            self.assertEqual(occurrence.staff, self.alex)

        data = result.as_dict()
        self.assertEqual(data["created"], len(expected) - 1)
        self.assertEqual(data["skipped_dates"], [taken.isoformat()])

    def test_recurring_series_stops_on_store_failure(self):
        primary = self.book_generated()
        original = BookingManager._create
        calls = []

        def flaky(manager, fields):
            calls.append(fields["date"])
            if len(calls) == 3:
                raise DatabaseError("store unavailable")
            return original(manager, fields)

        with mock.patch.object(BookingManager, "_create", autospec=True, side_effect=flaky):
            result = self.manager.create_recurring_series(primary, "biweekly")

        self.assertEqual(len(result.created), 2)
        self.assertEqual(result.failed, len(result.plan.accepted) - 2)
        self.assertEqual(Booking.objects.filter(recurring_group_id=primary.recurring_group_id).count(), 3)

    def test_cancel_future_stops_at_earlier_dates(self):
        primary = self.book_generated()
        self.manager.create_recurring_series(primary, "biweekly")
        group = list(Booking.objects.filter(recurring_group_id=primary.recurring_group_id).order_by("date"))
        target = group[2]

        cancelled = self.manager.cancel_booking(target, mode="future")

        self.assertEqual(sorted(cancelled), sorted(b.id for b in group[2:]))
        for b in group:
            b.refresh_from_db()
        self.assertEqual([b.status for b in group[:2]], [Booking.STATUS_CONFIRMED] * 2)
        self.assertTrue(all(b.status == Booking.STATUS_CANCELLED for b in group[2:]))
        self.assertTrue(all(b.cancellation_time for b in group[2:]))

    def test_cancel_single_releases_manual_slot(self):
        slot = make_slot(self.shop, self.alex, self.monday)
        booking = self.manager.create_booking(self.service, str(slot.id), CLIENT).booking

        self.manager.cancel_booking(booking)

        slot.refresh_from_db()
        self.assertTrue(slot.available)
        self.assertEqual(booking.status, Booking.STATUS_CANCELLED)
        with self.assertRaises(InvalidTransition):
            self.manager.cancel_booking(booking)

    def test_reschedule_between_manual_slots(self):
        old_slot = make_slot(self.shop, self.alex, self.monday)
        new_slot = make_slot(self.shop, self.alex, self.monday, at=time(19, 0))
        booking = self.manager.create_booking(self.service, str(old_slot.id), CLIENT).booking

        booking = self.manager.reschedule_booking(booking, str(new_slot.id))

        old_slot.refresh_from_db()
        new_slot.refresh_from_db()
        self.assertTrue(old_slot.available)
        self.assertFalse(new_slot.available)
        self.assertEqual(booking.time, time(19, 0))
        self.assertEqual(booking.slot_id, str(new_slot.id))

    def test_reschedule_next_to_itself(self):
        """A booking does not block the slot overlapping its own current time."""
        booking = self.book_generated(at="09:00")
        manual = make_slot(self.shop, self.alex, self.monday, at=time(9, 30))

        booking = self.manager.reschedule_booking(booking, str(manual.id))
        self.assertEqual(booking.time, time(9, 30))

    def test_reschedule_to_taken_slot(self):
        booking = self.book_generated(at="09:00")
        self.book_generated(at="10:00")
        with self.assertRaises(SlotUnavailable):
            self.manager.reschedule_booking(booking, generated_slot_id(self.alex, self.monday, "10:00"))

    def test_booking_committed_after_the_slot_check_wins(self):
        """Another client books the same generated slot between lookup and write."""
        original = AvailabilityEngine.find_slot

        def then_someone_else_books(engine, *args, **kwargs):
            slot = original(engine, *args, **kwargs)
            make_booking(self.shop, self.monday, time(9, 0), staff=self.alex, client_name="Other Client")
            return slot

        with mock.patch.object(AvailabilityEngine, "find_slot", autospec=True, side_effect=then_someone_else_books):
            with self.assertRaises(SlotUnavailable):
                self.book_generated(at="09:00")

        self.assertEqual(
            Booking.objects.filter(staff=self.alex, date=self.monday, time=time(9, 0)).count(), 1
        )

    def test_unassigned_booking_committed_after_the_check_blocks_staff_slot(self):
        original = AvailabilityEngine.find_slot

        def then_walk_up_booking(engine, *args, **kwargs):
            slot = original(engine, *args, **kwargs)
            make_booking(self.shop, self.monday, time(9, 30), staff=None)
            return slot

        with mock.patch.object(AvailabilityEngine, "find_slot", autospec=True, side_effect=then_walk_up_booking):
            with self.assertRaises(SlotUnavailable):
                self.book_generated(at="09:00")
        self.assertEqual(Booking.objects.count(), 1)

    def test_recurring_date_taken_after_planning_is_skipped(self):
        primary = self.book_generated()
        original = manager_module.plan_recurring_occurrences
        taken = []

        def then_date_gets_booked(*args, **kwargs):
            series, plan = original(*args, **kwargs)
            taken.append(series.accepted[1])
            make_booking(self.shop, series.accepted[1], time(9, 0), staff=self.alex, client_name="Other Client")
            return series, plan

        with mock.patch.object(manager_module, "plan_recurring_occurrences", side_effect=then_date_gets_booked):
            result = self.manager.create_recurring_series(primary, "weekly")

        self.assertIn(taken[0], result.skipped)
        self.assertNotIn(taken[0], result.plan.accepted)
        self.assertEqual(result.failed, 0)
        self.assertFalse(any(str(b.date) == taken[0] for b in result.created))
        self.assertEqual(
            Booking.objects.filter(staff=self.alex, date=taken[0], time=time(9, 0)).count(), 1
        )

    def test_reschedule_onto_slot_taken_after_the_check(self):
        booking = self.book_generated(at="09:00")
        original = AvailabilityEngine.find_slot

        def then_someone_else_books(engine, *args, **kwargs):
            slot = original(engine, *args, **kwargs)
            make_booking(self.shop, self.monday, time(11, 0), staff=self.alex, client_name="Other Client")
            return slot

        with mock.patch.object(AvailabilityEngine, "find_slot", autospec=True, side_effect=then_someone_else_books):
            with self.assertRaises(SlotUnavailable):
                self.manager.reschedule_booking(booking, generated_slot_id(self.alex, self.monday, "11:00"))

        booking.refresh_from_db()
        self.assertEqual(booking.time, time(9, 0))

    def test_approve_and_reject(self):
        self.shop.require_approval = True
        self.shop.save()
        first = self.book_generated(at="09:00")
        slot = make_slot(self.shop, self.alex, self.monday)
        second = self.manager.create_booking(self.service, str(slot.id), CLIENT).booking

        self.assertEqual(self.manager.set_status(first, Booking.STATUS_CONFIRMED).status, Booking.STATUS_CONFIRMED)
        self.assertEqual(self.manager.set_status(second, Booking.STATUS_REJECTED).status, Booking.STATUS_REJECTED)
        slot.refresh_from_db()
        self.assertTrue(slot.available)

        with self.assertRaises(InvalidTransition):
            self.manager.set_status(second, Booking.STATUS_CONFIRMED)
