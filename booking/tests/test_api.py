from datetime import time, timedelta
from unittest import mock

from django.contrib.auth.models import User
from django.test import TestCase
from rest_framework.test import APIClient

from booking.models import Booking, WaitlistEntry
from booking.services.recurring import candidate_dates
from staff.models import AvailabilitySlot

from .helpers import generated_slot_id, make_booking, make_service, make_shop, make_slot, make_staff, upcoming

API = "/api/shops/test-shop"


class BookingApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.shop = make_shop()
        self.service = make_service(self.shop)
        self.alex = make_staff(self.shop, "Alex")
        self.monday = upcoming(0)
        self.owner = User.objects.create_user(username="owner", password="pass12345", is_staff=True)

    def book(self, slot_id=None, **extra):
        data = {
            "service": self.service.id,
            "slot_id": slot_id or generated_slot_id(self.alex, self.monday),
            "client_name": "Jamie Client",
            "client_email": "jamie@example.com",
            "client_phone": "5551234567",
        }
        data.update(extra)
        return self.client.post(f"{API}/bookings/", data, format="json")

    def test_public_service_list_hides_inactive(self):
        make_service(self.shop, name="Retired", active=False)
        res = self.client.get(f"{API}/services/")

        self.assertEqual(res.status_code, 200)
        self.assertEqual([s["name"] for s in res.data], ["Haircut"])
        self.assertEqual(res.data[0]["deposit_amount"], "10.00")

    def test_unknown_shop_is_404(self):
        res = self.client.get("/api/shops/nowhere/bookings/available-slots/")
        self.assertEqual(res.status_code, 404)

    def test_available_slots(self):
        res = self.client.get(f"{API}/bookings/available-slots/", {"service": self.service.id})

        self.assertEqual(res.status_code, 200)
        ids = [s["id"] for s in res.data["slots"]]
        self.assertIn(generated_slot_id(self.alex, self.monday, "09:00"), ids)
        self.assertNotIn(generated_slot_id(self.alex, self.monday, "12:00"), ids)
        self.assertIn(self.monday.isoformat(), res.data["dates"])

    def test_create_booking_removes_slot(self):
        res = self.book()

        self.assertEqual(res.status_code, 201)
        self.assertTrue(res.data["ref_code"].startswith("BK"))
        self.assertEqual(res.data["booking"]["status"], "confirmed")
        self.assertEqual(res.data["booking"]["time"], "09:00")

        slots = self.client.get(f"{API}/bookings/available-slots/", {"service": self.service.id}).data["slots"]
        self.assertNotIn(generated_slot_id(self.alex, self.monday), [s["id"] for s in slots])

    def test_taken_slot_is_409(self):
        self.book()
        res = self.book()
        self.assertEqual(res.status_code, 409)
        self.assertEqual(Booking.objects.count(), 1)

    def test_create_validation(self):
        self.assertEqual(self.book(client_phone="call me").status_code, 400)
        self.assertEqual(self.book(client_name="   ").status_code, 400)

        other_service = make_service(make_shop("other-shop"))
        self.assertEqual(self.book(service=other_service.id).status_code, 400)

    def test_create_recurring_series(self):
        res = self.book(recurring_interval="biweekly")

        self.assertEqual(res.status_code, 201)
        expected = candidate_dates(self.monday.isoformat(), "biweekly")
        self.assertEqual(res.data["recurring"]["created"], len(expected))
        self.assertEqual(res.data["recurring"]["skipped"], 0)
        self.assertTrue(res.data["booking"]["recurring_group_id"])
        self.assertEqual(Booking.objects.count(), len(expected) + 1)

    def test_recurring_preview(self):
        taken = self.monday + timedelta(days=7)
        make_booking(self.shop, taken, time(10, 0), staff=self.alex)
        res = self.client.post(
            f"{API}/bookings/recurring-preview/",
            {"service": self.service.id, "staff": self.alex.id, "date": self.monday.isoformat(),
             "time": "10:00", "interval": "weekly"},
            format="json",
        )

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["interval_label"], "week")
        self.assertEqual(res.data["skipped"], [taken.isoformat()])
        self.assertEqual(res.data["total"], len(res.data["accepted"]) + 1)
        self.assertEqual(res.data["horizon_months"], 3)

    def test_recurring_preview_rejects_bad_time(self):
        res = self.client.post(
            f"{API}/bookings/recurring-preview/",
            {"service": self.service.id, "date": self.monday.isoformat(), "time": "25:00", "interval": "weekly"},
            format="json",
        )
        self.assertEqual(res.status_code, 400)

    def test_lookup_by_reference_code(self):
        ref = self.book().data["ref_code"]

        res = self.client.get(f"{API}/bookings/{ref.lower()}/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["client_email"], "jamie@example.com")

        self.assertEqual(self.client.get(f"{API}/bookings/BKZZZZ/").status_code, 404)

    def test_reference_code_is_shop_scoped(self):
        ref = self.book().data["ref_code"]
        make_shop("other-shop")
        self.assertEqual(self.client.get(f"/api/shops/other-shop/bookings/{ref}/").status_code, 404)

    def test_reschedule(self):
        ref = self.book().data["ref_code"]
        new_slot = generated_slot_id(self.alex, self.monday, "14:00")

        res = self.client.post(f"{API}/bookings/{ref}/reschedule/", {"slot_id": new_slot}, format="json")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["time"], "14:00")

    def test_cancel_future(self):
        ref = self.book(recurring_interval="weekly").data["ref_code"]
        res = self.client.post(f"{API}/bookings/{ref}/cancel/", {"mode": "future"}, format="json")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["cancelled"], Booking.objects.count())
        self.assertFalse(Booking.objects.filter(status__in=Booking.ACTIVE_STATUSES).exists())

        again = self.client.post(f"{API}/bookings/{ref}/cancel/", {}, format="json")
        self.assertEqual(again.status_code, 400)

    def test_listing_and_approval_are_staff_only(self):
        self.shop.require_approval = True
        self.shop.save()
        ref = self.book().data["ref_code"]

        self.assertEqual(self.client.get(f"{API}/bookings/").status_code, 403)
        self.assertEqual(self.client.post(f"{API}/bookings/{ref}/approve/").status_code, 403)

        self.client.force_authenticate(self.owner)
        self.assertEqual(len(self.client.get(f"{API}/bookings/").data), 1)
        res = self.client.post(f"{API}/bookings/{ref}/approve/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["status"], "confirmed")

        res = self.client.post(f"{API}/bookings/{ref}/approve/")
        self.assertEqual(res.status_code, 400)


class CatalogApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.shop = make_shop()
        self.service = make_service(self.shop)
        self.alex = make_staff(self.shop, "Alex")
        self.owner = User.objects.create_user(username="owner", password="pass12345", is_staff=True)

    def test_staff_writes_need_staff_user(self):
        res = self.client.post(f"{API}/staff/", {"name": "Sam", "weekly_hours": {}}, format="json")
        self.assertEqual(res.status_code, 403)

        self.client.force_authenticate(self.owner)
        res = self.client.post(f"{API}/staff/", {"name": "Sam", "weekly_hours": {}}, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(self.shop.staff.count(), 2)

    def test_weekly_hours_are_validated(self):
        self.client.force_authenticate(self.owner)
        bad = [
            {"funday": {"enabled": True, "start": "09:00", "end": "17:00"}},
            {"monday": {"enabled": True, "start": "17:00", "end": "09:00"}},
            {"monday": {"enabled": True, "start": "9am", "end": "17:00"}},
            {"monday": {"enabled": True, "start": "09:00", "end": "17:00", "breaks": [{"start": "13:00", "end": "12:00"}]}},
        ]
        for hours in bad:
            res = self.client.patch(f"{API}/staff/{self.alex.id}/", {"weekly_hours": hours}, format="json")
            self.assertEqual(res.status_code, 400, hours)

    def test_manual_slots(self):
        day = upcoming(2)
        res = self.client.post(
            f"{API}/availability/",
            {"staff": self.alex.id, "date": day.isoformat(), "time": "18:30", "duration_minutes": 60},
            format="json",
        )
        self.assertEqual(res.status_code, 403)

        self.client.force_authenticate(self.owner)
        res = self.client.post(
            f"{API}/availability/",
            {"staff": self.alex.id, "date": day.isoformat(), "time": "18:30", "duration_minutes": 60},
            format="json",
        )
        self.assertEqual(res.status_code, 201)
        slot = AvailabilitySlot.objects.get()
        self.assertEqual(slot.shop, self.shop)

        listed = self.client.get(f"{API}/availability/", {"date": day.isoformat()})
        self.assertEqual([s["time"] for s in listed.data], ["18:30"])

        slots = self.client.get(f"{API}/bookings/available-slots/", {"service": self.service.id}).data["slots"]
        self.assertIn(str(slot.id), [s["id"] for s in slots])


class WaitlistApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.shop = make_shop()
        self.service = make_service(self.shop)

    def test_join_and_check_status(self):
        res = self.client.post(
            f"{API}/waitlist/",
            {"client_name": "Robin", "client_email": "robin@example.com", "service": self.service.id,
             "preferred_days": ["monday"], "preferred_time_start": "09:00", "preferred_time_end": "12:00"},
            format="json",
        )
        self.assertEqual(res.status_code, 201)
        ref = res.data["ref_code"]
        self.assertTrue(ref.startswith("WL"))

        res = self.client.get(f"{API}/waitlist/{ref}/")
        self.assertEqual(res.data["status"], "waiting")
        self.assertEqual(WaitlistEntry.objects.get().shop, self.shop)

    def test_taken_reference_code_is_regenerated(self):
        WaitlistEntry.objects.create(shop=self.shop, ref_code="WLAAAA", client_name="Sam", client_email="sam@example.com")
        codes = iter(["WLAAAA", "WLBBBB"])

        with mock.patch("booking.views.generate_ref_code", side_effect=lambda prefix: next(codes)):
            res = self.client.post(
                f"{API}/waitlist/",
                {"client_name": "Robin", "client_email": "robin@example.com"},
                format="json",
            )

        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data["ref_code"], "WLBBBB")
        self.assertEqual(WaitlistEntry.objects.count(), 2)

    def test_half_time_range_is_rejected(self):
        res = self.client.post(
            f"{API}/waitlist/",
            {"client_name": "Robin", "client_email": "robin@example.com", "preferred_time_start": "09:00"},
            format="json",
        )
        self.assertEqual(res.status_code, 400)


class PublicCancelTests(TestCase):
    def setUp(self):
        self.shop = make_shop()
        self.alex = make_staff(self.shop, "Alex")
        self.slot = make_slot(self.shop, self.alex, upcoming(0), available=False)
        self.booking = make_booking(self.shop, self.slot.date, self.slot.time, staff=self.alex, slot_id=str(self.slot.id))

    def test_cancel_with_matching_email(self):
        res = self.client.post("/bookings/cancel/submit/", {
            "ref_code": self.booking.ref_code.lower(),
            "email": "JAMIE@example.com",
            "reason": "Running late",
        })

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"ok": True, "message": "Your booking has been cancelled.", "cancelled": 1})
        self.booking.refresh_from_db()
        self.slot.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.STATUS_CANCELLED)
        self.assertIn("Running late", self.booking.notes)
        self.assertTrue(self.slot.available)

    def test_wrong_email_is_404(self):
        res = self.client.post("/bookings/cancel/submit/", {"ref_code": self.booking.ref_code, "email": "x@example.com"})
        self.assertEqual(res.status_code, 404)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.STATUS_CONFIRMED)

    def test_missing_fields_is_400(self):
        self.assertEqual(self.client.post("/bookings/cancel/submit/", {}).status_code, 400)

    def test_get_not_allowed(self):
        self.assertEqual(self.client.get("/bookings/cancel/submit/").status_code, 405)
