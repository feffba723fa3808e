from datetime import time
from unittest import mock

from django.core import mail
from django.test import TestCase, override_settings

from booking.models import Booking, WaitlistEntry
from booking.services.booking_manager import BookingManager
from booking.tests.helpers import make_booking, make_service, make_shop, make_staff, upcoming
from notifications.models import Notification
from notifications.signals import notify_waitlist


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend", EMAIL_HOST_USER="")
class BookingEmailTests(TestCase):
    def setUp(self):
        self.shop = make_shop()
        self.service = make_service(self.shop)
        self.alex = make_staff(self.shop, "Alex")
        self.monday = upcoming(0)

    def test_confirmation_sent_on_create(self):
        booking = make_booking(self.shop, self.monday, time(9, 0), staff=self.alex, service=self.service)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, "Booking Confirmation")
        self.assertIn(booking.ref_code, mail.outbox[0].body)
        self.assertEqual(mail.outbox[0].to, ["jamie@example.com"])
        self.assertTrue(Notification.objects.get(booking=booking).sent)

    def test_pending_booking_gets_received_email_then_confirmation(self):
        booking = make_booking(self.shop, self.monday, time(9, 0), status=Booking.STATUS_PENDING)
        self.assertEqual(mail.outbox[0].subject, "Booking Received")

        booking.status = Booking.STATUS_CONFIRMED
        booking.save()

        self.assertEqual(len(mail.outbox), 2)
        self.assertEqual(mail.outbox[1].subject, "Booking Confirmed")
        self.assertIn("confirmed", mail.outbox[1].body)

    def test_no_email_when_status_unchanged(self):
        booking = make_booking(self.shop, self.monday, time(9, 0))
        booking.notes = "bring photos"
        booking.save()
        self.assertEqual(len(mail.outbox), 1)

    def test_recurring_occurrences_are_silent(self):
        primary = BookingManager(self.shop).create_booking(
            self.service,
            f"wh-{self.alex.id}-{self.monday.isoformat()}-09:00",
            {"name": "Jamie", "email": "jamie@example.com"},
        ).booking
        BookingManager(self.shop).create_recurring_series(primary, "monthly")

        self.assertEqual(len(mail.outbox), 1)

    @override_settings(EMAIL_HOST_USER="owner@example.com")
    def test_cancellation_emails_client_and_owner(self):
        booking = make_booking(self.shop, self.monday, time(9, 0))
        BookingManager(self.shop).cancel_booking(booking)

        subjects = [m.subject for m in mail.outbox]
        self.assertIn(f"Booking {booking.ref_code} Cancelled", subjects)
        self.assertIn(f"ALERT: Booking {booking.ref_code} CANCELLED", subjects)

    def test_rejection_email(self):
        booking = make_booking(self.shop, self.monday, time(9, 0), status=Booking.STATUS_PENDING)
        BookingManager(self.shop).set_status(booking, Booking.STATUS_REJECTED)
        self.assertEqual(mail.outbox[-1].subject, f"Booking {booking.ref_code} Declined")

    def test_send_failure_is_logged_not_raised(self):
        with mock.patch("notifications.signals.send_mail", side_effect=OSError("smtp down")):
            with self.assertLogs("notifications.signals", level="ERROR"):
                booking = make_booking(self.shop, self.monday, time(9, 0))

        self.assertFalse(Notification.objects.get(booking=booking).sent)


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend", EMAIL_HOST_USER="")
class WaitlistNotificationTests(TestCase):
    def setUp(self):
        self.shop = make_shop()
        self.service = make_service(self.shop)
        self.alex = make_staff(self.shop, "Alex")
        self.monday = upcoming(0)
        self.booking = make_booking(self.shop, self.monday, time(10, 0), staff=self.alex, service=self.service)

    def waitlist(self, ref_code, **kwargs):
        kwargs.setdefault("client_name", "Robin")
        kwargs.setdefault("client_email", f"{ref_code.lower()}@example.com")
        return WaitlistEntry.objects.create(shop=self.shop, ref_code=ref_code, **kwargs)

    def test_cancel_notifies_matching_entries(self):
        morning = self.waitlist("WLAAAA", preferred_days=["monday"], preferred_time_start="09:00", preferred_time_end="10:00")
        afternoon = self.waitlist("WLBBBB", preferred_time_start="13:00", preferred_time_end="17:00")
        other_staff = self.waitlist("WLCCCC", staff=make_staff(self.shop, "Sam"))

        BookingManager(self.shop).cancel_booking(self.booking)

        for entry in (morning, afternoon, other_staff):
            entry.refresh_from_db()
        self.assertEqual(morning.status, "notified")
        self.assertEqual(afternoon.status, "waiting")
        self.assertEqual(other_staff.status, "waiting")
        self.assertIn("wlaaaa@example.com", [m.to[0] for m in mail.outbox])
        self.assertTrue(Notification.objects.filter(waitlist_entry=morning).exists())

    def test_entries_are_notified_once(self):
        self.waitlist("WLAAAA")
        self.assertEqual(len(notify_waitlist(self.booking)), 1)
        self.assertEqual(notify_waitlist(self.booking), [])

    def test_other_shops_are_not_notified(self):
        other = make_shop("other-shop")
        WaitlistEntry.objects.create(shop=other, ref_code="WLDDDD", client_name="Kim", client_email="kim@example.com")
        self.assertEqual(notify_waitlist(self.booking), [])
