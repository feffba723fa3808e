from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from booking.conf import booking_setting


class BookingSettingTests(SimpleTestCase):
    @override_settings(BOOKING={})
    def test_defaults(self):
        self.assertEqual(booking_setting("SLOT_HORIZON_WEEKS"), 4)
        self.assertEqual(booking_setting("RECURRING_HORIZON_MONTHS"), 3)
        self.assertEqual(booking_setting("WALK_IN_DEFAULT_DURATION"), 30)

    @override_settings(BOOKING={"DEFAULT_BUFFER_MINUTES": "15"})
    def test_string_override(self):
        self.assertEqual(booking_setting("DEFAULT_BUFFER_MINUTES"), 15)

    @override_settings(BOOKING={"SLOT_HORIZON_WEEKS": "soon"})
    def test_bad_value(self):
        with self.assertRaises(ImproperlyConfigured):
            booking_setting("SLOT_HORIZON_WEEKS")

    @override_settings(BOOKING={"DEFAULT_BUFFER_MINUTES": -5})
    def test_negative_value(self):
        with self.assertRaises(ImproperlyConfigured):
            booking_setting("DEFAULT_BUFFER_MINUTES")

    def test_unknown_setting(self):
        with self.assertRaises(KeyError):
            booking_setting("NOPE")
