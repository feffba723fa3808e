from datetime import date, time

from django.test import TestCase

from booking.tests.helpers import make_shop, make_slot, make_staff


class AvailabilitySlotTests(TestCase):
    def test_snapshot(self):
        shop = make_shop()
        alex = make_staff(shop, "Alex")
        slot = make_slot(shop, alex, date(2030, 1, 7), at=time(18, 30), duration=45)

        snap = slot.to_snapshot()

        self.assertEqual(snap["id"], str(slot.id))
        self.assertEqual(snap["date"], "2030-01-07")
        self.assertEqual(snap["time"], "18:30")
        self.assertEqual(snap["duration"], 45)
        self.assertEqual(snap["staff_name"], "Alex")
        self.assertFalse(snap["generated"])

    def test_snapshot_without_staff(self):
        slot = make_slot(make_shop(), None, date(2030, 1, 7))
        snap = slot.to_snapshot()
        self.assertIsNone(snap["staff_id"])
        self.assertEqual(snap["staff_name"], "")
