from django.test import TestCase, override_settings

from shops.models import Shop


class ShopDefaultsTests(TestCase):
    @override_settings(BOOKING={"DEFAULT_BUFFER_MINUTES": "10", "SLOT_HORIZON_WEEKS": "6"})
    def test_policy_defaults_come_from_settings(self):
        shop = Shop.objects.create(name="Corner Cuts", slug="corner-cuts")
        self.assertEqual(shop.buffer_minutes, 10)
        self.assertEqual(shop.slot_horizon_weeks, 6)
        self.assertFalse(shop.require_approval)

    def test_explicit_policy_wins(self):
        shop = Shop.objects.create(name="Corner Cuts", slug="corner-cuts", buffer_minutes=5, require_approval=True)
        self.assertEqual(shop.buffer_minutes, 5)
        self.assertTrue(shop.require_approval)
