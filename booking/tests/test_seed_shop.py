from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from booking.models import Service, Staff
from shops.models import Shop


class SeedShopCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        out = StringIO()
        call_command("seed_shop", "--slug", "downtown", "--name", "Downtown Cuts", "--buffer", "10", stdout=out)
        self.assertIn("Created shop 'downtown'", out.getvalue())

        call_command("seed_shop", "--slug", "downtown", "--name", "Downtown Cuts", stdout=StringIO())

        shop = Shop.objects.get(slug="downtown")
        self.assertEqual(shop.buffer_minutes, 10)
        self.assertEqual(Service.objects.filter(shop=shop).count(), 4)
        self.assertEqual(Staff.objects.filter(shop=shop).count(), 2)
        self.assertTrue(all(s.weekly_hours for s in Staff.objects.filter(shop=shop)))
