"""
seed_shop.py
------------
Seeds (creates or updates) a demo shop with a service catalog and staff
weekly hours. You can run this any time; it will upsert by shop slug and
service/staff name.

Usage:
    python manage.py seed_shop
    python manage.py seed_shop --slug downtown --name "Downtown Cuts" --buffer 10
"""

from decimal import Decimal
from django.core.management.base import BaseCommand
from django.db import transaction

from booking.models import Service, Staff
from shops.models import Shop


CATALOG = [
    {"name": "Haircut",          "description": "Wash, cut and style", "duration_minutes": 45,  "price": Decimal("40.00"),  "deposit_percent": 0},
    {"name": "Beard Trim",       "description": "Shape and line-up",   "duration_minutes": 30,  "price": Decimal("20.00"),  "deposit_percent": 0},
    {"name": "Colour",           "description": "Full colour",         "duration_minutes": 120, "price": Decimal("110.00"), "deposit_percent": 25},
    {"name": "Silk Press",       "description": "Wash + silk press",   "duration_minutes": 90,  "price": Decimal("85.00"),  "deposit_percent": 20},
]

WEEKDAY = {"enabled": True, "start": "09:00", "end": "17:00", "break": {"start": "12:00", "end": "13:00"}}
SATURDAY = {"enabled": True, "start": "10:00", "end": "14:00"}
CLOSED = {"enabled": False, "start": "09:00", "end": "17:00"}

STAFF = [
    {
        "name": "Alex Rivera",
        "role": "Senior Stylist",
        "weekly_hours": {
            "monday": WEEKDAY, "tuesday": WEEKDAY, "wednesday": WEEKDAY,
            "thursday": WEEKDAY, "friday": WEEKDAY, "saturday": SATURDAY, "sunday": CLOSED,
        },
    },
    {
        "name": "Sam Okafor",
        "role": "Barber",
        "weekly_hours": {
            "monday": CLOSED, "tuesday": WEEKDAY, "wednesday": WEEKDAY,
            "thursday": WEEKDAY, "friday": WEEKDAY, "saturday": SATURDAY, "sunday": CLOSED,
        },
    },
]


class Command(BaseCommand):
    help = "Seed or update a demo shop with services and staff weekly hours."

    def add_arguments(self, parser):
        parser.add_argument("--slug", default="demo-shop", help="Shop slug (tenant key in URLs)")
        parser.add_argument("--name", default="Demo Shop", help="Shop display name")
        parser.add_argument("--buffer", type=int, default=None, help="Buffer minutes between appointments")
        parser.add_argument("--require-approval", action="store_true", help="New bookings start as pending")

    @transaction.atomic
    def handle(self, *args, **options):
        shop, shop_created = Shop.objects.get_or_create(
            slug=options["slug"],
            defaults={"name": options["name"]},
        )
        shop.name = options["name"]
        if options["buffer"] is not None:
            shop.buffer_minutes = options["buffer"]
        shop.require_approval = options["require_approval"]
        shop.save()

        created = 0
        updated = 0

        for item in CATALOG:
            svc, is_created = Service.objects.update_or_create(
                shop=shop,
                name=item["name"],
                defaults={**{k: v for k, v in item.items() if k != "name"}, "active": True},
            )
            if is_created:
                created += 1
            else:
                updated += 1

        for item in STAFF:
            _, is_created = Staff.objects.update_or_create(
                shop=shop,
                name=item["name"],
                defaults={"role": item["role"], "weekly_hours": item["weekly_hours"], "active": True},
            )
            if is_created:
                created += 1
            else:
                updated += 1

        verb = "Created" if shop_created else "Updated"
        self.stdout.write(self.style.SUCCESS(
            f"{verb} shop '{shop.slug}'. Services/staff created={created}, updated={updated}"
        ))
