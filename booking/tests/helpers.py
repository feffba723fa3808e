from datetime import time, timedelta
from decimal import Decimal

from django.utils import timezone

from booking.models import Booking, Service, Staff
from booking.services.ref_codes import generate_ref_code
from shops.models import Shop
from staff.models import AvailabilitySlot

WEEKDAY_HOURS = {
    day: {"enabled": True, "start": "09:00", "end": "17:00", "break": {"start": "12:00", "end": "13:00"}}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


def upcoming(weekday):
    """Next date (1 to 7 days from today) falling on weekday (0 = Monday)."""
    today = timezone.localdate()
    days = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days)


def make_shop(slug="test-shop", **kwargs):
    kwargs.setdefault("name", "Test Shop")
    kwargs.setdefault("buffer_minutes", 0)
    return Shop.objects.create(slug=slug, **kwargs)


def make_service(shop, **kwargs):
    kwargs.setdefault("name", "Haircut")
    kwargs.setdefault("duration_minutes", 60)
    kwargs.setdefault("price", Decimal("50.00"))
    kwargs.setdefault("deposit_percent", 20)
    return Service.objects.create(shop=shop, **kwargs)


def make_staff(shop, name="Alex", weekly_hours=None, **kwargs):
    if weekly_hours is None:
        weekly_hours = WEEKDAY_HOURS
    return Staff.objects.create(shop=shop, name=name, weekly_hours=weekly_hours, **kwargs)


def make_slot(shop, staff, day, at=time(18, 0), duration=60, available=True):
    return AvailabilitySlot.objects.create(
        shop=shop, staff=staff, date=day, time=at, duration_minutes=duration, available=available,
    )


def make_booking(shop, day, at, staff=None, service=None, **kwargs):
    kwargs.setdefault("ref_code", generate_ref_code())
    kwargs.setdefault("status", Booking.STATUS_CONFIRMED)
    kwargs.setdefault("client_name", "Jamie Client")
    kwargs.setdefault("client_email", "jamie@example.com")
    duration = service.duration_minutes if service else 60
    kwargs.setdefault("duration", duration)
    kwargs.setdefault("service_duration", duration)
    return Booking.objects.create(
        shop=shop,
        service=service,
        service_name=service.name if service else "",
        staff=staff,
        staff_name=staff.name if staff else "",
        date=day,
        time=at,
        **kwargs,
    )


def generated_slot_id(staff, day, at="09:00"):
    return f"wh-{staff.id}-{day.isoformat()}-{at}"
