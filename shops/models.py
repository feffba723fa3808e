from django.core.validators import MinValueValidator
from django.db import models

from booking.conf import booking_setting


def _default_buffer_minutes():
    return booking_setting("DEFAULT_BUFFER_MINUTES")


def _default_slot_horizon_weeks():
    return booking_setting("SLOT_HORIZON_WEEKS")


class Shop(models.Model):
    """
    A tenant. Every service, staff member, slot and booking belongs to one shop.

    Booking policy lives here:
      - buffer_minutes: required gap between two appointments of one staff member
      - require_approval: new and rescheduled bookings start as "pending"
      - slot_horizon_weeks: how far ahead weekly hours are expanded into slots
    """
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=80, unique=True)
    buffer_minutes = models.PositiveIntegerField(default=_default_buffer_minutes)
    require_approval = models.BooleanField(default=False)
    slot_horizon_weeks = models.PositiveIntegerField(
        default=_default_slot_horizon_weeks,
        validators=[MinValueValidator(1)],
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.slug})"
