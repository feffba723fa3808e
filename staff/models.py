# staff/models.py
from django.core.validators import MinValueValidator
from django.db import models


class AvailabilitySlot(models.Model):
    """
    A manually entered, one-off bookable slot.
    Points to booking.Staff to avoid having two Staff models; staff may be
    left empty for a slot any staff member can take.
    available flips to False when a booking claims the slot and back to True
    when that booking is cancelled, rejected or moved away.
    """
    shop = models.ForeignKey(
        "shops.Shop",
        on_delete=models.CASCADE,
        related_name="availability_slots",
    )
    staff = models.ForeignKey(
        "booking.Staff",                 # ← reference booking app model
        on_delete=models.CASCADE,
        related_name="availability_slots",
        null=True,
        blank=True,
    )
    date = models.DateField()
    time = models.TimeField()
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    available = models.BooleanField(default=True)

    class Meta:
        ordering = ["date", "time", "staff_id"]

    def __str__(self):
        who = self.staff.name if self.staff else "any staff"
        return f"{who}: {self.date} {self.time:%H:%M} ({self.duration_minutes} min)"

    def to_snapshot(self) -> dict:
        return {
            "id": str(self.id),
            "date": self.date.isoformat(),
            "time": self.time.strftime("%H:%M"),
            "duration": self.duration_minutes,
            "available": self.available,
            "staff_id": self.staff_id,
            "staff_name": self.staff.name if self.staff_id else "",
            "generated": False,
        }
