# booking/models.py
#
# Purpose:
# - Core domain models for the booking system, all scoped to a Shop tenant.
#
# Design highlights:
# - Service: duration drives slot step size; deposit_percent sets the deposit owed.
# - Staff: weekly_hours is a JSON mapping day name -> {enabled, start, end, break(s)}.
# - Booking:
#   • date/time are naive local wall-clock values ("YYYY-MM-DD" / "HH:MM")
#   • status is lowercase: pending, confirmed, cancelled, rejected
#   • slot_id points at the claimed manual slot, or is synthetic
#     ("wh-..." for weekly-hours slots, "recurring-..." for series occurrences)
#   • recurring_group_id links every booking created by one series commit
# - WaitlistEntry: a client waiting for a slot to open up.
# - WalkIn: a client queued in the shop without a booking (see services/wait_times.py).
#
# Notes for developers:
# - to_snapshot() gives the plain-dict shape the pure availability core consumes.
#
from decimal import Decimal, ROUND_HALF_UP

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from shops.models import Shop


# -------------------------
# Service catalog item
# -------------------------
class Service(models.Model):
    """
    A service offered by a shop.

    Rules:
    - duration_minutes must be > 0
    - deposit_percent is 0..100 (0 means no deposit)
    - active controls visibility and bookability
    """
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="services")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=8, decimal_places=2, validators=[MinValueValidator(0)])
    deposit_percent = models.PositiveSmallIntegerField(
        default=0,
        validators=[MaxValueValidator(100)],
    )
    active = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.name} (${self.price})"

    def deposit_amount(self) -> Decimal:
        amount = Decimal(self.price) * Decimal(self.deposit_percent) / Decimal(100)
        return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# -------------------------
# Staff member / Stylist
# -------------------------
class Staff(models.Model):
    """
    A staff member who can be assigned to bookings.
    weekly_hours example:
        {"monday": {"enabled": true, "start": "09:00", "end": "17:00",
                    "break": {"start": "12:00", "end": "13:00"}}}
    """
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="staff")
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    role = models.CharField(max_length=100, blank=True)
    active = models.BooleanField(default=True)
    weekly_hours = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name

    def to_snapshot(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "active": self.active,
            "weekly_hours": self.weekly_hours or {},
        }


# -------------------------
# Booking record
# -------------------------
class Booking(models.Model):
    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_CANCELLED = "cancelled"
    STATUS_REJECTED = "rejected"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_REJECTED, "Rejected"),
    ]
    ACTIVE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

    INTERVAL_CHOICES = [
        ("weekly", "Weekly"),
        ("biweekly", "Every 2 weeks"),
        ("fourweekly", "Every 4 weeks"),
        ("monthly", "Monthly"),
    ]

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="bookings")
    ref_code = models.CharField(max_length=6, unique=True)

    service = models.ForeignKey(Service, on_delete=models.SET_NULL, null=True, blank=True)
    service_name = models.CharField(max_length=200, blank=True)
    service_duration = models.PositiveIntegerField(null=True, blank=True)
    duration = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal("0.00"))
    deposit_amount = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal("0.00"))

    staff = models.ForeignKey(Staff, on_delete=models.SET_NULL, null=True, blank=True)
    staff_name = models.CharField(max_length=200, blank=True)

    date = models.DateField()
    time = models.TimeField()
    slot_id = models.CharField(max_length=120, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    recurring_group_id = models.CharField(max_length=64, blank=True, db_index=True)
    recurring_interval = models.CharField(max_length=12, choices=INTERVAL_CHOICES, blank=True)

    client_name = models.CharField(max_length=200)
    client_email = models.EmailField()
    client_phone = models.CharField(max_length=20, blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    cancellation_time = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["date", "time", "id"]

    def __str__(self):
        return f"{self.ref_code}: {self.client_name} → {self.service_name} on {self.date} {self.time:%H:%M}"

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES

    def to_snapshot(self) -> dict:
        return {
            "id": self.id,
            "ref_code": self.ref_code,
            "date": self.date.isoformat(),
            "time": self.time.strftime("%H:%M"),
            "duration": self.duration,
            "service_duration": self.service_duration,
            "service_id": self.service_id,
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "status": self.status,
            "slot_id": self.slot_id,
            "recurring_group_id": self.recurring_group_id or None,
            "recurring_interval": self.recurring_interval or None,
        }


# -------------------------
# Waitlist
# -------------------------
class WaitlistEntry(models.Model):
    """
    A client asking to be told when a matching slot frees up.
    service/staff left empty mean "any".
    """
    STATUS_CHOICES = [
        ("waiting", "Waiting"),
        ("notified", "Notified"),
        ("booked", "Booked"),
        ("removed", "Removed"),
    ]

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="waitlist")
    ref_code = models.CharField(max_length=6, unique=True)
    client_name = models.CharField(max_length=200)
    client_email = models.EmailField()
    client_phone = models.CharField(max_length=20, blank=True)

    service = models.ForeignKey(Service, on_delete=models.SET_NULL, null=True, blank=True)
    staff = models.ForeignKey(Staff, on_delete=models.SET_NULL, null=True, blank=True)
    preferred_date = models.DateField(null=True, blank=True)
    preferred_days = models.JSONField(default=list, blank=True)
    preferred_time_start = models.CharField(max_length=5, blank=True)
    preferred_time_end = models.CharField(max_length=5, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="waiting")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "waitlist entries"

    def __str__(self):
        return f"{self.ref_code}: {self.client_name} ({self.status})"

    def to_snapshot(self) -> dict:
        time_range = None
        if self.preferred_time_start and self.preferred_time_end:
            time_range = {"start": self.preferred_time_start, "end": self.preferred_time_end}
        return {
            "id": self.id,
            "status": self.status,
            "service_id": self.service_id,
            "staff_id": self.staff_id,
            "preferred_date": self.preferred_date.isoformat() if self.preferred_date else None,
            "preferred_days": self.preferred_days or None,
            "preferred_time_range": time_range,
            "created_at": self.created_at.isoformat() if self.created_at else "",
        }


# -------------------------
# Walk-in queue
# -------------------------
class WalkIn(models.Model):
    """
    A client waiting in the shop without a booking.
    position orders the waiting walk-ins (1 = next); it is renumbered when
    someone leaves the waiting list.
    """
    STATUS_WAITING = "waiting"
    STATUS_IN_PROGRESS = "in-progress"
    STATUS_COMPLETED = "completed"
    STATUS_NO_SHOW = "no-show"

    STATUS_CHOICES = [
        (STATUS_WAITING, "Waiting"),
        (STATUS_IN_PROGRESS, "In progress"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_NO_SHOW, "No-show"),
    ]

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name="walk_ins")
    client_name = models.CharField(max_length=200)
    service = models.ForeignKey(Service, on_delete=models.SET_NULL, null=True, blank=True)
    service_name = models.CharField(max_length=200, blank=True)
    staff = models.ForeignKey(Staff, on_delete=models.SET_NULL, null=True, blank=True)
    estimated_duration = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_WAITING)
    position = models.PositiveIntegerField(default=0)
    joined_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["position", "joined_at", "id"]

    def __str__(self):
        return f"{self.client_name} ({self.status}, #{self.position})"

    def to_snapshot(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "position": self.position,
            "estimated_duration": self.estimated_duration,
            "started_at": self.started_at,
        }
