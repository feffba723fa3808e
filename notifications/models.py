# notifications/models.py
#
# Purpose:
# - Record messages sent to clients (booking created/confirmed/cancelled,
#   waitlist slot opened).
#
# Design:
# - Linked to the Booking or WaitlistEntry it is about.
# - 'sent' indicates delivery attempt result.
#
from django.db import models


class Notification(models.Model):
    booking = models.ForeignKey(
        "booking.Booking", on_delete=models.CASCADE, null=True, blank=True, related_name="notifications"
    )
    waitlist_entry = models.ForeignKey(
        "booking.WaitlistEntry", on_delete=models.CASCADE, null=True, blank=True, related_name="notifications"
    )
    recipient = models.EmailField()
    subject = models.CharField(max_length=200)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    sent = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"Notification to {self.recipient} at {self.created_at:%Y-%m-%d %H:%M}"
