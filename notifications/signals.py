# notifications/signals.py
#
# Purpose:
# - Send emails when a Booking is created or its status changes.
#   * created: "received" (pending approval) or "confirmed" wording
#   * pending -> confirmed: confirmation
#   * -> cancelled / rejected: notice to the client, alert to the owner,
#     and waitlisted clients whose wishes match the freed slot are told
# - Follow-up occurrences of a recurring series do not email on creation;
#   the first booking's email covers the series.
#
# Notes:
# - Uses DEFAULT_FROM_EMAIL from settings.
# - Does not crash the request on email failures (logs instead).
#
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from booking.models import Booking, WaitlistEntry
from booking.services.waitlist import find_matching_entries
from notifications.models import Notification

logger = logging.getLogger(__name__)


def _send(subject: str, body: str, to_email: str) -> bool:
    """
    Helper to send a single email. Never lets an exception bubble up and
    break the request.
    """
    if not to_email:
        return False
    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=[to_email],
            fail_silently=False,  # raise so we can log; we still catch it below
        )
    except Exception:
        logger.exception("Email send error to %s (subject: %s)", to_email, subject)
        return False
    return True


def _notify(subject, body, to_email, booking=None, waitlist_entry=None):
    sent = _send(subject, body, to_email)
    Notification.objects.create(
        booking=booking,
        waitlist_entry=waitlist_entry,
        recipient=to_email,
        subject=subject,
        message=body,
        sent=sent,
    )


def _when(booking) -> str:
    return f"{booking.date:%A, %B %d, %Y} at {booking.time:%H:%M}"


def _booking_summary(booking) -> str:
    return (
        f"Reference: {booking.ref_code}\n"
        f"Service: {booking.service_name}\n"
        f"Staff: {booking.staff_name or 'Any available'}\n"
        f"Date & Time: {_when(booking)}\n"
    )


@receiver(pre_save, sender=Booking)
def remember_previous_status(sender, instance: Booking, **kwargs):
    instance._previous_status = None
    if instance.pk:
        instance._previous_status = (
            Booking.objects.filter(pk=instance.pk).values_list("status", flat=True).first()
        )


@receiver(post_save, sender=Booking)
def booking_status_emails(sender, instance: Booking, created: bool, update_fields=None, **kwargs):
    previous = getattr(instance, "_previous_status", None)
    shop_name = instance.shop.name

    if created:
        if instance.slot_id.startswith("recurring-"):
            return
        if instance.status == Booking.STATUS_PENDING:
            subject = "Booking Received"
            lead = "We received your booking request. It is pending approval by the shop."
        else:
            subject = "Booking Confirmation"
            lead = "Your booking is confirmed."
        body = (
            f"Hi {instance.client_name},\n\n{lead}\n\n"
            f"{_booking_summary(instance)}\n"
            f"Keep your reference code to reschedule or cancel.\n"
            f"- {shop_name}"
        )
        _notify(subject, body, instance.client_email, booking=instance)
        return

    if update_fields is not None and "status" not in update_fields:
        return
    if previous == instance.status:
        return

    if previous == Booking.STATUS_PENDING and instance.status == Booking.STATUS_CONFIRMED:
        body = (
            f"Hi {instance.client_name},\n\n"
            f"Your booking has been confirmed.\n\n"
            f"{_booking_summary(instance)}\n"
            f"We look forward to seeing you!\n- {shop_name}"
        )
        _notify("Booking Confirmed", body, instance.client_email, booking=instance)
        return

    if instance.status in (Booking.STATUS_CANCELLED, Booking.STATUS_REJECTED):
        word = "cancelled" if instance.status == Booking.STATUS_CANCELLED else "declined"
        body_client = (
            f"Dear {instance.client_name},\n\n"
            f"Your appointment for {instance.service_name} on {_when(instance)} has been {word}.\n"
            f"If this was unexpected, please reply to this email.\n"
        )
        _notify(f"Booking {instance.ref_code} {word.capitalize()}", body_client, instance.client_email, booking=instance)

        # Optional owner/admin alert: only if EMAIL_HOST_USER is configured
        owner_email = getattr(settings, "EMAIL_HOST_USER", None)
        if owner_email and instance.status == Booking.STATUS_CANCELLED:
            body_owner = (
                f"ALERT: Booking {instance.ref_code} cancelled.\n"
                f"Client: {instance.client_name} ({instance.client_email})\n"
                f"{_booking_summary(instance)}"
            )
            _send(f"ALERT: Booking {instance.ref_code} CANCELLED", body_owner, owner_email)

        if previous in Booking.ACTIVE_STATUSES:
            notify_waitlist(instance)


def notify_waitlist(booking: Booking) -> list:
    """Tell waiting clients whose preferences match the slot this booking freed."""
    freed_slot = {
        "date": booking.date.isoformat(),
        "time": booking.time.strftime("%H:%M"),
        "staff_id": booking.staff_id,
        "service_id": booking.service_id,
    }
    entries = {e.id: e for e in WaitlistEntry.objects.filter(shop=booking.shop, status="waiting")}
    matches = find_matching_entries([e.to_snapshot() for e in entries.values()], freed_slot)

    notified = []
    for match in matches:
        entry = entries[match["id"]]
        body = (
            f"Hi {entry.client_name},\n\n"
            f"A slot you were waiting for just opened up at {booking.shop.name}:\n"
            f"{booking.service_name} on {_when(booking)}"
            f"{' with ' + booking.staff_name if booking.staff_name else ''}.\n\n"
            f"Book soon, it is first come, first served.\n"
            f"Your waitlist reference: {entry.ref_code}\n"
        )
        _notify("A slot opened up", body, entry.client_email, waitlist_entry=entry)
        entry.status = "notified"
        entry.save(update_fields=["status"])
        notified.append(entry)

    if notified:
        logger.info(
            "Booking %s freed %s %s: notified %d waitlist entr%s",
            booking.ref_code, freed_slot["date"], freed_slot["time"],
            len(notified), "y" if len(notified) == 1 else "ies",
        )
    return notified
