# booking/views_cancel.py
#
# Purpose:
# - Public "Cancel Booking" endpoint for clients holding a reference code:
#   * POST /bookings/cancel/submit/ -> validate + cancel booking
#
# Notes:
# - The reference code identifies the booking (and so the shop); the email
#   must match the one used when booking.
# - notifications/signals.py sends the emails on the status change.
#
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .exceptions import BookingError
from .models import Booking
from .services.booking_manager import BookingManager
from .services.ref_codes import normalize_ref_code


@csrf_exempt
@require_http_methods(["POST"])
def cancel_booking_action(request):
    """
    POST handler to cancel a booking.

    Expected form fields:
      - ref_code (required)
      - email    (required)
      - mode     (optional) "single" (default) or "future" for a recurring series
      - reason   (optional) appended to notes

    Behavior:
      - Find booking by reference code and verify the email matches
      - Cancel through BookingManager (releases manual slots, cascades for "future")
    """
    ref_code = normalize_ref_code(request.POST.get("ref_code"))
    email = (request.POST.get("email") or "").strip()
    mode = (request.POST.get("mode") or "single").strip()
    reason = (request.POST.get("reason") or "").strip()

    # Validate required inputs in server (browser also validates)
    if not ref_code or not email:
        return JsonResponse(
            {"ok": False, "message": "Reference code and email are required."},
            status=400,
        )

    booking = Booking.objects.select_related("shop").filter(ref_code=ref_code).first()
    # Same message for both cases so a wrong email reveals nothing about the code.
    if booking is None or booking.client_email.strip().lower() != email.lower():
        return JsonResponse(
            {"ok": False, "message": "No booking matches that reference code and email."},
            status=404,
        )

    manager = BookingManager(booking.shop)
    try:
        cancelled = manager.cancel_booking(booking, mode=mode)
    except BookingError as e:
        return JsonResponse({"ok": False, "message": str(e)}, status=400)

    # Optionally append reason to notes for staff visibility (non-destructive)
    if reason:
        booking.notes = (booking.notes or "") + f"\n[Cancel reason] {reason}"
        booking.save(update_fields=["notes"])

    return JsonResponse({
        "ok": True,
        "message": "Your booking has been cancelled.",
        "cancelled": len(cancelled),
    })
