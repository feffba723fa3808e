# booking/views.py
#
# Purpose:
# - Shop-scoped REST APIs for Services, Staff, Bookings, the Waitlist and
#   the walk-in queue.
#   Every route lives under /api/shops/<shop_slug>/.
# - Availability (generated + manual slots minus booked ones) and the
#   recurring-series preview shown to clients before they commit.
# - Permissions:
#   * Service/Staff writes are staff-user only.
#   * Booking creation needs NO login. A booking's reference code is the
#     client's handle for lookup, reschedule and cancel.
#   * Listing bookings and approve/reject are staff-user only.
#
import logging

from django.db import IntegrityError, transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, BasePermission
from rest_framework.response import Response

from shops.models import Shop

from .conf import booking_setting
from .exceptions import BookingError, SlotUnavailable
from .models import Booking, Service, Staff, WaitlistEntry, WalkIn
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    CancelSerializer,
    RecurringPreviewSerializer,
    RescheduleSerializer,
    ServiceSerializer,
    StaffSerializer,
    WaitlistEntrySerializer,
    WalkInMoveSerializer,
    WalkInSerializer,
)
from .services.availability_engine import AvailabilityEngine
from .services.booking_manager import BookingManager
from .services.ref_codes import WAITLIST_PREFIX, generate_ref_code, normalize_ref_code
from .services.walk_in_queue import WalkInQueue

logger = logging.getLogger(__name__)


# -------------------- Permissions --------------------
class IsStaffOrReadOnly(BasePermission):
    """
    Read: anyone
    Write: staff only
    """
    def has_permission(self, request, view):
        if request.method in ("GET", "HEAD", "OPTIONS"):
            return True
        return bool(request.user and request.user.is_staff)


class IsStaffUser(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_staff)


def booking_error_response(exc):
    code = status.HTTP_409_CONFLICT if isinstance(exc, SlotUnavailable) else status.HTTP_400_BAD_REQUEST
    return Response({"detail": str(exc)}, status=code)


# -------------------- Shop scoping --------------------
class ShopScopedMixin:
    """Resolve the tenant from the URL and limit every queryset to it."""

    def get_shop(self):
        if not hasattr(self, "_shop"):
            self._shop = get_object_or_404(Shop, slug=self.kwargs["shop_slug"])
        return self._shop

    def get_queryset(self):
        return super().get_queryset().filter(shop=self.get_shop())

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["shop"] = self.get_shop()
        return context

    def perform_create(self, serializer):
        serializer.save(shop=self.get_shop())


# -------------------- ViewSets --------------------
class ServiceViewSet(ShopScopedMixin, viewsets.ModelViewSet):
    """
    Service catalog:
    - Anyone can list active services.
    - Only staff users can create/update/delete services.
    """
    queryset = Service.objects.all().order_by("id")
    serializer_class = ServiceSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        """
        Staff users see all services; public sees only active services.
        """
        user = getattr(self.request, "user", None)
        qs = super().get_queryset()
        if user and user.is_authenticated and user.is_staff:
            return qs
        return qs.filter(active=True)


class StaffViewSet(ShopScopedMixin, viewsets.ModelViewSet):
    queryset = Staff.objects.all().order_by("name", "id")
    serializer_class = StaffSerializer
    permission_classes = [IsStaffOrReadOnly]


class BookingViewSet(
    ShopScopedMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Endpoints (relative to /api/shops/<slug>/):
    - GET  bookings/available-slots/?service=ID[&staff=ID]
    - POST bookings/recurring-preview/
    - POST bookings/                        create (+ optional recurring series)
    - GET  bookings/{ref_code}/             lookup by reference code
    - POST bookings/{ref_code}/reschedule/  move to another slot
    - POST bookings/{ref_code}/cancel/      mode=single|future
    - POST bookings/{ref_code}/approve/     staff users
    - POST bookings/{ref_code}/reject/      staff users
    - GET  bookings/                        staff users
    """
    queryset = Booking.objects.all().order_by("date", "time", "id")
    serializer_class = BookingSerializer
    lookup_field = "ref_code"

    def get_permissions(self):
        if self.action in ("list", "approve", "reject"):
            return [IsStaffUser()]
        return [AllowAny()]

    def get_object(self):
        self.kwargs[self.lookup_field] = normalize_ref_code(self.kwargs[self.lookup_field])
        return super().get_object()

    @property
    def manager(self):
        return BookingManager(self.get_shop())

    def create(self, request, *args, **kwargs):
        """
        Create a booking on a slot picked from available-slots.
        - Requires: service, slot_id, client_name, client_email.
        - Optional: staff, client_phone, notes, recurring_interval.
        - With recurring_interval the follow-up occurrences are created after the
          primary booking; the response reports created/skipped/failed counts.
        """
        serializer = BookingCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        staff = data.get("staff")
        manager = self.manager
        try:
            result = manager.create_booking(
                service=data["service"],
                slot_id=data["slot_id"],
                client={
                    "name": data["client_name"],
                    "email": data["client_email"],
                    "phone": data.get("client_phone", ""),
                },
                notes=data.get("notes", ""),
                staff_id=staff.id if staff else None,
            )
        except BookingError as e:
            return booking_error_response(e)

        body = {"ref_code": result.ref_code, "booking_id": result.booking_id}

        interval = data.get("recurring_interval")
        if interval:
            series = manager.create_recurring_series(result.booking, interval)
            body["recurring"] = series.as_dict()
            result.booking.refresh_from_db()

        body["booking"] = BookingSerializer(result.booking).data
        return Response(body, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"], url_path="available-slots")
    def available_slots(self, request, shop_slug=None):
        """
        GET bookings/available-slots/?service=ID[&staff=ID]
        Slots already in the past are left out.
        """
        shop = self.get_shop()
        service_id = (request.query_params.get("service") or "").strip()
        staff_id = (request.query_params.get("staff") or "").strip()

        service_snapshot = None
        if service_id:
            service = get_object_or_404(Service, pk=service_id, shop=shop, active=True)
            service_snapshot = {"id": service.id, "duration": service.duration_minutes}

        staff_pk = None
        if staff_id:
            staff_pk = get_object_or_404(Staff, pk=staff_id, shop=shop).id

        slots = AvailabilityEngine(shop).find_available_slots(service_snapshot, staff_id=staff_pk)
        return Response({
            "slots": slots,
            "dates": sorted({s["date"] for s in slots}),
        })

    @action(detail=False, methods=["post"], url_path="recurring-preview")
    def recurring_preview(self, request, shop_slug=None):
        """Summary of a recurring series for the client to confirm before booking it."""
        serializer = RecurringPreviewSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        staff = data.get("staff")
        plan = self.manager.preview_series(
            {
                "date": data["date"].isoformat(),
                "time": data["time"],
                "duration": data["service"].duration_minutes,
                "staff_id": staff.id if staff else None,
            },
            data["interval"],
        )
        body = plan.as_dict()
        body["horizon_months"] = booking_setting("RECURRING_HORIZON_MONTHS")
        return Response(body)

    @action(detail=True, methods=["post"])
    def reschedule(self, request, shop_slug=None, ref_code=None):
        booking = self.get_object()
        serializer = RescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            booking = self.manager.reschedule_booking(booking, serializer.validated_data["slot_id"])
        except BookingError as e:
            return booking_error_response(e)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, shop_slug=None, ref_code=None):
        """Cancel this booking, or with mode=future the rest of its series too."""
        booking = self.get_object()
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            cancelled = self.manager.cancel_booking(booking, mode=serializer.validated_data["mode"])
        except BookingError as e:
            return booking_error_response(e)
        return Response({"detail": "Booking cancelled.", "cancelled": len(cancelled)})

    @action(detail=True, methods=["post"])
    def approve(self, request, shop_slug=None, ref_code=None):
        return self._set_status(Booking.STATUS_CONFIRMED)

    @action(detail=True, methods=["post"])
    def reject(self, request, shop_slug=None, ref_code=None):
        return self._set_status(Booking.STATUS_REJECTED)

    def _set_status(self, new_status):
        booking = self.get_object()
        try:
            booking = self.manager.set_status(booking, new_status)
        except BookingError as e:
            return booking_error_response(e)
        return Response(BookingSerializer(booking).data)


class WaitlistEntryViewSet(
    ShopScopedMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    - POST waitlist/             join (public), returns the WL reference code
    - GET  waitlist/{ref_code}/  check status (public)
    - GET  waitlist/             staff users
    """
    queryset = WaitlistEntry.objects.all()
    serializer_class = WaitlistEntrySerializer
    lookup_field = "ref_code"

    def get_permissions(self):
        if self.action == "list":
            return [IsStaffUser()]
        return [AllowAny()]

    def get_object(self):
        self.kwargs[self.lookup_field] = normalize_ref_code(self.kwargs[self.lookup_field])
        return super().get_object()

    def perform_create(self, serializer):
        shop = self.get_shop()
        attempts = max(booking_setting("REF_CODE_ATTEMPTS"), 1)
        for attempt in range(attempts):
            code = generate_ref_code(WAITLIST_PREFIX)
            try:
                with transaction.atomic():
                    entry = serializer.save(shop=shop, ref_code=code)
                break
            except IntegrityError:
                if not WaitlistEntry.objects.filter(ref_code=code).exists() or attempt == attempts - 1:
                    raise
                logger.info("Waitlist reference code %s already taken, retrying", code)
        logger.info("Waitlist entry %s created for shop %s", entry.ref_code, shop.slug)


class WalkInViewSet(
    ShopScopedMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    - POST walk-ins/                  join the queue (public)
    - GET  walk-ins/queue/            public queue board with estimated waits
    - GET  walk-ins/{id}/             check one walk-in (public)
    - GET  walk-ins/                  staff users
    - POST walk-ins/{id}/start|complete|no-show/   staff users
    - POST walk-ins/{id}/move/        {"direction": "up"|"down"}, staff users
    """
    queryset = WalkIn.objects.all()
    serializer_class = WalkInSerializer

    def get_permissions(self):
        if self.action in ("create", "queue", "retrieve"):
            return [AllowAny()]
        return [IsStaffUser()]

    @property
    def walk_in_queue(self):
        return WalkInQueue(self.get_shop())

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        queue = self.walk_in_queue
        walk_in = queue.join(
            data["client_name"],
            service=data.get("service"),
            staff=data.get("staff"),
            estimated_duration=data.get("estimated_duration"),
        )
        body = self.get_serializer(walk_in).data
        body["estimated_wait"] = queue.wait_times().get(walk_in.id, 0)
        return Response(body, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["get"])
    def queue(self, request, shop_slug=None):
        queue = self.walk_in_queue
        now = timezone.now()
        waits = queue.wait_times(now)
        return Response({
            "waiting": [
                {
                    "id": w.id,
                    "client_name": w.client_name,
                    "service_name": w.service_name,
                    "position": w.position,
                    "estimated_wait": waits.get(w.id, 0),
                }
                for w in queue.waiting()
            ],
            "in_progress": len(queue.in_progress()),
            "staff_count": queue.staff_count(),
            "next_wait": queue.next_wait(now),
        })

    @action(detail=True, methods=["post"])
    def start(self, request, shop_slug=None, pk=None):
        return self._transition(self.walk_in_queue.start)

    @action(detail=True, methods=["post"])
    def complete(self, request, shop_slug=None, pk=None):
        return self._transition(self.walk_in_queue.complete)

    @action(detail=True, methods=["post"], url_path="no-show")
    def no_show(self, request, shop_slug=None, pk=None):
        return self._transition(self.walk_in_queue.no_show)

    @action(detail=True, methods=["post"])
    def move(self, request, shop_slug=None, pk=None):
        serializer = WalkInMoveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        direction = serializer.validated_data["direction"]
        return self._transition(lambda walk_in: self.walk_in_queue.move(walk_in, direction))

    def _transition(self, change):
        walk_in = self.get_object()
        try:
            walk_in = change(walk_in)
        except BookingError as e:
            return booking_error_response(e)
        return Response(self.get_serializer(walk_in).data)
