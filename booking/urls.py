# booking/urls.py
#
# Purpose:
# - Expose the shop-scoped REST API for the booking app via DRF router.
#   Included by shopbook/urls.py under /api/shops/<shop_slug>/, so every
#   viewset receives shop_slug in self.kwargs.
#
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    BookingViewSet,
    ServiceViewSet,
    StaffViewSet,
    WaitlistEntryViewSet,
    WalkInViewSet,
)

router = DefaultRouter()
router.register(r"services", ServiceViewSet, basename="service")
router.register(r"staff", StaffViewSet, basename="staff")
router.register(r"bookings", BookingViewSet, basename="booking")
router.register(r"waitlist", WaitlistEntryViewSet, basename="waitlist")
router.register(r"walk-ins", WalkInViewSet, basename="walk-in")

urlpatterns = [
    path("", include(router.urls)),
]
