from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import AvailabilitySlotViewSet

router = DefaultRouter()
router.register(r"availability", AvailabilitySlotViewSet, basename="availability-slot")

urlpatterns = [path("", include(router.urls))]
