from rest_framework import viewsets

from booking.views import IsStaffUser, ShopScopedMixin
from .models import AvailabilitySlot
from .serializers import AvailabilitySlotSerializer


class AvailabilitySlotViewSet(ShopScopedMixin, viewsets.ModelViewSet):
    """Manual one-off slots; managed by staff users only."""
    queryset = AvailabilitySlot.objects.select_related("staff").order_by("date", "time", "staff_id")
    serializer_class = AvailabilitySlotSerializer
    permission_classes = [IsStaffUser]

    def get_queryset(self):
        qs = super().get_queryset()
        date = (self.request.query_params.get("date") or "").strip()
        if date:
            qs = qs.filter(date=date)
        return qs
