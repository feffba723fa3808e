from rest_framework import serializers

from booking.models import Staff
from .models import AvailabilitySlot


class AvailabilitySlotSerializer(serializers.ModelSerializer):
    time = serializers.TimeField(format="%H:%M")

    class Meta:
        model = AvailabilitySlot
        fields = ["id", "staff", "date", "time", "duration_minutes", "available"]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        shop = self.context.get("shop")
        if shop is not None:
            self.fields["staff"].queryset = Staff.objects.filter(shop=shop)
