# staff/admin.py
from django.contrib import admin
from .models import AvailabilitySlot  # Only manual slots are managed here

@admin.register(AvailabilitySlot)
class AvailabilitySlotAdmin(admin.ModelAdmin):
    list_display = ("shop", "staff", "date", "time", "duration_minutes", "available")
    list_filter = ("shop", "staff", "available")
    search_fields = ("staff__name",)
