from django.contrib import admin
from notifications.models import Notification

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("recipient", "subject", "booking", "waitlist_entry", "sent", "created_at")
    list_filter = ("sent", "created_at", "booking__shop")
    search_fields = ("recipient", "subject", "message", "booking__ref_code", "waitlist_entry__ref_code")
    list_select_related = ("booking", "waitlist_entry")
    raw_id_fields = ("booking", "waitlist_entry")
