from django.contrib import admin
from .models import Service, Staff, Booking, WaitlistEntry, WalkIn

@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ("id", "shop", "name", "price", "deposit_percent", "duration_minutes", "active")
    list_filter = ("shop", "active")
    search_fields = ("name",)
    list_editable = ("price", "duration_minutes", "active")  # allow inline toggle

@admin.register(Staff)
class StaffAdmin(admin.ModelAdmin):
    list_display = ("id", "shop", "name", "email", "role", "active")
    list_filter = ("shop", "active")

@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("ref_code", "shop", "client_name", "service_name", "staff", "date", "time", "status")
    list_filter = ("shop", "status", "service")
    search_fields = ("ref_code", "client_name", "client_email", "service_name", "recurring_group_id")

@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    list_display = ("ref_code", "shop", "client_name", "service", "staff", "status", "created_at")
    list_filter = ("shop", "status")
    search_fields = ("ref_code", "client_name", "client_email")

@admin.register(WalkIn)
class WalkInAdmin(admin.ModelAdmin):
    list_display = ("client_name", "shop", "service_name", "staff", "status", "position", "joined_at")
    list_filter = ("shop", "status")
    search_fields = ("client_name", "service_name")
