from django.contrib import admin
from .models import Shop


@admin.register(Shop)
class ShopAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "slug", "buffer_minutes", "require_approval")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
