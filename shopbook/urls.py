# shopbook/urls.py
#
# Purpose:
# - Project URL router.
# - Every JSON API is scoped to a shop: /api/shops/<shop_slug>/...
# - The public cancel-by-reference endpoint sits outside the API prefix,
#   since a reference code alone identifies the shop.
#
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path

# Public cancellation by reference code
from booking import views_cancel


urlpatterns = [
    # Django admin
    path("admin/", admin.site.urls),

    # ==========
    # Public
    # ==========
    path("bookings/cancel/submit/", views_cancel.cancel_booking_action, name="cancel_booking_action"),

    # =====
    # API's
    # =====
    path("api/shops/<slug:shop_slug>/", include("booking.urls")),
    path("api/shops/<slug:shop_slug>/", include("staff.urls")),
]

# Static files in DEBUG (dev only). In production, serve via web server / CDN.
if settings.DEBUG:
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
