"""
URL configuration for core_backend project.
"""

from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse

from payments.urls import settlement_urlpatterns


def health_check(request):
    """Simple health check endpoint that doesn't require authentication"""
    return JsonResponse({"status": "ok", "message": "Backend is running"})


urlpatterns = [
    path("api/health/", health_check, name="health_check"),
    path("admin/", admin.site.urls),
    path("api/users/", include("users.urls")),
    path("api/orders/", include("orders.urls")),
    path("api/bills/", include("billing.urls")),
    path("api/payments/", include("payments.urls")),
    path("api/settlements/", include(settlement_urlpatterns)),
    path("api/partners/", include("partners.urls")),
]
