from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import CommissionViewSet, RevenueShareViewSet

router = DefaultRouter()
router.register(r"commissions", CommissionViewSet, basename="commission")
router.register(r"revenue-shares", RevenueShareViewSet, basename="revenue-share")

urlpatterns = [
    path("", include(router.urls)),
]
