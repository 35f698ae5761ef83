from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import GatewayWebhookView, PaymentViewSet, SettlementViewSet

router = DefaultRouter()
router.register(r"", PaymentViewSet, basename="payment")

settlement_router = DefaultRouter()
settlement_router.register(r"", SettlementViewSet, basename="settlement")

urlpatterns = [
    path("webhooks/gateway/", GatewayWebhookView.as_view(), name="gateway-webhook"),
    path("", include(router.urls)),
]

# Mounted at /api/settlements/ by the project urlconf
settlement_urlpatterns = [
    path("", include(settlement_router.urls)),
]
