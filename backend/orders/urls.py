from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import OrderViewSet, PublicOrderCreateView

router = DefaultRouter()
router.register(r"", OrderViewSet, basename="order")

urlpatterns = [
    path("public/<str:token>/", PublicOrderCreateView.as_view(), name="public-order-create"),
    path("", include(router.urls)),
]
