from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import permissions
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from core_backend.base import ReadOnlyBaseViewSet
from core_backend.exceptions import NotFoundError
from users.permissions import IsManagerOrHigher

from .models import Commission, Reseller, RevenueShare
from .serializers import CommissionSerializer, RevenueShareSerializer
from .services import RevenueShareService


class CommissionViewSet(ReadOnlyBaseViewSet):
    queryset = Commission.objects.all()
    serializer_class = CommissionSerializer
    permission_classes = [IsManagerOrHigher]
    filterset_fields = ['partner', 'status', 'order']
    select_related_fields = ['partner']


class RevenueShareViewSet(ReadOnlyBaseViewSet):
    """Platform-level ledger; not tenant scoped, so platform staff only."""

    queryset = RevenueShare.objects.all()
    serializer_class = RevenueShareSerializer
    permission_classes = [permissions.IsAdminUser]
    filterset_fields = ['reseller', 'district', 'payout_status']

    @action(detail=False, methods=["get"], url_path=r"resellers/(?P<reseller_id>[^/.]+)/summary")
    def reseller_summary(self, request: Request, reseller_id=None) -> Response:
        try:
            reseller = Reseller.objects.get(id=reseller_id)
        except (Reseller.DoesNotExist, DjangoValidationError):
            raise NotFoundError("Reseller", reseller_id)
        return Response(RevenueShareService.reseller_summary(reseller))

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request: Request, pk=None) -> Response:
        share = RevenueShareService.mark_paid(pk)
        return Response(RevenueShareSerializer(share).data)
