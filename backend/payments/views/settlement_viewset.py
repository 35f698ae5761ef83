from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from core_backend.base import ReadOnlyBaseViewSet
from users.permissions import IsManagerOrHigher

from ..models import Settlement
from ..serializers import (
    GatewayReportSerializer,
    SettlementAggregateSerializer,
    SettlementSerializer,
)
from ..services import SettlementService


class SettlementViewSet(ReadOnlyBaseViewSet):
    queryset = Settlement.objects.all()
    serializer_class = SettlementSerializer
    permission_classes = [IsManagerOrHigher]
    filterset_fields = ['date', 'status']
    ordering = ['-date']
    ordering_fields = ['date', 'total_sales', 'variance']

    @action(detail=False, methods=["post"])
    def aggregate(self, request: Request) -> Response:
        """Rebuild one day's settlement. Safe to call repeatedly."""
        serializer = SettlementAggregateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        settlement = SettlementService.aggregate_day(request.tenant, serializer.validated_data['date'])
        return Response(SettlementSerializer(settlement).data)

    @action(detail=False, methods=["post"], url_path="gateway-report")
    def gateway_report(self, request: Request) -> Response:
        serializer = GatewayReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        settlement = SettlementService.record_gateway_report(
            request.tenant,
            data['date'],
            data['gateway_amount'],
            gateway_fees=data['gateway_fees'],
            notes=data['notes'],
        )
        return Response(SettlementSerializer(settlement).data)
