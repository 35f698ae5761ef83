import logging

from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from core_backend.base import ReadOnlyBaseViewSet
from menu.services import MenuService
from orders.models import Order
from orders.serializers import OrderCreateSerializer, OrderSerializer
from orders.services import OrderCreationService

from .status_actions import StatusActionsMixin

logger = logging.getLogger(__name__)


class OrderViewSet(StatusActionsMixin, ReadOnlyBaseViewSet):
    """
    Staff order endpoints.

    Reads are plain tenant-scoped querysets; creation and transitions go
    through the service layer.
    """

    queryset = Order.objects.all()
    serializer_class = OrderSerializer
    filterset_fields = ['status', 'table', 'is_priority', 'source']
    ordering_fields = ['created_at', 'total', 'is_priority']
    select_related_fields = ['table']

    def create(self, request: Request) -> Response:
        """
        Create an order for a table.

        A replayed idempotency key returns the original order with 200
        instead of 201.
        """
        serializer = OrderCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        table = MenuService.get_table(request.tenant, data['table_id'])
        result = OrderCreationService.create_order(
            tenant=request.tenant,
            table=table,
            items=data['items'],
            caller_key=f"user:{request.user.pk}",
            idempotency_key=data.get('idempotency_key'),
            notes=data['notes'],
            is_priority=data['is_priority'],
            created_by=request.user,
        )

        response_serializer = OrderSerializer(result.order, context={'request': request})
        return Response(
            response_serializer.data,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )
