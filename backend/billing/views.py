import logging

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from core_backend.base import ReadOnlyBaseViewSet
from menu.services import MenuService
from users.permissions import IsManagerOrHigher

from .models import Bill
from .serializers import (
    BillActionSerializer,
    BillCreateSerializer,
    BillFromOrderSerializer,
    BillSerializer,
)
from .services import BillService

logger = logging.getLogger(__name__)


class BillViewSet(ReadOnlyBaseViewSet):
    """
    Bills. Every write goes through BillService, which locks the bill row
    and recomputes the totals before committing.
    """

    queryset = Bill.objects.all()
    serializer_class = BillSerializer
    filterset_fields = ['status', 'table']
    ordering_fields = ['created_at', 'total', 'bill_number']
    select_related_fields = ['table']

    def get_permissions(self):
        if self.action == 'destroy':
            return [IsManagerOrHigher()]
        return super().get_permissions()

    def _respond(self, bill, status_code=status.HTTP_200_OK):
        bill = Bill.all_objects.select_related('table').get(id=bill.id)
        return Response(BillSerializer(bill, context={'request': self.request}).data, status=status_code)

    def create(self, request: Request) -> Response:
        serializer = BillCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        table = None
        if data.get('table_id'):
            table = MenuService.get_table(request.tenant, data['table_id'])
        bill = BillService.create(
            request.tenant,
            items=data['items'],
            table=table,
            tax_rate=data.get('tax_rate'),
            created_by=request.user,
        )
        return self._respond(bill, status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="from-order")
    def from_order(self, request: Request) -> Response:
        serializer = BillFromOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        # Scope the lookup to the caller's restaurant before handing off
        from orders.services import OrderService
        order = OrderService.get_order(serializer.validated_data['order_id'], tenant=request.tenant)

        result = BillService.create_from_order(order.id)
        return self._respond(result.bill, status.HTTP_201_CREATED if result.created else status.HTTP_200_OK)

    def partial_update(self, request: Request, pk=None) -> Response:
        serializer = BillActionSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        tenant = request.tenant

        bill_action = data['action']
        if bill_action == 'addItem':
            bill = BillService.add_item(
                pk, data['item'], tenant=tenant,
                idempotency_key=data.get('idempotency_key'), caller_key=f"user:{request.user.pk}",
            )
        elif bill_action == 'removeItem':
            bill = BillService.remove_item(
                pk, data['item_id'], tenant=tenant,
                idempotency_key=data.get('idempotency_key'), caller_key=f"user:{request.user.pk}",
            )
        elif bill_action == 'updateDiscount':
            bill = BillService.update_discount(pk, data['discount'], tenant=tenant)
        elif bill_action == 'updateServiceCharge':
            bill = BillService.update_service_charge(pk, data['service_charge'], tenant=tenant)
        else:
            bill = BillService.close(pk, tenant=tenant)

        logger.info(f"Bill {bill.bill_number}: {bill_action} by user {request.user.pk}")
        return self._respond(bill)

    def destroy(self, request: Request, pk=None) -> Response:
        BillService.delete(pk, tenant=request.tenant)
        return Response(status=status.HTTP_204_NO_CONTENT)
