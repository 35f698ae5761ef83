import logging

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from core_backend.base import ReadOnlyBaseViewSet
from users.permissions import IsManagerOrHigher

from ..models import Payment
from ..serializers import (
    PaymentCreateSerializer,
    PaymentFailSerializer,
    PaymentSerializer,
    RefundCreateSerializer,
    RefundSerializer,
    TipCreateSerializer,
    TipSerializer,
)
from ..services import PaymentService

logger = logging.getLogger(__name__)


class PaymentViewSet(ReadOnlyBaseViewSet):
    queryset = Payment.objects.all()
    serializer_class = PaymentSerializer
    filterset_fields = ['bill', 'method', 'status']
    ordering_fields = ['created_at', 'amount']

    def create(self, request: Request) -> Response:
        """
        Record a payment against an open bill.

        A replayed idempotency key (body field or ``Idempotency-Key`` header)
        returns the original payment with 200.
        """
        serializer = PaymentCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PaymentService.record_payment(
            data['bill_id'],
            data['method'],
            data['amount'],
            reference=data.get('reference'),
            notes=data['notes'],
            idempotency_key=data.get('idempotency_key'),
            caller_key=f"user:{request.user.pk}",
            tenant=request.tenant,
        )
        return Response(
            PaymentSerializer(result.payment).data,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"])
    def confirm(self, request: Request, pk=None) -> Response:
        payment = PaymentService.confirm_payment(pk, tenant=request.tenant)
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"])
    def fail(self, request: Request, pk=None) -> Response:
        serializer = PaymentFailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentService.fail_payment(pk, serializer.validated_data['reason'], tenant=request.tenant)
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"], permission_classes=[IsManagerOrHigher])
    def refund(self, request: Request, pk=None) -> Response:
        serializer = RefundCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = PaymentService.record_refund(
            pk,
            serializer.validated_data['amount'],
            reason=serializer.validated_data['reason'],
            tenant=request.tenant,
        )
        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"])
    def tips(self, request: Request) -> Response:
        serializer = TipCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        tip = PaymentService.record_tip(
            data['bill_id'],
            amount=data.get('amount'),
            percentage=data.get('percentage'),
            payment_id=data.get('payment_id'),
            tenant=request.tenant,
        )
        return Response(TipSerializer(tip).data, status=status.HTTP_201_CREATED)
