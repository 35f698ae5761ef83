from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.serializers import OrderSerializer, PublicOrderCreateSerializer
from orders.services import OrderCreationService


class PublicOrderCreateView(APIView):
    """
    Customer ordering from a table QR code. The token in the URL resolves
    both restaurant and table, so no login or tenant header is needed.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, token):
        serializer = PublicOrderCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = OrderCreationService.create_from_token(
            token,
            data['items'],
            idempotency_key=data.get('idempotency_key'),
            notes=data['notes'],
            is_priority=data['is_priority'],
        )
        return Response(
            OrderSerializer(result.order, context={'request': request}).data,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )
