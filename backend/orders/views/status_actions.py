from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from orders.serializers import OrderSerializer, OrderTransitionSerializer
from orders.services import OrderService, OrderStateMachine
from users.permissions import IsKitchenOrManager


class StatusActionsMixin:
    """
    Mixin for order status transition actions

    This mixin provides action methods for OrderViewSet.
    """

    @action(
        detail=True,
        methods=["post"],
        url_path="transition",
        permission_classes=[IsKitchenOrManager],
    )
    def transition(self, request: Request, pk=None) -> Response:
        """
        Moves the order to the requested status.

        Returns either:
        - 200: Order transitioned
        - 409: The transition does not exist for the order's current status
        """
        serializer = OrderTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.transition(pk, serializer.validated_data['status'], tenant=request.tenant)
        return Response(OrderSerializer(order, context={'request': request}).data)

    @action(detail=True, methods=["get"], url_path="next-states")
    def next_states(self, request: Request, pk=None) -> Response:
        order = self.get_object()
        return Response({
            'status': order.status,
            'next_states': sorted(OrderStateMachine.next_states(order.status)),
        })
