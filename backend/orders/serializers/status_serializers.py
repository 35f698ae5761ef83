from rest_framework import serializers

from orders.models import Order


class OrderTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.OrderStatus.choices)
