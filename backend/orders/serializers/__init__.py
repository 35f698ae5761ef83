"""
Orders serializers package.
"""

from .order_serializers import (
    OrderItemSerializer,
    OrderSerializer,
    OrderCreateSerializer,
    PublicOrderCreateSerializer,
)
from .status_serializers import OrderTransitionSerializer

__all__ = [
    'OrderItemSerializer',
    'OrderSerializer',
    'OrderCreateSerializer',
    'PublicOrderCreateSerializer',
    'OrderTransitionSerializer',
]
