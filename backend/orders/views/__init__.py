"""
Orders views package.
"""

from .order_viewset import OrderViewSet
from .public_order_view import PublicOrderCreateView

__all__ = [
    'OrderViewSet',
    'PublicOrderCreateView',
]
