"""
Payments views package.
"""

from .payment_viewset import PaymentViewSet
from .settlement_viewset import SettlementViewSet
from .webhooks import GatewayWebhookView

__all__ = [
    'PaymentViewSet',
    'SettlementViewSet',
    'GatewayWebhookView',
]
