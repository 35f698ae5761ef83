from .payment_service import PaymentCreationResult, PaymentService, parse_amount
from .settlement_service import METHOD_COLUMN, SettlementService, day_bounds
from .webhook_service import (
    WebhookResult,
    WebhookService,
    compute_signature,
    verify_signature,
)

__all__ = [
    'PaymentCreationResult',
    'PaymentService',
    'parse_amount',
    'METHOD_COLUMN',
    'SettlementService',
    'day_bounds',
    'WebhookResult',
    'WebhookService',
    'compute_signature',
    'verify_signature',
]
