"""
Sync app service layer exports.
"""
from .idempotency_service import IdempotencyService, serialize_payload, is_idempotency_conflict

__all__ = [
    'IdempotencyService',
    'serialize_payload',
    'is_idempotency_conflict',
]
