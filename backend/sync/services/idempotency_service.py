"""
Idempotency ledger for order creation, payments and bill item edits.

The check and the write both happen inside the caller's transaction, so an
order is never committed without its ledger row and a ledger row never
points at an order that was rolled back.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from sync.models import IdempotencyRecord

logger = logging.getLogger(__name__)

CONSTRAINT_NAME = 'unique_idempotency_key_per_caller'


def serialize_payload(obj):
    """Recursively convert UUIDs, Decimals, and datetimes to JSON-serializable types."""
    if isinstance(obj, dict):
        return {k: serialize_payload(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_payload(item) for item in obj]
    elif isinstance(obj, uuid.UUID):
        return str(obj)
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


def is_idempotency_conflict(exc: IntegrityError) -> bool:
    return CONSTRAINT_NAME in str(exc) or 'sync_idempotencyrecord' in str(exc)


class IdempotencyService:

    @staticmethod
    def lookup(tenant, caller_key: str, key: str):
        """
        Return the live record for (tenant, caller_key, key), or None.

        An expired record is deleted so the key can be reused; expiry only
        risks a missed duplicate, never lost data.
        """
        record = (
            IdempotencyRecord.all_objects
            .filter(tenant=tenant, caller_key=caller_key, key=key)
            .first()
        )
        if record is None:
            return None

        if record.is_expired:
            logger.info(f"Idempotency key {caller_key}:{key} expired, allowing reuse")
            record.delete()
            return None

        return record

    @staticmethod
    def record(tenant, caller_key: str, key: str, operation_type: str, entity_id, result_data=None):
        """
        Write the ledger row. Must be called inside the transaction that
        created ``entity_id``; an IntegrityError here means another request
        with the same key won the race and the caller should roll back.
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("IdempotencyService.record must run inside a transaction")

        return IdempotencyRecord.all_objects.create(
            tenant=tenant,
            caller_key=caller_key,
            key=key,
            operation_type=operation_type,
            entity_id=entity_id,
            result_data=serialize_payload(result_data or {}),
        )

    @staticmethod
    def sweep_expired(now=None) -> int:
        now = now or timezone.now()
        deleted, _ = IdempotencyRecord.all_objects.filter(expires_at__lte=now).delete()
        if deleted:
            logger.info(f"Swept {deleted} expired idempotency records")
        return deleted
