"""
Transaction helpers for money-moving code paths.

Order creation and bill closing run under SERIALIZABLE isolation on
PostgreSQL. A serialization failure there is surfaced as a retryable
TransactionConflictError rather than a generic 500.
"""
import logging
from contextlib import contextmanager

from django.db import DatabaseError, OperationalError, connection, transaction

from core_backend.exceptions import TransactionConflictError

logger = logging.getLogger(__name__)

# SQLSTATE codes for serialization_failure and deadlock_detected
RETRYABLE_PGCODES = {'40001', '40P01'}


def is_serialization_failure(exc):
    cause = getattr(exc, '__cause__', None)
    pgcode = getattr(cause, 'pgcode', None) or getattr(cause, 'sqlstate', None)
    if pgcode in RETRYABLE_PGCODES:
        return True
    # SQLite reports writer contention as "database is locked"
    return isinstance(exc, OperationalError) and 'database is locked' in str(exc)


@contextmanager
def serializable_atomic(using=None):
    """
    transaction.atomic() at SERIALIZABLE isolation.

    The isolation level can only be set as the first statement of a
    transaction, so when already inside an atomic block this behaves like a
    savepoint in the enclosing transaction.
    """
    conn = connection if using is None else transaction.get_connection(using)
    try:
        with transaction.atomic(using=using):
            if conn.vendor == 'postgresql' and len(conn.savepoint_ids) == 0:
                with conn.cursor() as cursor:
                    cursor.execute('SET TRANSACTION ISOLATION LEVEL SERIALIZABLE')
            yield
    except DatabaseError as exc:
        if is_serialization_failure(exc):
            logger.warning(f"Serializable transaction aborted: {exc}")
            raise TransactionConflictError() from exc
        raise
