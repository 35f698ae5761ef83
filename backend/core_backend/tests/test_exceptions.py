"""
Error taxonomy and transaction helper tests.
"""
from unittest.mock import MagicMock

import pytest
from django.db import DatabaseError, OperationalError
from rest_framework.exceptions import NotAuthenticated

from core_backend.db import is_serialization_failure, serializable_atomic
from core_backend.exceptions import (
    BalanceExceededError,
    DomainValidationError,
    InvalidTransitionError,
    NotFoundError,
    SignatureVerificationError,
    TransactionConflictError,
    WebhookProcessingError,
    domain_exception_handler,
)


def handle(exc):
    request = MagicMock(path='/api/test/')
    return domain_exception_handler(exc, {'request': request})


@pytest.mark.unit
class TestDomainExceptionHandler:

    @pytest.mark.parametrize("exc,status_code,code,retryable", [
        (DomainValidationError("bad quantity"), 400, 'VALIDATION_ERROR', False),
        (NotFoundError("Bill", "b-1"), 404, 'NOT_FOUND', False),
        (InvalidTransitionError('SERVED', 'PENDING'), 409, 'INVALID_TRANSITION', False),
        (BalanceExceededError('300.00', '295.00'), 409, 'BALANCE_EXCEEDED', False),
        (TransactionConflictError(), 409, 'TRANSACTION_CONFLICT', True),
        (SignatureVerificationError(), 401, 'INVALID_SIGNATURE', False),
        (WebhookProcessingError("boom"), 500, 'WEBHOOK_PROCESSING_FAILED', True),
    ])
    def test_mapping(self, exc, status_code, code, retryable):
        response = handle(exc)

        assert response.status_code == status_code
        assert response.data['code'] == code
        assert response.data['retryable'] is retryable
        assert response.data['error'] == str(exc)

    def test_details_included(self):
        response = handle(DomainValidationError("nope", details={'field': 'amount'}))

        assert response.data['details'] == {'field': 'amount'}

    def test_messages(self):
        assert str(NotFoundError("Bill", "b-1")) == "Bill b-1 not found"
        assert str(InvalidTransitionError('SERVED', 'PENDING')) == "Cannot transition order from SERVED to PENDING."

    def test_non_domain_errors_fall_through(self):
        response = handle(NotAuthenticated())

        assert response.status_code == 401
        assert 'code' not in response.data


class FakePgError(Exception):
    def __init__(self, pgcode):
        self.pgcode = pgcode


def db_error(pgcode, cls=DatabaseError, message='could not serialize access'):
    exc = cls(message)
    exc.__cause__ = FakePgError(pgcode)
    return exc


@pytest.mark.unit
class TestSerializationFailure:

    @pytest.mark.parametrize("pgcode", ['40001', '40P01'])
    def test_retryable_codes(self, pgcode):
        assert is_serialization_failure(db_error(pgcode))

    def test_other_codes(self):
        assert not is_serialization_failure(db_error('23505'))

    def test_sqlite_lock(self):
        assert is_serialization_failure(OperationalError('database is locked'))


@pytest.mark.django_db
class TestSerializableAtomic:

    def test_conflict_becomes_retryable(self):
        with pytest.raises(TransactionConflictError) as exc_info:
            with serializable_atomic():
                raise db_error('40001')

        assert exc_info.value.retryable is True

    def test_other_database_errors_propagate(self):
        with pytest.raises(DatabaseError):
            with serializable_atomic():
                raise db_error('23505')

    def test_commits_normally(self, tenant_a):
        from tenant.models import Tenant

        with serializable_atomic():
            Tenant.objects.filter(id=tenant_a.id).update(name='Spice Garden HSR')

        tenant_a.refresh_from_db()
        assert tenant_a.name == 'Spice Garden HSR'
