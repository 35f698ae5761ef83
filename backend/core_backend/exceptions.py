"""
Domain error taxonomy shared by orders, billing, payments and partners.

Validation errors are safe to retry after correcting the input. Conflict
errors are split into retryable (a serializable transaction lost a race)
and non-retryable (an invalid transition, an overpayment). Duplicates are
never raised; services return the prior result instead.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base exception for order/billing/payment errors."""

    code = "DOMAIN_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message=None, details=None):
        self.details = details or {}
        super().__init__(message or self.default_message())

    def default_message(self):
        return "Request could not be processed"


class DomainValidationError(DomainError):
    """Malformed input, unknown menu item, non-positive quantity or amount."""

    code = "VALIDATION_ERROR"

    def default_message(self):
        return "Invalid request"


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity, entity_id, message=None):
        self.entity = entity
        self.entity_id = entity_id
        if message is None:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)


class ConflictError(DomainError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT

    def default_message(self):
        return "Request conflicts with the current state"


class InvalidTransitionError(ConflictError):
    """Raised when an order is asked to move along an edge that does not exist."""

    code = "INVALID_TRANSITION"

    def __init__(self, current, requested, message=None):
        self.current = current
        self.requested = requested
        if message is None:
            message = f"Cannot transition order from {current} to {requested}."
        super().__init__(message)


class BalanceExceededError(ConflictError):
    code = "BALANCE_EXCEEDED"

    def __init__(self, amount, balance, message=None):
        self.amount = amount
        self.balance = balance
        if message is None:
            message = f"Payment amount {amount} exceeds outstanding balance {balance}"
        super().__init__(message)


class BillStateError(ConflictError):
    """Raised when a bill mutation is attempted against a CLOSED bill or unpaid close."""

    code = "BILL_STATE"


class TransactionConflictError(ConflictError):
    """
    A serializable transaction was aborted by the database.

    Callers retry with the same idempotency key.
    """

    code = "TRANSACTION_CONFLICT"
    retryable = True

    def default_message(self):
        return "Concurrent update detected, retry with the same idempotency key"


class IntegrityFailureError(DomainError):
    """Fatal: signature verification failure, missing correlation id."""

    code = "INTEGRITY_FAILURE"


class SignatureVerificationError(IntegrityFailureError):
    code = "INVALID_SIGNATURE"
    status_code = status.HTTP_401_UNAUTHORIZED

    def default_message(self):
        return "Invalid webhook signature"


class WebhookProcessingError(DomainError):
    """
    Applying a verified webhook failed and was rolled back. The audit row
    is FAILED, so the gateway's redelivery runs the effects again.
    """

    code = "WEBHOOK_PROCESSING_FAILED"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = True


def domain_exception_handler(exc, context):
    """
    DRF exception handler mapping DomainError subclasses to JSON responses.

    Anything that is not a DomainError falls through to DRF's default handler.
    """
    if isinstance(exc, DomainError):
        request = context.get('request')
        path = request.path if request is not None else None
        log = logger.warning if exc.status_code < 500 else logger.error
        log(f"{exc.code} on {path}: {exc}")

        payload = {
            'error': str(exc),
            'code': exc.code,
            'retryable': exc.retryable,
        }
        if exc.details:
            payload['details'] = exc.details
        return Response(payload, status=exc.status_code)

    return exception_handler(exc, context)
