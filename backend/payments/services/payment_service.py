import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from core_backend.db import serializable_atomic
from core_backend.exceptions import (
    BalanceExceededError,
    BillStateError,
    ConflictError,
    DomainValidationError,
    NotFoundError,
)
from sync.models import IdempotencyRecord
from sync.services import IdempotencyService, is_idempotency_conflict

from ..models import Payment, Refund, Tip
from ..money import percentage_of, quantize

logger = logging.getLogger(__name__)

# Methods the cashier asserts in person; everything else waits for confirmation
SELF_ASSERTED_METHODS = {Payment.PaymentMethod.CASH}


@dataclass
class PaymentCreationResult:
    payment: Payment
    created: bool


def parse_amount(value, currency="INR", field='amount') -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise DomainValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise DomainValidationError(f"{field} must be a finite number")
    return quantize(currency, amount)


class PaymentService:
    """
    Records payments against bills.

    The amount check and the insert run under the bill's row lock, so two
    cashiers recording against the same bill cannot together exceed it.
    """

    @staticmethod
    def get_payment(payment_id, tenant=None, for_update=False) -> Payment:
        qs = Payment.all_objects.select_related('bill', 'tenant')
        if tenant is not None:
            qs = qs.filter(tenant=tenant)
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(id=payment_id)
        except (Payment.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("Payment", payment_id)

    @staticmethod
    def outstanding(bill) -> Decimal:
        """
        What is still payable on the bill: total minus SUCCEEDED and PENDING
        payments. Pending ones count because closing the bill will flip
        them to SUCCEEDED.
        """
        committed = (
            Payment.all_objects
            .filter(bill=bill)
            .exclude(status=Payment.PaymentStatus.FAILED)
            .aggregate(total=Sum('amount'))['total']
        ) or Decimal("0.00")
        return bill.total - committed

    @staticmethod
    def record_payment(bill_id, method, amount, reference=None, notes='', idempotency_key=None,
                       caller_key=None, tenant=None) -> PaymentCreationResult:
        if method not in Payment.PaymentMethod.values:
            raise DomainValidationError(f"Unknown payment method '{method}'")

        reference = (reference or '').strip()
        if method not in SELF_ASSERTED_METHODS and not reference:
            raise DomainValidationError(
                f"A reference is required for {method} payments",
                details={'method': method},
            )

        if idempotency_key is not None:
            idempotency_key = str(idempotency_key).strip()
            if not idempotency_key or len(idempotency_key) > 128:
                raise DomainValidationError("Idempotency key must be 1-128 characters")
        caller_key = caller_key or 'system'

        try:
            with serializable_atomic():
                return PaymentService._record_in_transaction(
                    bill_id, method, amount, reference, notes, idempotency_key, caller_key, tenant,
                )
        except IntegrityError as e:
            if idempotency_key and is_idempotency_conflict(e):
                logger.info(
                    f"Race on payment idempotency key {caller_key}:{idempotency_key}. "
                    f"Returning payment from winner."
                )
                from billing.services import BillService

                bill = BillService.get_bill(bill_id, tenant=tenant)
                record = IdempotencyService.lookup(bill.tenant, caller_key, idempotency_key)
                if record is not None:
                    return PaymentCreationResult(
                        payment=Payment.all_objects.get(id=record.entity_id), created=False
                    )
            raise

    @staticmethod
    def _record_in_transaction(bill_id, method, amount, reference, notes, idempotency_key,
                               caller_key, tenant) -> PaymentCreationResult:
        from billing.services import BillService

        bill = BillService.get_bill(bill_id, tenant=tenant, for_update=True)

        if idempotency_key:
            record = IdempotencyService.lookup(bill.tenant, caller_key, idempotency_key)
            if record is not None:
                payment = Payment.all_objects.get(id=record.entity_id)
                logger.info(f"Replayed payment key {caller_key}:{idempotency_key} -> payment {payment.id}")
                return PaymentCreationResult(payment=payment, created=False)

        if not bill.is_open:
            raise BillStateError(f"Bill {bill.bill_number} is closed")

        amount = parse_amount(amount, bill.tenant.currency)
        if amount <= 0:
            raise DomainValidationError("Payment amount must be greater than zero")

        outstanding = PaymentService.outstanding(bill)
        if amount > outstanding + settings.BILLING_EPSILON:
            raise BalanceExceededError(amount, outstanding)

        payment = Payment(
            tenant=bill.tenant,
            bill=bill,
            method=method,
            amount=amount,
            reference=reference,
            notes=notes or '',
        )
        if method in SELF_ASSERTED_METHODS:
            payment.status = Payment.PaymentStatus.SUCCEEDED
            payment.succeeded_at = timezone.now()
        payment.save()

        if idempotency_key:
            IdempotencyService.record(
                tenant=bill.tenant,
                caller_key=caller_key,
                key=idempotency_key,
                operation_type=IdempotencyRecord.OperationType.CREATE_PAYMENT,
                entity_id=payment.id,
                result_data={'payment_id': payment.id, 'bill_id': bill.id, 'amount': amount},
            )

        BillService.recalculate(bill)
        logger.info(
            f"Recorded {method} payment {payment.id} of {amount} on bill {bill.bill_number} "
            f"({payment.status})"
        )
        return PaymentCreationResult(payment=payment, created=True)

    @staticmethod
    @transaction.atomic
    def confirm_payment(payment_id, tenant=None, gateway_payment_id=None, at=None) -> Payment:
        """PENDING -> SUCCEEDED. Confirming an already succeeded payment is a no-op."""
        from billing.services import BillService

        payment = PaymentService.get_payment(payment_id, tenant=tenant, for_update=True)
        bill = BillService.get_bill(payment.bill_id, for_update=True)

        if payment.status == Payment.PaymentStatus.FAILED:
            raise ConflictError(f"Payment {payment.id} has failed and cannot be confirmed")

        if gateway_payment_id and not payment.gateway_payment_id:
            payment.gateway_payment_id = gateway_payment_id
            payment.save(update_fields=['gateway_payment_id', 'updated_at'])

        if payment.mark_succeeded(at=at):
            BillService.recalculate(bill)
            logger.info(f"Confirmed payment {payment.id} on bill {bill.bill_number}")
        return payment

    @staticmethod
    @transaction.atomic
    def fail_payment(payment_id, reason='', tenant=None) -> Payment:
        payment = PaymentService.get_payment(payment_id, tenant=tenant, for_update=True)
        if payment.status == Payment.PaymentStatus.FAILED:
            return payment
        if payment.status == Payment.PaymentStatus.SUCCEEDED:
            raise ConflictError(f"Payment {payment.id} already succeeded and cannot fail")

        payment.mark_failed(reason)
        logger.warning(f"Payment {payment.id} failed: {reason}")
        return payment

    @staticmethod
    @transaction.atomic
    def record_refund(payment_id, amount, reason='', tenant=None) -> Refund:
        """Refund part or all of a SUCCEEDED payment."""
        payment = PaymentService.get_payment(payment_id, tenant=tenant, for_update=True)
        if payment.status != Payment.PaymentStatus.SUCCEEDED:
            raise ConflictError(f"Only succeeded payments can be refunded, payment {payment.id} is {payment.status}")

        amount = parse_amount(amount, payment.tenant.currency)
        if amount <= 0:
            raise DomainValidationError("Refund amount must be greater than zero")

        refunded = (
            Refund.all_objects.filter(payment=payment)
            .exclude(status=Refund.RefundStatus.FAILED)
            .aggregate(total=Sum('amount'))['total']
        ) or Decimal("0.00")
        refundable = payment.amount - refunded
        if amount > refundable:
            raise BalanceExceededError(amount, refundable, message=(
                f"Refund amount {amount} exceeds refundable amount {refundable}"
            ))

        refund = Refund.all_objects.create(
            tenant=payment.tenant,
            payment=payment,
            amount=amount,
            reason=reason or '',
            status=Refund.RefundStatus.SUCCEEDED,
            succeeded_at=timezone.now(),
        )
        logger.info(f"Refunded {amount} of payment {payment.id}")
        return refund

    @staticmethod
    @transaction.atomic
    def record_tip(bill_id, amount=None, percentage=None, payment_id=None, tenant=None) -> Tip:
        """A tip is either a flat amount or a percentage of the bill total."""
        from billing.services import BillService

        bill = BillService.get_bill(bill_id, tenant=tenant, for_update=True)
        currency = bill.tenant.currency

        if (amount is None) == (percentage is None):
            raise DomainValidationError("Provide either a tip amount or a tip percentage")
        if percentage is not None:
            percentage = parse_amount(percentage, currency, field='percentage')
            if percentage <= 0 or percentage > 100:
                raise DomainValidationError("Tip percentage must be between 0 and 100")
            amount = percentage_of(currency, bill.total, percentage)
        else:
            amount = parse_amount(amount, currency)
        if amount <= 0:
            raise DomainValidationError("Tip amount must be greater than zero")

        payment = None
        if payment_id:
            payment = PaymentService.get_payment(payment_id, tenant=bill.tenant)
            if payment.bill_id != bill.id:
                raise DomainValidationError("Tip payment belongs to a different bill")

        tip = Tip.all_objects.create(
            tenant=bill.tenant, bill=bill, payment=payment, amount=amount, percentage=percentage,
        )
        logger.info(f"Recorded tip {amount} on bill {bill.bill_number}")
        return tip
