"""
Daily settlement aggregation.

A Settlement row is rebuilt from scratch for its (tenant, date) every time
it is aggregated. Nothing is incremented, so running the aggregation twice
for the same day cannot count a payment twice.
"""
import logging
from datetime import datetime, time, timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from core_backend.alerting import AlertType, trigger_financial_alert

from ..models import Payment, Refund, Settlement, Tip
from .payment_service import parse_amount

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

METHOD_COLUMN = {
    Payment.PaymentMethod.CASH: 'cash',
    Payment.PaymentMethod.UPI: 'upi',
    Payment.PaymentMethod.CARD: 'card',
    Payment.PaymentMethod.EMI: 'card',
    Payment.PaymentMethod.CREDIT: 'card',
    Payment.PaymentMethod.WALLET: 'wallet',
    Payment.PaymentMethod.QR: 'qr',
    Payment.PaymentMethod.NETBANKING: 'netbanking',
}

METHOD_COLUMNS = sorted(set(METHOD_COLUMN.values()))


def day_bounds(day):
    """[start, end) of a calendar day in the active timezone."""
    start = timezone.make_aware(datetime.combine(day, time.min))
    return start, start + timedelta(days=1)


class SettlementService:

    @staticmethod
    def _refresh_gateway_figures(settlement):
        expected = settlement.expected_gateway_amount
        if not settlement.gateway_reported:
            settlement.gateway_amount = expected
        settlement.variance = settlement.gateway_amount - expected

    @staticmethod
    @transaction.atomic
    def aggregate_day(tenant, day) -> Settlement:
        """Rebuild the settlement for ``tenant`` on ``day`` from SUCCEEDED payments."""
        from billing.models import Bill

        start, end = day_bounds(day)
        settlement, created = Settlement.all_objects.select_for_update().get_or_create(
            tenant=tenant, date=day
        )

        payments = Payment.all_objects.filter(
            tenant=tenant,
            status=Payment.PaymentStatus.SUCCEEDED,
            succeeded_at__gte=start,
            succeeded_at__lt=end,
        )

        for column in METHOD_COLUMNS:
            setattr(settlement, column, ZERO)
        total_sales = ZERO
        transaction_count = 0
        for row in payments.values('method').annotate(total=Sum('amount'), count=Count('id')):
            column = METHOD_COLUMN[row['method']]
            setattr(settlement, column, getattr(settlement, column) + row['total'])
            total_sales += row['total']
            transaction_count += row['count']

        settlement.total_sales = total_sales
        settlement.transaction_count = transaction_count
        settlement.refunds = Refund.all_objects.filter(
            tenant=tenant,
            status=Refund.RefundStatus.SUCCEEDED,
            succeeded_at__gte=start,
            succeeded_at__lt=end,
        ).aggregate(total=Sum('amount'))['total'] or ZERO
        settlement.tips = Tip.all_objects.filter(
            tenant=tenant, created_at__gte=start, created_at__lt=end,
        ).aggregate(total=Sum('amount'))['total'] or ZERO
        settlement.discounts = Bill.all_objects.filter(
            tenant=tenant,
            status=Bill.BillStatus.CLOSED,
            closed_at__gte=start,
            closed_at__lt=end,
        ).aggregate(total=Sum('discount'))['total'] or ZERO

        SettlementService._refresh_gateway_figures(settlement)
        settlement.processed_at = timezone.now()
        settlement.save()

        # Link exactly the day's payments to this row
        Payment.all_objects.filter(settlement=settlement).exclude(
            id__in=payments.values('id')
        ).update(settlement=None)
        payments.update(settlement=settlement)

        logger.info(
            f"{'Created' if created else 'Rebuilt'} settlement {day} for tenant {tenant.id}: "
            f"{transaction_count} payments, sales {total_sales}"
        )
        return settlement

    @staticmethod
    @transaction.atomic
    def record_gateway_report(tenant, day, gateway_amount, gateway_fees=ZERO, notes='') -> Settlement:
        """Store the gateway's own figure for the day and recompute the variance."""
        settlement = SettlementService.aggregate_day(tenant, day)
        currency = tenant.currency

        settlement.gateway_amount = parse_amount(gateway_amount, currency, field='gateway_amount')
        settlement.gateway_fees = parse_amount(gateway_fees, currency, field='gateway_fees')
        settlement.gateway_reported = True
        settlement.variance_notes = notes or ''
        SettlementService._refresh_gateway_figures(settlement)

        if abs(settlement.variance) <= settings.BILLING_EPSILON:
            settlement.status = Settlement.SettlementStatus.RECONCILED
            settlement.reconciled_at = timezone.now()
        else:
            settlement.status = Settlement.SettlementStatus.PENDING
            settlement.reconciled_at = None
            trigger_financial_alert(
                AlertType.TRANSFER_FAILURE,
                f"Settlement variance {settlement.variance} on {day}",
                {'tenant_id': str(tenant.id), 'date': str(day), 'variance': str(settlement.variance)},
            )
        settlement.save()
        return settlement

    @staticmethod
    def _settlement_for(tenant, moment):
        if moment is None:
            return None
        return (
            Settlement.all_objects.select_for_update()
            .filter(tenant=tenant, date=timezone.localdate(moment))
            .first()
        )

    @staticmethod
    def _folded_settlement(tenant, moment, touched):
        """
        The settlement that counted a row stamped at ``moment``, or None.

        A row recorded after the day's last aggregation was never folded in,
        so there is nothing to take back out.
        """
        settlement = SettlementService._settlement_for(tenant, moment)
        if settlement is None:
            return None
        settlement = touched.setdefault(settlement.id, settlement)
        if settlement.processed_at is None or moment > settlement.processed_at:
            return None
        return settlement

    @staticmethod
    @transaction.atomic
    def detach_payments(payments, touched=None) -> int:
        """
        Take payments that are about to be deleted out of their settlements.

        Each linked settlement is decremented by the payment, and any
        succeeded refund of it is taken out of the settlement that counted
        it. The payment's link is then cleared. Returns the number of
        payments detached.
        """
        own_touched = touched is None
        touched = {} if own_touched else touched
        detached = 0
        for payment in payments:
            refunds = Refund.all_objects.filter(payment=payment, status=Refund.RefundStatus.SUCCEEDED)
            for refund in refunds:
                settlement = SettlementService._folded_settlement(payment.tenant, refund.succeeded_at, touched)
                if settlement is not None:
                    settlement.refunds -= refund.amount

            if payment.settlement_id is None:
                continue
            settlement = touched.get(payment.settlement_id)
            if settlement is None:
                settlement = Settlement.all_objects.select_for_update().get(id=payment.settlement_id)
                touched[settlement.id] = settlement

            column = METHOD_COLUMN[payment.method]
            setattr(settlement, column, getattr(settlement, column) - payment.amount)
            settlement.total_sales -= payment.amount
            settlement.transaction_count = max(settlement.transaction_count - 1, 0)

            payment.settlement = None
            payment.save(update_fields=['settlement', 'updated_at'])
            detached += 1

        if own_touched:
            SettlementService._save_touched(touched)
        return detached

    @staticmethod
    def _save_touched(touched):
        for settlement in touched.values():
            SettlementService._refresh_gateway_figures(settlement)
            settlement.save()

    @staticmethod
    @transaction.atomic
    def detach_bill(bill) -> int:
        """
        Detach everything a bill contributed to settlements: its payments,
        their refunds, its tips and, once closed, its discount. Only what an
        aggregation actually counted is taken back out.
        """
        touched = {}
        payments = list(Payment.all_objects.select_for_update().filter(bill=bill))
        detached = SettlementService.detach_payments(payments, touched=touched)

        for tip in Tip.all_objects.filter(bill=bill):
            settlement = SettlementService._folded_settlement(bill.tenant, tip.created_at, touched)
            if settlement is not None:
                settlement.tips -= tip.amount

        if bill.closed_at is not None and bill.discount:
            settlement = SettlementService._folded_settlement(bill.tenant, bill.closed_at, touched)
            if settlement is not None:
                settlement.discounts -= bill.discount

        SettlementService._save_touched(touched)
        if detached:
            logger.info(f"Detached {detached} payments of bill {bill.bill_number} from settlements")
        return detached
