import calendar
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from core_backend.alerting import AlertType, trigger_financial_alert
from core_backend.exceptions import NotFoundError
from orders.models import Order
from payments.money import apply_rate_minor, quantize

from .models import AuditLog, Commission, District, Partner, RevenueShare

logger = logging.getLogger(__name__)


def add_months(moment, months=1):
    """Same day-of-month ``months`` later, clamped to the month's last day."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class AuditLogService:

    @staticmethod
    def record(action, entity_type, entity_id, district=None, metadata=None) -> AuditLog:
        return AuditLog.objects.create(
            district=district,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            metadata=metadata or {},
        )


class SubscriptionService:

    @staticmethod
    @transaction.atomic
    def activate(district_id, plan_type=None, metadata=None) -> District:
        """Mark a district's subscription ACTIVE for one more month from now."""
        try:
            district = District.objects.select_for_update().get(id=district_id)
        except (District.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("District", district_id)

        previous = district.subscription_status
        district.subscription_status = District.SubscriptionStatus.ACTIVE
        district.current_period_end = add_months(timezone.now(), 1)
        if plan_type in District.PlanType.values:
            district.plan_type = plan_type
        elif plan_type:
            logger.warning(f"Ignoring unknown plan type '{plan_type}' for district {district.id}")
        district.save(update_fields=['subscription_status', 'current_period_end', 'plan_type', 'updated_at'])

        AuditLogService.record(
            'SUBSCRIPTION_STATUS_CHANGED',
            'District',
            district.id,
            district=district,
            metadata={'from': previous, 'to': district.subscription_status, **(metadata or {})},
        )
        return district


@dataclass
class RevenueShareResult:
    created: bool
    reason: str = ""
    revenue_share: Optional[RevenueShare] = None


class RevenueShareService:
    """
    Derives a reseller's cut of a settled invoice, exactly once per
    (district, invoice_id). A repeat call is a "duplicate" outcome, not an error.
    """

    @staticmethod
    def derive(district, invoice_id, amount_cents, period_start=None, period_end=None) -> RevenueShareResult:
        reseller = district.reseller
        if reseller is None or not reseller.is_active:
            return RevenueShareResult(created=False, reason='no_reseller')

        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            return RevenueShareResult(created=False, reason='invalid_amount')

        existing = RevenueShare.objects.filter(district=district, invoice_id=invoice_id).first()
        if existing is not None:
            logger.info(f"Revenue share for invoice {invoice_id} already recorded; skipping")
            return RevenueShareResult(created=False, reason='duplicate', revenue_share=existing)

        rate = reseller.commission_rate
        commission_cents = apply_rate_minor(amount_cents, rate)
        if commission_cents <= 0 or commission_cents > amount_cents:
            trigger_financial_alert(
                AlertType.NEGATIVE_COMMISSION,
                f"Commission {commission_cents} out of range for invoice {invoice_id}",
                {'district_id': str(district.id), 'amount_cents': amount_cents, 'rate': str(rate)},
            )
            return RevenueShareResult(created=False, reason='invalid_commission')

        try:
            with transaction.atomic():
                share = RevenueShare.objects.create(
                    district=district,
                    reseller=reseller,
                    invoice_id=invoice_id,
                    amount_cents=amount_cents,
                    commission_cents=commission_cents,
                    commission_rate=rate,
                    period_start=period_start,
                    period_end=period_end,
                )
        except IntegrityError:
            # A concurrent delivery inserted the same invoice first
            trigger_financial_alert(
                AlertType.DUPLICATE_LEDGER,
                f"Concurrent revenue share insert for invoice {invoice_id}",
                {'district_id': str(district.id)},
            )
            existing = RevenueShare.objects.filter(district=district, invoice_id=invoice_id).first()
            return RevenueShareResult(created=False, reason='duplicate', revenue_share=existing)

        AuditLogService.record(
            'PAYOUT_CREATED',
            'RevenueShare',
            share.id,
            district=district,
            metadata={
                'invoice_id': invoice_id,
                'reseller_id': str(reseller.id),
                'amount_cents': amount_cents,
                'commission_cents': commission_cents,
            },
        )
        logger.info(
            f"Revenue share {share.id}: {commission_cents} of {amount_cents} to reseller {reseller.id}"
        )
        return RevenueShareResult(created=True, revenue_share=share)

    @staticmethod
    @transaction.atomic
    def mark_paid(revenue_share_id) -> RevenueShare:
        try:
            share = RevenueShare.objects.select_for_update().get(id=revenue_share_id)
        except (RevenueShare.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("Revenue share", revenue_share_id)
        if share.payout_status != RevenueShare.PayoutStatus.PAID:
            share.payout_status = RevenueShare.PayoutStatus.PAID
            share.paid_at = timezone.now()
            share.save(update_fields=['payout_status', 'paid_at'])
        return share

    @staticmethod
    def reseller_summary(reseller) -> dict:
        """Earned, pending and paid totals in minor units."""
        rows = (
            RevenueShare.objects.filter(reseller=reseller)
            .values('payout_status')
            .annotate(total=Sum('commission_cents'))
        )
        by_status = {row['payout_status']: row['total'] or 0 for row in rows}
        return {
            'reseller_id': str(reseller.id),
            'total_earned_cents': sum(by_status.values()),
            'pending_cents': by_status.get(RevenueShare.PayoutStatus.PENDING, 0),
            'paid_cents': by_status.get(RevenueShare.PayoutStatus.PAID, 0),
            'failed_cents': by_status.get(RevenueShare.PayoutStatus.FAILED, 0),
        }


class CommissionService:

    @staticmethod
    def calculate(total, rate_percent) -> Decimal:
        """``total * rate_percent / 100`` rounded to 2 places."""
        return quantize("INR", Decimal(str(total)) * Decimal(str(rate_percent)) / Decimal("100"))

    @staticmethod
    @transaction.atomic
    def process_order_commission(order_id) -> list:
        """
        One Commission per active partner of the order's restaurant.

        Re-running skips partners that already have a row for this order.
        """
        try:
            order = Order.all_objects.select_for_update().get(id=order_id)
        except (Order.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("Order", order_id)

        if order.status not in (Order.OrderStatus.SERVED, Order.OrderStatus.PAID):
            logger.info(f"Order {order.id} is {order.status}; no commission")
            return []

        already = set(
            Commission.all_objects.filter(order=order).values_list('partner_id', flat=True)
        )
        created = []
        for partner in Partner.all_objects.filter(tenant=order.tenant, is_active=True):
            if partner.id in already:
                continue
            amount = CommissionService.calculate(order.total, partner.commission_rate)
            if amount < 0:
                trigger_financial_alert(
                    AlertType.NEGATIVE_COMMISSION,
                    f"Negative commission for order {order.id}",
                    {'partner_id': str(partner.id), 'amount': str(amount)},
                )
                continue
            created.append(Commission.all_objects.create(
                tenant=order.tenant,
                order=order,
                partner=partner,
                amount=amount,
                rate=partner.commission_rate,
            ))

        if created:
            logger.info(f"Recorded {len(created)} commissions for order {order.id}")
        return created
