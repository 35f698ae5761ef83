import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from tenant.managers import TenantManager


class Reseller(models.Model):
    """A partner who sells subscriptions and earns a cut of each invoice."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("1"))],
        help_text=_("Fraction of each invoice owed to the reseller (0.2 = 20%)"),
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class District(models.Model):
    """A billing unit holding the platform subscription for a group of restaurants."""

    class SubscriptionStatus(models.TextChoices):
        INACTIVE = "INACTIVE", _("Inactive")
        TRIAL = "TRIAL", _("Trial")
        ACTIVE = "ACTIVE", _("Active")
        PAST_DUE = "PAST_DUE", _("Past Due")
        CANCELLED = "CANCELLED", _("Cancelled")

    class PlanType(models.TextChoices):
        BASIC = "BASIC", _("Basic")
        PRO = "PRO", _("Pro")
        ENTERPRISE = "ENTERPRISE", _("Enterprise")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    reseller = models.ForeignKey(
        Reseller,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='districts',
    )
    subscription_status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.INACTIVE,
    )
    plan_type = models.CharField(
        max_length=20, choices=PlanType.choices, default=PlanType.BASIC
    )
    current_period_end = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class RevenueShare(models.Model):
    """
    A reseller's cut of one settled invoice.

    Unique on (district, invoice_id): a redelivered webhook can never create
    a second row for the same invoice.
    """

    class PayoutStatus(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        PAID = "PAID", _("Paid")
        FAILED = "FAILED", _("Failed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    district = models.ForeignKey(District, on_delete=models.CASCADE, related_name='revenue_shares')
    reseller = models.ForeignKey(Reseller, on_delete=models.PROTECT, related_name='revenue_shares')
    invoice_id = models.CharField(max_length=255)

    # Integer minor units (paise)
    amount_cents = models.BigIntegerField()
    commission_cents = models.BigIntegerField()
    commission_rate = models.DecimalField(max_digits=5, decimal_places=4)

    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)
    payout_status = models.CharField(
        max_length=20, choices=PayoutStatus.choices, default=PayoutStatus.PENDING
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['district', 'invoice_id'],
                name='unique_revenue_share_per_invoice'
            ),
        ]
        indexes = [
            models.Index(fields=['reseller', 'payout_status']),
        ]

    def __str__(self):
        return f"{self.invoice_id}: {self.commission_cents}"


class AuditLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    district = models.ForeignKey(
        District, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs'
    )
    action = models.CharField(max_length=64)
    entity_type = models.CharField(max_length=64)
    entity_id = models.CharField(max_length=255)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id']),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.entity_id}"


def default_partner_rate():
    return settings.PARTNER_DEFAULT_COMMISSION_RATE


class Partner(models.Model):
    """A restaurant-level partner (aggregator, referral) paid a percentage of served orders."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='partners'
    )
    name = models.CharField(max_length=255)
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=default_partner_rate,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
        help_text=_("Percentage of the order total"),
    )
    is_active = models.BooleanField(default=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Commission(models.Model):
    class CommissionStatus(models.TextChoices):
        CALCULATED = "CALCULATED", _("Calculated")
        PAID = "PAID", _("Paid")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='commissions'
    )
    order = models.ForeignKey('orders.Order', on_delete=models.CASCADE, related_name='commissions')
    partner = models.ForeignKey(Partner, on_delete=models.PROTECT, related_name='commissions')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    rate = models.DecimalField(max_digits=5, decimal_places=2)
    status = models.CharField(
        max_length=20, choices=CommissionStatus.choices, default=CommissionStatus.CALCULATED
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['order', 'partner'],
                name='unique_commission_per_order_partner'
            ),
        ]

    def __str__(self):
        return f"{self.partner} on {self.order_id}: {self.amount}"
