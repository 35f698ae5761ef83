import uuid
from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from tenant.managers import TenantManager

MONEY = dict(max_digits=12, decimal_places=2, default=Decimal("0.00"))


class Payment(models.Model):
    """
    One payment attempt against a bill.

    Only SUCCEEDED payments count towards the bill's paid amount.
    ``succeeded_at`` is written once, on the transition to SUCCEEDED, and is
    the timestamp that places the payment in a daily settlement.
    """

    class PaymentMethod(models.TextChoices):
        CASH = "CASH", _("Cash")
        UPI = "UPI", _("UPI")
        CARD = "CARD", _("Card")
        QR = "QR", _("QR")
        WALLET = "WALLET", _("Wallet")
        NETBANKING = "NETBANKING", _("Net Banking")
        EMI = "EMI", _("EMI")
        CREDIT = "CREDIT", _("Credit")

    class PaymentStatus(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        SUCCEEDED = "SUCCEEDED", _("Succeeded")
        FAILED = "FAILED", _("Failed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='payments'
    )
    bill = models.ForeignKey(
        'billing.Bill', on_delete=models.CASCADE, related_name='payments'
    )
    method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    reference = models.CharField(
        max_length=255,
        blank=True,
        help_text=_("UTR / card slip / transaction id. Required for non-cash methods."),
    )
    notes = models.TextField(blank=True)
    gateway_payment_id = models.CharField(
        max_length=255, blank=True, null=True, unique=True
    )
    settlement = models.ForeignKey(
        'Settlement',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments',
    )

    succeeded_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=['tenant', 'status', 'succeeded_at']),
            models.Index(fields=['bill', 'status']),
        ]

    def __str__(self):
        return f"{self.method} {self.amount} ({self.status})"

    def mark_succeeded(self, at=None) -> bool:
        """
        PENDING -> SUCCEEDED. Returns False when already succeeded.

        ``succeeded_at`` is never overwritten once set.
        """
        if self.status == self.PaymentStatus.SUCCEEDED:
            return False
        if self.status == self.PaymentStatus.FAILED:
            raise ValueError(f"Payment {self.id} has failed and cannot succeed")

        self.status = self.PaymentStatus.SUCCEEDED
        if self.succeeded_at is None:
            self.succeeded_at = at or timezone.now()
        self.save(update_fields=['status', 'succeeded_at', 'updated_at'])
        return True

    def mark_failed(self, reason=''):
        if self.status == self.PaymentStatus.SUCCEEDED:
            raise ValueError(f"Payment {self.id} already succeeded and cannot fail")
        self.status = self.PaymentStatus.FAILED
        self.failed_at = timezone.now()
        self.failure_reason = reason[:255]
        self.save(update_fields=['status', 'failed_at', 'failure_reason', 'updated_at'])


class Refund(models.Model):
    class RefundStatus(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        SUCCEEDED = "SUCCEEDED", _("Succeeded")
        FAILED = "FAILED", _("Failed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='refunds'
    )
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name='refunds')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255, blank=True)
    status = models.CharField(
        max_length=20, choices=RefundStatus.choices, default=RefundStatus.PENDING
    )
    succeeded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Refund {self.amount} of {self.payment_id}"


class Tip(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='tips'
    )
    bill = models.ForeignKey('billing.Bill', on_delete=models.CASCADE, related_name='tips')
    payment = models.ForeignKey(
        Payment, on_delete=models.CASCADE, null=True, blank=True, related_name='tips'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()
    all_objects = models.Manager()

    def __str__(self):
        return f"Tip {self.amount} on {self.bill_id}"


class Settlement(models.Model):
    """
    One row per restaurant per calendar day.

    Rebuilt from scratch by SettlementService.aggregate_day, never
    incremented, so re-running the aggregation cannot double count.
    """

    class SettlementStatus(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        RECONCILED = "RECONCILED", _("Reconciled")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='settlements'
    )
    date = models.DateField()
    status = models.CharField(
        max_length=20, choices=SettlementStatus.choices, default=SettlementStatus.PENDING
    )

    total_sales = models.DecimalField(**MONEY)
    cash = models.DecimalField(**MONEY)
    upi = models.DecimalField(**MONEY)
    card = models.DecimalField(**MONEY)
    wallet = models.DecimalField(**MONEY)
    qr = models.DecimalField(**MONEY)
    netbanking = models.DecimalField(**MONEY)
    refunds = models.DecimalField(**MONEY)
    tips = models.DecimalField(**MONEY)
    discounts = models.DecimalField(**MONEY)
    gateway_amount = models.DecimalField(**MONEY)
    gateway_fees = models.DecimalField(**MONEY)
    gateway_reported = models.BooleanField(
        default=False,
        help_text=_("True once the gateway's own figure has been recorded"),
    )
    variance = models.DecimalField(**MONEY)
    variance_notes = models.TextField(blank=True)
    transaction_count = models.PositiveIntegerField(default=0)

    processed_at = models.DateTimeField(null=True, blank=True)
    reconciled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-date"]
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'date'],
                name='unique_settlement_per_tenant_day'
            )
        ]

    def __str__(self):
        return f"Settlement {self.date} ({self.tenant_id})"

    @property
    def expected_gateway_amount(self):
        return self.upi + self.card + self.wallet + self.qr + self.netbanking


class WebhookAuditLog(models.Model):
    """
    One row per gateway payment id.

    The row is upserted, not inserted once: a FAILED row is overwritten by a
    later successful redelivery, while a PROCESSED row short-circuits every
    later delivery of the same event.
    """

    class AuditStatus(models.TextChoices):
        RECEIVED = "RECEIVED", _("Received")
        PROCESSED = "PROCESSED", _("Processed")
        FAILED = "FAILED", _("Failed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    gateway = models.CharField(max_length=30, default='cashfree')
    gateway_payment_id = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=20, choices=AuditStatus.choices)
    reason = models.CharField(max_length=100, blank=True)
    payload = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True)
    attempts = models.PositiveIntegerField(default=0)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.gateway}:{self.gateway_payment_id} ({self.status})"
