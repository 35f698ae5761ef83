import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from tenant.managers import TenantManager

MONEY = dict(max_digits=12, decimal_places=2, default=Decimal("0.00"))


class BillSequence(models.Model):
    """Per-restaurant counter behind BILL-{year}-{000001} numbers; resets yearly."""

    tenant = models.OneToOneField(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='bill_sequence'
    )
    year = models.PositiveIntegerField()
    last_number = models.PositiveIntegerField(default=0)

    all_objects = models.Manager()

    def __str__(self):
        return f"{self.tenant_id} {self.year}: {self.last_number}"


class Bill(models.Model):
    """
    Running bill for a table.

    Stored totals are always the output of BillCalculator over the current
    items, discount, service charge and SUCCEEDED payments; every mutation
    recomputes them in the same transaction.
    """

    class BillStatus(models.TextChoices):
        OPEN = "OPEN", _("Open")
        CLOSED = "CLOSED", _("Closed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='bills'
    )
    table = models.ForeignKey(
        'menu.DiningTable',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='bills',
    )
    bill_number = models.CharField(max_length=32)
    status = models.CharField(
        max_length=10, choices=BillStatus.choices, default=BillStatus.OPEN
    )

    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("18.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text=_("Percentage applied to (subtotal - discount)"),
    )
    subtotal = models.DecimalField(**MONEY)
    cgst = models.DecimalField(**MONEY)
    sgst = models.DecimalField(**MONEY)
    tax = models.DecimalField(**MONEY)
    discount = models.DecimalField(**MONEY)
    service_charge = models.DecimalField(**MONEY)
    total = models.DecimalField(**MONEY)
    paid_amount = models.DecimalField(**MONEY)
    balance = models.DecimalField(**MONEY)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bills_created',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=['tenant', 'status']),
            models.Index(fields=['tenant', 'closed_at']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'bill_number'],
                name='unique_bill_number_per_tenant'
            ),
            models.UniqueConstraint(
                fields=['table'],
                condition=Q(status='OPEN'),
                name='one_open_bill_per_table'
            ),
        ]

    def __str__(self):
        return f"{self.bill_number} ({self.status})"

    @property
    def is_open(self):
        return self.status == self.BillStatus.OPEN

    @property
    def line_items(self):
        return BillItem.all_objects.filter(bill=self)

    @property
    def recorded_payments(self):
        from payments.models import Payment
        return Payment.all_objects.filter(bill=self)


class BillItem(models.Model):
    """A bill line. Its price is the bill's own snapshot, independent of the order's row."""

    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='bill_items'
    )
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="items")
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bill_items',
        help_text=_("Served order this line was copied from, if any"),
    )
    menu_item = models.ForeignKey(
        'menu.MenuItem',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bill_items',
    )
    name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['bill']),
            models.Index(fields=['order']),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.name}"

    @property
    def line_total(self):
        return self.price * self.quantity
