import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from tenant.managers import TenantManager


class Order(models.Model):
    class OrderStatus(models.TextChoices):
        PENDING = "PENDING", _("Pending")  # Placed, waiting for the kitchen
        ACCEPTED = "ACCEPTED", _("Accepted")
        PREPARING = "PREPARING", _("Preparing")
        SERVED = "SERVED", _("Served")  # Billable from here on
        PAID = "PAID", _("Paid")
        CANCELLED = "CANCELLED", _("Cancelled")

    class OrderSource(models.TextChoices):
        POS = "POS", _("Staff Terminal")
        QR = "QR", _("Table QR Code")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='orders'
    )
    table = models.ForeignKey(
        'menu.DiningTable',
        on_delete=models.PROTECT,
        related_name='orders',
    )
    status = models.CharField(
        max_length=10, choices=OrderStatus.choices, default=OrderStatus.PENDING
    )
    source = models.CharField(
        max_length=10, choices=OrderSource.choices, default=OrderSource.POS
    )
    total = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("Sum of frozen line prices at creation time"),
    )
    is_priority = models.BooleanField(default=False)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders_created',
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    served_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=['tenant', 'status']),
            models.Index(fields=['tenant', 'table', 'created_at']),
        ]

    def __str__(self):
        return f"Order {self.id} ({self.status})"

    @property
    def line_items(self):
        # Reverse accessors go through TenantManager and see nothing without tenant context
        return OrderItem.all_objects.filter(order=self)


class OrderItem(models.Model):
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='order_items'
    )
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    menu_item = models.ForeignKey(
        'menu.MenuItem',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_items",
    )
    name_at_sale = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(default=1)
    notes = models.TextField(
        blank=True, help_text=_("Customer notes, e.g., 'no onions'")
    )

    # Price snapshot. Written once at creation and never re-read from the menu.
    price_at_sale = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text=_("Price of the menu item at the time the order was placed."),
    )

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity} x {self.name_at_sale}"

    @property
    def line_total(self):
        return self.price_at_sale * self.quantity
