import secrets
import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from tenant.managers import TenantManager


def generate_table_token():
    return secrets.token_urlsafe(16)


class MenuCategory(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='menu_categories'
    )
    name = models.CharField(max_length=120)
    position = models.PositiveIntegerField(default=0)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        verbose_name_plural = _("Menu categories")
        ordering = ['position', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'name'],
                name='unique_menu_category_per_tenant'
            )
        ]

    def __str__(self):
        return self.name


class MenuItem(models.Model):
    """
    A dish on a restaurant's menu.

    Orders read price and availability once, at creation time, and copy the
    price into OrderItem.price_at_sale. Nothing downstream reads this price.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='menu_items'
    )
    category = models.ForeignKey(
        MenuCategory,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='items'
    )
    name = models.CharField(max_length=200)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    is_available = models.BooleanField(
        default=True,
        help_text=_("Unavailable items cannot be ordered")
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['tenant', 'is_available']),
        ]

    def __str__(self):
        return f"{self.name} ({self.price})"


class DiningTable(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='tables'
    )
    number = models.CharField(max_length=20)
    qr_token = models.CharField(
        max_length=64,
        unique=True,
        default=generate_table_token,
        help_text=_("Public ordering token printed in the table's QR code")
    )
    is_active = models.BooleanField(default=True)

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['number']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'number'],
                name='unique_table_number_per_tenant'
            )
        ]

    def __str__(self):
        return f"Table {self.number}"
