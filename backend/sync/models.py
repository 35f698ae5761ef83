"""
Sync app models for retry-safe writes.

Models in this app are infrastructure-focused (not business domain).
"""
import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from tenant.managers import TenantManager


class IdempotencyRecord(models.Model):
    """
    Maps a (caller, client-supplied key) pair to the result it produced.

    When clients retry (flaky network, offline queue replay), the service
    finds this row and returns the original result instead of creating a
    second order, payment or bill line. Rows expire after ORDER_IDEMPOTENCY_TTL and are
    swept hourly; this is a bounded cache, not the system of record.
    """

    class OperationType(models.TextChoices):
        CREATE_ORDER = 'CREATE_ORDER', _('Create Order')
        CREATE_PAYMENT = 'CREATE_PAYMENT', _('Create Payment')
        ADD_BILL_ITEM = 'ADD_BILL_ITEM', _('Add Bill Item')
        REMOVE_BILL_ITEM = 'REMOVE_BILL_ITEM', _('Remove Bill Item')

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Multi-tenancy
    tenant = models.ForeignKey(
        'tenant.Tenant',
        on_delete=models.CASCADE,
        related_name='idempotency_records'
    )

    caller_key = models.CharField(
        max_length=128,
        help_text=_("Authenticated user id, or 'table:<token>' for QR ordering")
    )
    key = models.CharField(
        max_length=128,
        help_text=_("Client-generated idempotency key")
    )
    operation_type = models.CharField(max_length=30, choices=OperationType.choices)

    entity_id = models.UUIDField(
        help_text=_("Order, payment or bill touched by the first request")
    )
    result_data = models.JSONField(
        default=dict,
        blank=True,
        help_text=_("Response that was returned to the client")
    )

    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(
        help_text=_("When this idempotency record expires")
    )

    objects = TenantManager()
    all_objects = models.Manager()

    class Meta:
        verbose_name = _("Idempotency Record")
        verbose_name_plural = _("Idempotency Records")
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['expires_at']),  # For sweeping
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'caller_key', 'key'],
                name='unique_idempotency_key_per_caller'
            )
        ]

    def __str__(self):
        return f"{self.operation_type} - {self.caller_key}:{self.key}"

    @property
    def is_expired(self):
        return self.expires_at <= timezone.now()

    def save(self, *args, **kwargs):
        """Set expiration on creation"""
        if not self.expires_at:
            self.expires_at = self.created_at + timedelta(seconds=settings.ORDER_IDEMPOTENCY_TTL)
        super().save(*args, **kwargs)
