import uuid
from django.db import models


class Tenant(models.Model):
    """
    Root entity for multi-tenancy.
    Each restaurant is a tenant; every order, bill and payment belongs to exactly one.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(
        max_length=255,
        help_text="Display name for the restaurant (e.g., Spice Route)"
    )
    slug = models.SlugField(
        unique=True,
        help_text="URL-safe identifier, also accepted in the X-Tenant header"
    )
    currency = models.CharField(
        max_length=3,
        default='INR',
        help_text="ISO 4217 code used for bills, payments and settlements"
    )

    # Status
    is_active = models.BooleanField(
        default=True,
        help_text="Inactive tenants cannot access the system"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tenants'
        ordering = ['name']
        indexes = [
            models.Index(fields=['slug']),
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return self.name
