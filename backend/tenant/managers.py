from contextlib import contextmanager
from threading import local

from django.contrib.auth.models import BaseUserManager
from django.db import models

# Thread-local storage for current tenant
_thread_locals = local()


def set_current_tenant(tenant):
    """
    Set the current tenant for this thread.

    Args:
        tenant: Tenant instance or None to clear

    This is called by TenantMiddleware and Celery tasks to establish
    tenant context for the current request/task.
    """
    _thread_locals.tenant = tenant


def get_current_tenant():
    """
    Get the current tenant for this thread.

    Returns:
        Tenant instance or None if no tenant context is set
    """
    return getattr(_thread_locals, 'tenant', None)


@contextmanager
def tenant_context(tenant):
    """
    Run a block with ``tenant`` as the current tenant, restoring whatever
    was set before. Used by Celery tasks and webhook handlers, which start
    without request context.
    """
    previous = get_current_tenant()
    set_current_tenant(tenant)
    try:
        yield tenant
    finally:
        set_current_tenant(previous)


class TenantManager(models.Manager):
    """
    Automatically filters querysets by current tenant.

    FAILS CLOSED: Returns empty queryset if no tenant context is set.

    Usage:
        class Bill(models.Model):
            tenant = models.ForeignKey('tenant.Tenant', on_delete=models.CASCADE)

            objects = TenantManager()  # Default manager (tenant-filtered)
            all_objects = models.Manager()  # Bypass filter for services/tasks

        # In view:
        bills = Bill.objects.all()  # Automatically filtered by request.tenant

        # In a Celery task or webhook (no request):
        bill = Bill.all_objects.get(id=bill_id)
    """

    def get_queryset(self):
        tenant = get_current_tenant()

        if tenant:
            return super().get_queryset().filter(tenant=tenant)

        # FAIL CLOSED
        return super().get_queryset().none()


class TenantAwareUserManager(BaseUserManager):
    """
    Manager for the User model: tenant filtering plus auth helpers.

    Unlike TenantManager this does NOT fail closed, because authentication
    loads users before tenant context exists.
    """

    def get_queryset(self):
        qs = super().get_queryset()
        tenant = get_current_tenant()
        if tenant:
            qs = qs.filter(tenant=tenant)
        return qs

    def create_user(self, email, password=None, tenant=None, **extra_fields):
        if not email:
            raise ValueError("The Email field must be set")
        if tenant is None:
            tenant = get_current_tenant()
        if tenant is None:
            raise ValueError("Users must belong to a tenant")
        email = self.normalize_email(email)
        user = self.model(email=email, tenant=tenant, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, tenant=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", "OWNER")
        return self.create_user(email, password, tenant=tenant, **extra_fields)

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})
