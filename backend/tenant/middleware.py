import logging

import jwt
from jwt.exceptions import InvalidTokenError
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import JsonResponse

from .models import Tenant
from .managers import set_current_tenant

logger = logging.getLogger(__name__)


class TenantNotFoundError(Exception):
    """Raised when tenant cannot be resolved from request."""
    pass


class TenantMiddleware:
    """
    Resolves tenant from request and attaches to request.tenant.

    Resolution precedence (highest to lowest):
    1. JWT access token with a tenant_id claim (cookie or Authorization header)
    2. X-Tenant header carrying the tenant slug
    3. Fail with 400

    Paths listed in settings.TENANT_EXEMPT_PATH_PREFIXES (gateway webhooks, QR
    ordering, health checks) run without tenant context; their services resolve
    ownership from the payload instead.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        exempt_prefixes = getattr(settings, 'TENANT_EXEMPT_PATH_PREFIXES', ())
        if request.path.startswith(tuple(exempt_prefixes)):
            request.tenant = None
            set_current_tenant(None)
            return self.get_response(request)

        try:
            tenant = self.get_tenant_from_request(request)
            request.tenant = tenant

            # CRITICAL: Set thread-local context for TenantManager
            set_current_tenant(tenant)

            if not tenant.is_active:
                return JsonResponse({
                    'error': 'Tenant account is inactive',
                    'code': 'TENANT_INACTIVE'
                }, status=403)

            return self.get_response(request)

        except TenantNotFoundError as e:
            return JsonResponse({
                'error': str(e),
                'code': 'TENANT_NOT_FOUND'
            }, status=400)

        finally:
            # Always clean up so context never leaks into the next request
            set_current_tenant(None)

    def get_tenant_from_request(self, request):
        tenant = self.get_tenant_from_jwt(request)
        if tenant:
            return tenant

        tenant_header = request.META.get('HTTP_X_TENANT')
        if tenant_header:
            try:
                return Tenant.objects.get(slug=tenant_header)
            except Tenant.DoesNotExist:
                logger.warning(f"X-Tenant header named unknown tenant '{tenant_header}'")
                raise TenantNotFoundError(
                    f"Tenant '{tenant_header}' not found. Check X-Tenant header value."
                )

        raise TenantNotFoundError("Could not resolve tenant for this request.")

    def get_tenant_from_jwt(self, request):
        """
        Extract tenant from JWT claims.

        This is a lightweight decode for tenant lookup only. Signature
        verification happens later in DRF authentication, and the permission
        layer checks that the authenticated user belongs to this tenant.
        """
        access_token = request.COOKIES.get(settings.SIMPLE_JWT.get("AUTH_COOKIE"))
        if not access_token:
            header = request.META.get('HTTP_AUTHORIZATION', '')
            if header.startswith('Bearer '):
                access_token = header[len('Bearer '):].strip()

        if not access_token:
            return None

        try:
            payload = jwt.decode(
                access_token,
                options={'verify_signature': False, 'verify_exp': False}
            )
        except InvalidTokenError:
            return None

        tenant_id = payload.get('tenant_id')
        if not tenant_id:
            raise TenantNotFoundError(
                "JWT missing tenant_id claim. Token format is invalid."
            )

        try:
            return Tenant.objects.get(id=tenant_id)
        except (Tenant.DoesNotExist, ValueError, DjangoValidationError):
            raise TenantNotFoundError(
                f"JWT tenant_id '{tenant_id}' not found. Token may be stale."
            )
