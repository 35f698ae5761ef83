"""
Root conftest.py for all backend tests.

This file makes fixtures available to all test files across all apps.
"""
import pytest
from django.core.cache import cache
from tenant.managers import set_current_tenant

from core_backend.celery import app as celery_app

# Tasks scheduled with .delay() run inline during tests
# The app reads settings under the CELERY namespace, so the prefixed keys apply
celery_app.conf.CELERY_TASK_ALWAYS_EAGER = True
celery_app.conf.CELERY_TASK_EAGER_PROPAGATES = False


# ============================================================================
# AUTO-USE FIXTURES (Run automatically for every test)
# ============================================================================

@pytest.fixture(autouse=True)
def reset_tenant_context():
    """
    Reset tenant context after each test.

    CRITICAL: This prevents tenant context from leaking between tests.
    If tenant context leaks, tests may pass when they should fail.
    """
    yield
    set_current_tenant(None)


@pytest.fixture(autouse=True)
def clear_cache_after_test():
    """
    Clear cache after each test. The rate limiter keeps its counters in the
    cache, so this also resets webhook and login throttling.
    """
    yield
    cache.clear()


# ============================================================================
# API CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def api_client():
    """
    Provide DRF API client for API tests.

    Usage:
        def test_health(api_client):
            response = api_client.get('/api/health/')
            assert response.status_code == 200
    """
    from rest_framework.test import APIClient
    return APIClient()


def _authenticate(client, user):
    from django.conf import settings
    from users.services import UserService

    tokens = UserService.generate_tokens_for_user(user)
    # Middleware and authentication both read the JWT from the cookie
    client.cookies[settings.SIMPLE_JWT.get('AUTH_COOKIE', 'access_token')] = tokens["access"]
    return client


@pytest.fixture
def authenticated_client_tenant_a(api_client, owner_tenant_a):
    """
    Provide an API client logged in as tenant A's owner.

    Usage:
        def test_protected_endpoint(authenticated_client_tenant_a):
            response = authenticated_client_tenant_a.get('/api/orders/')
            assert response.status_code == 200
    """
    return _authenticate(api_client, owner_tenant_a)


@pytest.fixture
def authenticated_client_tenant_b(owner_tenant_b):
    """Separate client so a test can hold both tenants at once."""
    from rest_framework.test import APIClient
    return _authenticate(APIClient(), owner_tenant_b)


@pytest.fixture
def cashier_client_tenant_a(cashier_tenant_a):
    from rest_framework.test import APIClient
    return _authenticate(APIClient(), cashier_tenant_a)


@pytest.fixture
def kitchen_client_tenant_a(kitchen_user_tenant_a):
    from rest_framework.test import APIClient
    return _authenticate(APIClient(), kitchen_user_tenant_a)


@pytest.fixture
def platform_admin_client(owner_tenant_a):
    """Owner flagged is_staff, for the platform-wide partner ledger."""
    from rest_framework.test import APIClient
    owner_tenant_a.is_staff = True
    owner_tenant_a.save(update_fields=['is_staff'])
    return _authenticate(APIClient(), owner_tenant_a)


# ============================================================================
# IMPORT ALL FIXTURES FROM core_backend/tests/fixtures.py
# ============================================================================
from core_backend.tests.fixtures import *
