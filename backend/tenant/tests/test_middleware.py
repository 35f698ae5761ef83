"""
Tenant resolution and isolation tests.
"""
import jwt
import pytest
from django.http import HttpResponse
from django.test import RequestFactory

from billing.models import Bill
from tenant.managers import get_current_tenant, set_current_tenant, tenant_context
from tenant.middleware import TenantMiddleware
from users.services import UserService

pytestmark = [pytest.mark.django_db, pytest.mark.tenant_isolation]


@pytest.fixture
def seen():
    return {}


@pytest.fixture
def middleware(seen):
    def get_response(request):
        seen['tenant'] = get_current_tenant()
        return HttpResponse('ok')
    return TenantMiddleware(get_response)


@pytest.fixture
def rf():
    return RequestFactory()


class TestTenantMiddleware:

    def test_resolves_from_jwt_cookie(self, middleware, rf, seen, owner_tenant_a, tenant_a):
        request = rf.get('/api/bills/')
        request.COOKIES['access_token'] = UserService.generate_tokens_for_user(owner_tenant_a)['access']

        response = middleware(request)

        assert response.status_code == 200
        assert request.tenant == tenant_a
        assert seen['tenant'] == tenant_a

    def test_resolves_from_bearer_header(self, middleware, rf, owner_tenant_b, tenant_b):
        token = UserService.generate_tokens_for_user(owner_tenant_b)['access']
        request = rf.get('/api/bills/', HTTP_AUTHORIZATION=f'Bearer {token}')

        middleware(request)

        assert request.tenant == tenant_b

    def test_jwt_wins_over_header(self, middleware, rf, owner_tenant_a, tenant_a, tenant_b):
        request = rf.get('/api/bills/', HTTP_X_TENANT=tenant_b.slug)
        request.COOKIES['access_token'] = UserService.generate_tokens_for_user(owner_tenant_a)['access']

        middleware(request)

        assert request.tenant == tenant_a

    def test_resolves_from_slug_header(self, middleware, rf, tenant_a):
        request = rf.get('/api/users/login/', HTTP_X_TENANT=tenant_a.slug)

        middleware(request)

        assert request.tenant == tenant_a

    def test_unknown_slug(self, middleware, rf, tenant_a):
        response = middleware(rf.get('/api/bills/', HTTP_X_TENANT='nowhere'))

        assert response.status_code == 400

    def test_no_tenant_information(self, middleware, rf):
        response = middleware(rf.get('/api/bills/'))

        assert response.status_code == 400

    @pytest.mark.parametrize("tenant_id", [None, 'not-a-uuid', '00000000-0000-0000-0000-000000000000'])
    def test_bad_tenant_claim(self, middleware, rf, tenant_id):
        claims = {} if tenant_id is None else {'tenant_id': tenant_id}
        request = rf.get('/api/bills/')
        request.COOKIES['access_token'] = jwt.encode(claims, 'irrelevant', algorithm='HS256')

        response = middleware(request)

        assert response.status_code == 400

    def test_inactive_tenant(self, middleware, rf, inactive_tenant):
        response = middleware(rf.get('/api/bills/', HTTP_X_TENANT=inactive_tenant.slug))

        assert response.status_code == 403

    def test_exempt_paths_have_no_tenant(self, middleware, rf, seen):
        request = rf.post('/api/payments/webhooks/gateway/')

        response = middleware(request)

        assert response.status_code == 200
        assert request.tenant is None
        assert seen['tenant'] is None

    def test_context_cleared_after_request(self, middleware, rf, tenant_a):
        middleware(rf.get('/api/bills/', HTTP_X_TENANT=tenant_a.slug))

        assert get_current_tenant() is None


class TestTenantManager:

    def test_fails_closed_without_context(self, open_bill):
        set_current_tenant(None)

        assert Bill.objects.count() == 0
        assert Bill.all_objects.count() == 1

    def test_filters_to_current_tenant(self, open_bill, tenant_a, tenant_b):
        set_current_tenant(tenant_b)
        assert Bill.objects.count() == 0

        set_current_tenant(tenant_a)
        assert Bill.objects.get() == open_bill

    def test_tenant_context_restores_previous(self, open_bill, tenant_a, tenant_b):
        set_current_tenant(tenant_b)

        with tenant_context(tenant_a):
            assert Bill.objects.get() == open_bill

        assert get_current_tenant() == tenant_b

    def test_tenant_context_resets_on_error(self, tenant_a):
        with pytest.raises(RuntimeError):
            with tenant_context(tenant_a):
                raise RuntimeError('task failed')

        assert get_current_tenant() is None
