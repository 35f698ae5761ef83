"""
Partner commission tests for served orders.
"""
from decimal import Decimal
from unittest.mock import patch

import pytest

from core_backend.exceptions import NotFoundError
from orders.models import Order
from partners.models import Commission, Partner
from partners.services import CommissionService
from partners.tasks import compute_order_commission

pytestmark = pytest.mark.django_db


@pytest.fixture
def partners(tenant_a):
    return [
        Partner.all_objects.create(tenant=tenant_a, name='Swiggy Dine', commission_rate='10.00'),
        Partner.all_objects.create(tenant=tenant_a, name='Referral Desk', commission_rate='2.50'),
        Partner.all_objects.create(tenant=tenant_a, name='Retired', commission_rate='5.00', is_active=False),
    ]


class TestCalculate:

    @pytest.mark.parametrize("total,rate,expected", [
        ('250.00', '10', '25.00'),
        ('250.00', '2.5', '6.25'),
        ('99.99', '12.5', '12.50'),
        ('0', '10', '0.00'),
    ])
    def test_rounds_to_paise(self, total, rate, expected):
        assert CommissionService.calculate(total, rate) == Decimal(expected)


@pytest.mark.business_logic
class TestProcessOrderCommission:

    def test_one_row_per_active_partner(self, served_order, partners):
        created = CommissionService.process_order_commission(served_order.id)

        amounts = sorted(c.amount for c in created)
        assert amounts == [Decimal('6.25'), Decimal('25.00')]
        assert Commission.all_objects.filter(order=served_order).count() == 2

    def test_rerun_skips_credited_partners(self, served_order, partners):
        CommissionService.process_order_commission(served_order.id)

        assert CommissionService.process_order_commission(served_order.id) == []
        assert Commission.all_objects.count() == 2

    def test_unserved_order_earns_nothing(self, pending_order, partners):
        assert CommissionService.process_order_commission(pending_order.id) == []

    def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            CommissionService.process_order_commission('00000000-0000-0000-0000-000000000000')


class TestComputeOrderCommissionTask:

    def test_completed(self, served_order, partners):
        result = compute_order_commission.apply(args=[str(served_order.id)]).get()

        assert result == {'status': 'completed', 'order_id': str(served_order.id), 'created': 2}

    def test_domain_error_is_not_retried(self, db):
        result = compute_order_commission.apply(args=['00000000-0000-0000-0000-000000000000']).get()

        assert result['status'] == 'failed'

    @patch('partners.tasks.trigger_financial_alert')
    def test_alerts_after_final_retry(self, mock_alert, served_order):
        with patch(
            'partners.tasks.CommissionService.process_order_commission',
            side_effect=RuntimeError('deadlock'),
        ):
            outcome = compute_order_commission.apply(args=[str(served_order.id)])

        assert outcome.failed()
        mock_alert.assert_called_once()
        assert mock_alert.call_args[0][0] == 'SIDE_EFFECT_FAILED'


@pytest.mark.integration
class TestCommissionAPI:

    def test_manager_lists_commissions(self, authenticated_client_tenant_a, served_order, partners):
        CommissionService.process_order_commission(served_order.id)

        response = authenticated_client_tenant_a.get('/api/partners/commissions/')

        assert response.status_code == 200
        assert response.data['count'] == 2

    def test_cashier_denied(self, cashier_client_tenant_a):
        response = cashier_client_tenant_a.get('/api/partners/commissions/')

        assert response.status_code == 403

    @pytest.mark.tenant_isolation
    def test_scoped_to_tenant(self, authenticated_client_tenant_b, served_order, partners):
        CommissionService.process_order_commission(served_order.id)

        response = authenticated_client_tenant_b.get('/api/partners/commissions/')

        assert response.data['count'] == 0
