"""
Gateway webhook tests: signature verification, deduplication through the
audit row, subscription and revenue-share effects, and bill confirmation.
"""
import json
from decimal import Decimal
from unittest.mock import patch

import pytest

from billing.models import Bill
from core_backend.exceptions import (
    DomainValidationError,
    IntegrityFailureError,
    SignatureVerificationError,
    WebhookProcessingError,
)
from orders.models import Order
from partners.models import AuditLog, District, RevenueShare
from payments.models import Payment, WebhookAuditLog
from payments.services import PaymentService, WebhookService, compute_signature, verify_signature
from tenant.managers import get_current_tenant, set_current_tenant

SECRET = 'whsec_test_secret'
TIMESTAMP = '1760000000'

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def webhook_secret(settings):
    settings.PAYMENT_WEBHOOK_SECRET = SECRET


def make_event(cf_payment_id='cf_pay_1', order_id='order_1', amount='999.00', tags=None,
               event_type='PAYMENT_SUCCESS_WEBHOOK', payment_status='SUCCESS'):
    payment = {'payment_status': payment_status, 'payment_amount': amount}
    if cf_payment_id is not None:
        payment['cf_payment_id'] = cf_payment_id
    return {
        'type': event_type,
        'data': {
            'order': {'order_id': order_id, 'order_amount': amount, 'order_tags': tags or {}},
            'payment': payment,
        },
    }


def signed(event, secret=SECRET):
    raw_body = json.dumps(event).encode()
    return raw_body, compute_signature(secret, TIMESTAMP, raw_body)


def deliver(event):
    raw_body, signature = signed(event)
    return WebhookService.ingest(raw_body, signature, TIMESTAMP)


class TestSignature:

    def test_roundtrip(self):
        raw_body, signature = signed({'type': 'X'})

        assert verify_signature(raw_body, signature, TIMESTAMP, secret=SECRET)

    def test_timestamp_is_signed(self):
        raw_body, signature = signed({'type': 'X'})

        assert not verify_signature(raw_body, signature, '1760000001', secret=SECRET)

    def test_tampered_body(self):
        raw_body, signature = signed({'type': 'X'})

        assert not verify_signature(raw_body + b' ', signature, TIMESTAMP, secret=SECRET)

    def test_unconfigured_secret_rejects(self):
        raw_body, signature = signed({'type': 'X'}, secret='')

        assert not verify_signature(raw_body, signature, TIMESTAMP, secret='')

    @pytest.mark.parametrize(
        "signature", ['s\u00efgnature', '\u20b9' * 44, '\ud800'], ids=['latin', 'rupee', 'surrogate']
    )
    def test_non_ascii_signature_is_a_mismatch(self, signature):
        raw_body, _ = signed({'type': 'X'})

        assert not verify_signature(raw_body, signature, TIMESTAMP, secret=SECRET)


@pytest.mark.business_logic
class TestSubscriptionWebhook:

    def test_success_activates_and_shares_revenue(self, district):
        result = deliver(make_event(tags={'districtId': str(district.id), 'planType': 'PRO'}))

        assert (result.status, result.reason) == ('processed', 'applied')
        district.refresh_from_db()
        assert district.subscription_status == District.SubscriptionStatus.ACTIVE
        assert district.plan_type == District.PlanType.PRO
        assert district.current_period_end is not None

        share = RevenueShare.objects.get()
        assert share.invoice_id == 'order_1'
        assert share.amount_cents == 99900
        assert share.commission_cents == 19980
        assert share.period_end == district.current_period_end

        audit = WebhookAuditLog.objects.get(gateway_payment_id='cf_pay_1')
        assert audit.status == WebhookAuditLog.AuditStatus.PROCESSED
        assert audit.attempts == 1
        assert set(AuditLog.objects.values_list('action', flat=True)) == {
            'SUBSCRIPTION_STATUS_CHANGED', 'PAYOUT_CREATED',
        }

    def test_redelivery_is_duplicate(self, district):
        event = make_event(tags={'districtId': str(district.id)})
        deliver(event)

        result = deliver(event)

        assert result.status == 'duplicate'
        assert RevenueShare.objects.count() == 1
        assert AuditLog.objects.count() == 2
        assert WebhookAuditLog.objects.get().attempts == 1

    def test_same_invoice_new_payment_id_shares_once(self, district):
        deliver(make_event(cf_payment_id='cf_a', tags={'districtId': str(district.id)}))

        result = deliver(make_event(cf_payment_id='cf_b', tags={'districtId': str(district.id)}))

        assert result.status == 'processed'
        assert RevenueShare.objects.count() == 1
        assert WebhookAuditLog.objects.count() == 2

    def test_invoice_falls_back_to_payment_id(self, district):
        deliver(make_event(order_id='', tags={'districtId': str(district.id)}))

        assert RevenueShare.objects.get().invoice_id == 'cf_pay_1'

    def test_no_reseller_still_activates(self, district_without_reseller):
        result = deliver(make_event(tags={'districtId': str(district_without_reseller.id)}))

        assert result.status == 'processed'
        district_without_reseller.refresh_from_db()
        assert district_without_reseller.subscription_status == District.SubscriptionStatus.ACTIVE
        assert RevenueShare.objects.count() == 0

    @pytest.mark.parametrize("event,reason", [
        (make_event(event_type='PAYMENT_FAILED_WEBHOOK'), 'unhandled_type'),
        (make_event(payment_status='FAILED'), 'not_success'),
        (make_event(amount='0'), 'zero_amount'),
        (make_event(amount='0.004'), 'zero_amount'),
    ])
    def test_events_without_effects_are_recorded(self, district, event, reason):
        event['data']['order']['order_tags'] = {'districtId': str(district.id)}

        result = deliver(event)

        assert (result.status, result.reason) == ('processed', reason)
        audit = WebhookAuditLog.objects.get()
        assert audit.status == WebhookAuditLog.AuditStatus.PROCESSED
        assert audit.reason == reason
        district.refresh_from_db()
        assert district.subscription_status == District.SubscriptionStatus.INACTIVE
        assert RevenueShare.objects.count() == 0

    @patch('payments.services.webhook_service.trigger_financial_alert')
    def test_failure_rolls_back_then_retry_applies(self, mock_alert, district):
        event = make_event(tags={'districtId': str(district.id)})

        with patch('partners.services.RevenueShareService.derive', side_effect=RuntimeError('db down')):
            with pytest.raises(WebhookProcessingError) as exc_info:
                deliver(event)

        assert exc_info.value.retryable is True
        mock_alert.assert_called_once()
        audit = WebhookAuditLog.objects.get()
        assert audit.status == WebhookAuditLog.AuditStatus.FAILED
        assert 'db down' in audit.error_message
        district.refresh_from_db()
        assert district.subscription_status == District.SubscriptionStatus.INACTIVE

        result = deliver(event)

        assert result.status == 'processed'
        audit.refresh_from_db()
        assert audit.status == WebhookAuditLog.AuditStatus.PROCESSED
        assert audit.attempts == 2
        assert RevenueShare.objects.count() == 1

    def test_unknown_district_fails_for_retry(self):
        with pytest.raises(WebhookProcessingError):
            deliver(make_event(tags={'districtId': '00000000-0000-0000-0000-000000000000'}))

        assert WebhookAuditLog.objects.get().status == WebhookAuditLog.AuditStatus.FAILED

    def test_missing_tags_fails(self):
        with pytest.raises(WebhookProcessingError):
            deliver(make_event(tags={}))


class TestRejectedDeliveries:

    def test_bad_signature(self, district):
        raw_body, _ = signed(make_event(tags={'districtId': str(district.id)}))

        with pytest.raises(SignatureVerificationError):
            WebhookService.ingest(raw_body, 'bm90IGEgc2lnbmF0dXJl', TIMESTAMP)

        assert WebhookAuditLog.objects.count() == 0

    @pytest.mark.parametrize("signature,timestamp", [(None, TIMESTAMP), ('sig', None), ('', '')])
    def test_missing_headers(self, signature, timestamp):
        with pytest.raises(DomainValidationError):
            WebhookService.ingest(b'{}', signature, timestamp)

    def test_missing_payment_id(self):
        with pytest.raises(IntegrityFailureError):
            deliver(make_event(cf_payment_id=None))

        assert WebhookAuditLog.objects.count() == 0

    def test_body_not_json(self):
        raw_body = b'not json'

        with pytest.raises(DomainValidationError):
            WebhookService.ingest(raw_body, compute_signature(SECRET, TIMESTAMP, raw_body), TIMESTAMP)


@pytest.mark.business_logic
class TestBillWebhook:

    def test_confirms_payment_and_closes_bill(self, open_bill):
        payment = PaymentService.record_payment(
            open_bill.id, Payment.PaymentMethod.UPI, '295.00', reference='order_bill_1'
        ).payment

        result = deliver(make_event(
            cf_payment_id='cf_bill_1', order_id='order_bill_1', amount='295.00',
            tags={'billId': str(open_bill.id)},
        ))

        assert result.reason == 'applied'
        payment.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.SUCCEEDED
        assert payment.gateway_payment_id == 'cf_bill_1'
        open_bill.refresh_from_db()
        assert open_bill.status == Bill.BillStatus.CLOSED
        assert open_bill.balance == Decimal('0.00')

    def test_partial_payment_leaves_bill_open(self, open_bill):
        PaymentService.record_payment(
            open_bill.id, Payment.PaymentMethod.UPI, '100.00', reference='order_part'
        )

        deliver(make_event(
            cf_payment_id='cf_part', order_id='order_part', amount='100.00',
            tags={'billId': str(open_bill.id)},
        ))

        open_bill.refresh_from_db()
        assert open_bill.status == Bill.BillStatus.OPEN
        assert open_bill.balance == Decimal('195.00')

    def test_unknown_gateway_order_fails(self, open_bill):
        with pytest.raises(WebhookProcessingError):
            deliver(make_event(order_id='order_nobody', tags={'billId': str(open_bill.id)}))

    def test_underpaid_bill_stays_open_without_tenant_context(self, open_bill):
        PaymentService.record_payment(
            open_bill.id, Payment.PaymentMethod.UPI, '100.00', reference='order_under'
        )
        set_current_tenant(None)

        result = deliver(make_event(
            cf_payment_id='cf_under', order_id='order_under', amount='100.00',
            tags={'billId': str(open_bill.id)},
        ))

        assert result.reason == 'applied'
        open_bill.refresh_from_db()
        assert open_bill.status == Bill.BillStatus.OPEN
        assert open_bill.subtotal == Decimal('250.00')
        assert open_bill.total == Decimal('295.00')
        assert open_bill.balance == Decimal('195.00')
        assert get_current_tenant() is None

    def test_closing_webhook_marks_orders_paid(self, open_bill, served_order):
        PaymentService.record_payment(
            open_bill.id, Payment.PaymentMethod.UPI, '295.00', reference='order_full'
        )
        set_current_tenant(None)

        deliver(make_event(
            cf_payment_id='cf_full', order_id='order_full', amount='295.00',
            tags={'billId': str(open_bill.id)},
        ))

        open_bill.refresh_from_db()
        served_order.refresh_from_db()
        assert open_bill.status == Bill.BillStatus.CLOSED
        assert served_order.status == Order.OrderStatus.PAID


@pytest.mark.integration
class TestWebhookEndpoint:

    URL = '/api/payments/webhooks/gateway/'

    def post(self, client, raw_body, signature=None, timestamp=TIMESTAMP):
        headers = {}
        if signature is not None:
            headers['HTTP_X_WEBHOOK_SIGNATURE'] = signature
        if timestamp is not None:
            headers['HTTP_X_WEBHOOK_TIMESTAMP'] = timestamp
        return client.post(self.URL, data=raw_body, content_type='application/json', **headers)

    def test_accepts_signed_delivery(self, api_client, district):
        raw_body, signature = signed(make_event(tags={'districtId': str(district.id)}))

        response = self.post(api_client, raw_body, signature)
        replay = self.post(api_client, raw_body, signature)

        assert response.status_code == 200
        assert response.data == {'received': True, 'status': 'processed', 'reason': 'applied'}
        assert replay.status_code == 200
        assert replay.data['status'] == 'duplicate'

    def test_bad_signature_is_401(self, api_client):
        raw_body, _ = signed(make_event())

        response = self.post(api_client, raw_body, 'forged')

        assert response.status_code == 401
        assert response.data['code'] == 'INVALID_SIGNATURE'

    def test_non_ascii_signature_is_401(self, api_client):
        raw_body, _ = signed(make_event())

        response = self.post(api_client, raw_body, 'sïgnature')

        assert response.status_code == 401
        assert response.data['code'] == 'INVALID_SIGNATURE'

    def test_missing_headers_is_400(self, api_client):
        raw_body, _ = signed(make_event())

        response = self.post(api_client, raw_body, signature=None, timestamp=None)

        assert response.status_code == 400

    def test_missing_payment_id_is_400(self, api_client):
        raw_body, signature = signed(make_event(cf_payment_id=None))

        response = self.post(api_client, raw_body, signature)

        assert response.status_code == 400
        assert response.data['code'] == 'INTEGRITY_FAILURE'

    def test_processing_error_is_500_and_retryable(self, api_client):
        raw_body, signature = signed(make_event(tags={}))

        response = self.post(api_client, raw_body, signature)

        assert response.status_code == 500
        assert response.data['retryable'] is True
