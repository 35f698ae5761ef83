"""
Payment gateway webhook reconciliation.

Deliveries are at-least-once and unordered. Every delivery is keyed by the
gateway payment id in WebhookAuditLog:

* a PROCESSED row means the effects were applied; the delivery is
  acknowledged and nothing runs again
* a FAILED row means an earlier attempt rolled back; the delivery is
  retried in full

Signature verification happens before anything is read or written.
"""
import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core_backend.alerting import AlertType, trigger_financial_alert
from core_backend.exceptions import (
    DomainValidationError,
    IntegrityFailureError,
    NotFoundError,
    SignatureVerificationError,
    WebhookProcessingError,
)
from tenant.managers import tenant_context

from ..models import Payment, WebhookAuditLog
from ..money import to_minor

logger = logging.getLogger(__name__)

SUCCESS_EVENT = "PAYMENT_SUCCESS_WEBHOOK"
SUCCESS_STATUS = "SUCCESS"


def compute_signature(secret: str, timestamp: str, raw_body: bytes) -> str:
    """base64(HMAC-SHA256(secret, timestamp + raw_body))"""
    message = timestamp.encode() + raw_body
    digest = hmac.new(secret.encode(), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_signature(raw_body: bytes, signature: str, timestamp: str, secret=None) -> bool:
    secret = secret if secret is not None else settings.PAYMENT_WEBHOOK_SECRET
    if not secret:
        logger.error("PAYMENT_WEBHOOK_SECRET is not configured; rejecting webhook")
        return False
    expected = compute_signature(secret, timestamp, raw_body)
    # Headers may carry arbitrary text; compare_digest only accepts ASCII str
    return hmac.compare_digest(expected.encode(), signature.encode('utf-8', 'replace'))


@dataclass
class WebhookResult:
    status: str
    gateway_payment_id: str
    reason: str = ""


class WebhookService:

    @staticmethod
    def ingest(raw_body: bytes, signature, timestamp) -> WebhookResult:
        """
        Verify, deduplicate and apply one gateway delivery.

        Raises DomainValidationError (400) for missing headers or a malformed
        body, SignatureVerificationError (401) for a bad signature and
        IntegrityFailureError (400) when the payment id is missing. Any
        failure while applying effects is recorded on the audit row and
        raised as WebhookProcessingError (500) so the gateway redelivers.
        """
        if not signature or not timestamp:
            raise DomainValidationError("Missing webhook signature or timestamp")

        if not verify_signature(raw_body, signature, timestamp):
            trigger_financial_alert(
                AlertType.SIGNATURE_VERIFICATION_FAILED,
                "Webhook signature verification failed",
                {'timestamp': timestamp},
            )
            raise SignatureVerificationError()

        try:
            payload = json.loads(raw_body)
        except (TypeError, ValueError):
            raise DomainValidationError("Webhook body is not valid JSON")
        if not isinstance(payload, dict):
            raise DomainValidationError("Webhook body must be a JSON object")

        event_type = payload.get('type') or 'UNKNOWN'
        data = payload.get('data') or {}
        gateway_payment_id = str((data.get('payment') or {}).get('cf_payment_id') or '')
        if not gateway_payment_id:
            trigger_financial_alert(
                AlertType.WEBHOOK_ERROR,
                "Webhook delivery without a gateway payment id",
                {'event_type': event_type},
            )
            raise IntegrityFailureError("Missing cf_payment_id")

        logger.info(f"Webhook {event_type} received for {gateway_payment_id}")

        try:
            with transaction.atomic():
                return WebhookService._apply(gateway_payment_id, event_type, payload)
        except Exception as exc:
            logger.error(f"Webhook handler error for {gateway_payment_id}: {exc}")
            trigger_financial_alert(
                AlertType.WEBHOOK_ERROR,
                f"Webhook processing failed: {exc}",
                {'event_type': event_type, 'gateway_payment_id': gateway_payment_id},
            )
            WebhookService._record_failure(gateway_payment_id, event_type, payload, exc)
            raise WebhookProcessingError(f"Webhook {gateway_payment_id} failed: {exc}") from exc

    @staticmethod
    def _apply(gateway_payment_id, event_type, payload) -> WebhookResult:
        audit, _ = WebhookAuditLog.objects.select_for_update().get_or_create(
            gateway_payment_id=gateway_payment_id,
            defaults={'event_type': event_type, 'status': WebhookAuditLog.AuditStatus.RECEIVED},
        )
        if audit.status == WebhookAuditLog.AuditStatus.PROCESSED:
            logger.info(f"Idempotent: webhook for {gateway_payment_id} already processed")
            return WebhookResult('duplicate', gateway_payment_id, audit.reason)

        reason = WebhookService._apply_effects(gateway_payment_id, event_type, payload)

        audit.event_type = event_type
        audit.status = WebhookAuditLog.AuditStatus.PROCESSED
        audit.reason = reason
        audit.payload = payload
        audit.error_message = ''
        audit.attempts += 1
        audit.processed_at = timezone.now()
        audit.save()
        return WebhookResult('processed', gateway_payment_id, reason)

    @staticmethod
    def _apply_effects(gateway_payment_id, event_type, payload) -> str:
        """Returns the audit reason; raises to roll everything back."""
        if event_type != SUCCESS_EVENT:
            logger.info(f"Unhandled webhook event type {event_type}, recording for idempotency")
            trigger_financial_alert(
                AlertType.UNHANDLED_EVENT_TYPE,
                f"Unhandled webhook event type {event_type}",
                {'gateway_payment_id': gateway_payment_id},
            )
            return 'unhandled_type'

        data = payload.get('data') or {}
        order = data.get('order')
        payment = data.get('payment')
        if not order or not payment:
            raise ValueError("Missing order or payment in webhook data")

        if payment.get('payment_status') != SUCCESS_STATUS:
            logger.info(f"Payment {gateway_payment_id} not successful ({payment.get('payment_status')}), skipping")
            return 'not_success'

        raw_amount = order.get('order_amount')
        if raw_amount is None:
            raw_amount = payment.get('payment_amount') or 0
        try:
            amount = Decimal(str(raw_amount))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount {raw_amount!r}")
        if to_minor("INR", amount) <= 0:
            logger.warning(f"Webhook amount {amount} rounds to zero for {gateway_payment_id}, skipping")
            return 'zero_amount'

        tags = order.get('order_tags') or {}
        gateway_order_id = order.get('order_id') or ''
        if tags.get('districtId'):
            WebhookService._activate_subscription(
                tags, gateway_order_id, gateway_payment_id, amount
            )
        elif tags.get('billId'):
            WebhookService._confirm_bill_payment(
                tags['billId'], gateway_order_id, gateway_payment_id, amount
            )
        else:
            raise ValueError("Webhook order_tags carry neither districtId nor billId")
        return 'applied'

    @staticmethod
    def _activate_subscription(tags, gateway_order_id, gateway_payment_id, amount):
        from partners.models import District
        from partners.services import RevenueShareService, SubscriptionService

        district = SubscriptionService.activate(
            tags['districtId'],
            plan_type=tags.get('planType'),
            metadata={
                'order_id': gateway_order_id,
                'cf_payment_id': gateway_payment_id,
                'source': 'webhook',
                'event': SUCCESS_EVENT,
            },
        )

        district = District.objects.select_related('reseller').get(id=district.id)
        invoice_id = gateway_order_id or gateway_payment_id
        result = RevenueShareService.derive(
            district,
            invoice_id,
            to_minor("INR", amount),
            period_start=timezone.now(),
            period_end=district.current_period_end,
        )
        if result.created:
            logger.info(f"Revenue share created for invoice {invoice_id}")
        else:
            logger.info(f"No revenue share for invoice {invoice_id}: {result.reason}")

    @staticmethod
    def _confirm_bill_payment(bill_id, gateway_order_id, gateway_payment_id, amount):
        from billing.services import BillService

        bill = BillService.get_bill(bill_id)
        with tenant_context(bill.tenant):
            WebhookService._settle_bill_payment(bill, gateway_order_id, gateway_payment_id, amount)

    @staticmethod
    def _settle_bill_payment(bill, gateway_order_id, gateway_payment_id, amount):
        from billing.services import BillService
        from .payment_service import PaymentService

        payment = (
            Payment.all_objects
            .filter(bill=bill, reference=gateway_order_id)
            .exclude(status=Payment.PaymentStatus.FAILED)
            .first()
        )
        if payment is None:
            raise NotFoundError("Payment", gateway_order_id, message=(
                f"No payment on bill {bill.bill_number} references gateway order {gateway_order_id}"
            ))
        if payment.amount != amount:
            logger.warning(
                f"Gateway amount {amount} differs from recorded {payment.amount} for payment {payment.id}"
            )

        PaymentService.confirm_payment(payment.id, gateway_payment_id=gateway_payment_id)

        bill.refresh_from_db()
        if bill.is_open and bill.balance <= settings.BILLING_EPSILON:
            BillService.close(bill.id)

    @staticmethod
    def _record_failure(gateway_payment_id, event_type, payload, exc):
        """Upsert the audit row as FAILED; a later delivery retries the effects."""
        audit, created = WebhookAuditLog.objects.get_or_create(
            gateway_payment_id=gateway_payment_id,
            defaults={
                'event_type': event_type,
                'status': WebhookAuditLog.AuditStatus.FAILED,
                'payload': payload,
                'error_message': str(exc),
                'attempts': 1,
            },
        )
        if not created and audit.status != WebhookAuditLog.AuditStatus.PROCESSED:
            audit.status = WebhookAuditLog.AuditStatus.FAILED
            audit.event_type = event_type
            audit.payload = payload
            audit.error_message = str(exc)
            audit.attempts += 1
            audit.save()
