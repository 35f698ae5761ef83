"""
Financial alert channel.

Alerts go to the ``financial_alerts`` logger at ERROR level; deployments
route that logger to their paging integration through LOGGING.
"""
import logging

logger = logging.getLogger('financial_alerts')


class AlertType:
    PAYOUT_FAILED = 'PAYOUT_FAILED'
    DUPLICATE_LEDGER = 'DUPLICATE_LEDGER'
    WEBHOOK_ERROR = 'WEBHOOK_ERROR'
    NEGATIVE_COMMISSION = 'NEGATIVE_COMMISSION'
    SIGNATURE_VERIFICATION_FAILED = 'SIGNATURE_VERIFICATION_FAILED'
    UNHANDLED_EVENT_TYPE = 'UNHANDLED_EVENT_TYPE'
    TRANSFER_FAILURE = 'TRANSFER_FAILURE'
    SIDE_EFFECT_FAILED = 'SIDE_EFFECT_FAILED'


def trigger_financial_alert(alert_type, message, context=None):
    """
    Emit a financial alert. Never raises.

    An alerting failure must not replace the failure being reported, so any
    error while emitting is logged on the module logger and dropped.
    """
    context = context or {}
    try:
        logger.error(
            f"[{alert_type}] {message}",
            extra={'alert_type': alert_type, 'alert_context': context},
        )
    except Exception:
        logging.getLogger(__name__).exception(f"Failed to emit {alert_type} alert")
