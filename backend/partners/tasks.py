from celery import shared_task
import logging

from core_backend.alerting import AlertType, trigger_financial_alert
from core_backend.exceptions import DomainError
from tenant.managers import tenant_context

from .services import CommissionService

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def compute_order_commission(self, order_id):
    """
    Record partner commissions for a served order.

    Idempotent: partners already credited for the order are skipped.

    Returns:
        dict: Status and number of commissions created
    """
    from orders.services import OrderService

    try:
        order = OrderService.get_order(order_id)
        with tenant_context(order.tenant):
            created = CommissionService.process_order_commission(order_id)
        return {"status": "completed", "order_id": str(order_id), "created": len(created)}
    except DomainError as exc:
        logger.error(f"Cannot compute commission for order {order_id}: {exc}")
        return {"status": "failed", "error": str(exc), "order_id": str(order_id)}
    except Exception as exc:
        logger.error(f"Error computing commission for order {order_id}: {exc}")
        if self.request.retries >= self.max_retries:
            trigger_financial_alert(
                AlertType.SIDE_EFFECT_FAILED,
                "Commission computation failed after retries",
                {'order_id': str(order_id), 'error': str(exc)},
            )
        raise self.retry(exc=exc)
