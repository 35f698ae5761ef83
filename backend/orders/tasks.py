from celery import shared_task
import logging

from core_backend.alerting import AlertType, trigger_financial_alert
from core_backend.exceptions import DomainError
from tenant.managers import tenant_context

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def create_bill_for_served_order(self, order_id):
    """
    Add a served order's frozen items to its table's open bill.

    Queued after the SERVED transition commits. Safe to run more than once:
    an order already on a bill is skipped.

    Args:
        order_id: UUID of the served order

    Returns:
        dict: Status and bill details
    """
    from billing.services import BillService
    from orders.services import OrderService

    try:
        logger.info(f"Creating bill for served order {order_id}")
        order = OrderService.get_order(order_id)
        with tenant_context(order.tenant):
            result = BillService.create_from_order(order_id)
        return {
            "status": "completed" if result.created else "skipped",
            "order_id": str(order_id),
            "bill_id": str(result.bill.id),
            "bill_number": result.bill.bill_number,
        }
    except DomainError as exc:
        # Not retryable: the order is in a state that cannot be billed
        logger.error(f"Cannot bill order {order_id}: {exc}")
        trigger_financial_alert(
            AlertType.SIDE_EFFECT_FAILED,
            "Bill creation rejected for served order",
            {'order_id': str(order_id), 'error': str(exc)},
        )
        return {"status": "failed", "error": str(exc), "order_id": str(order_id)}
    except Exception as exc:
        logger.error(f"Error creating bill for order {order_id}: {exc}")
        if self.request.retries >= self.max_retries:
            trigger_financial_alert(
                AlertType.SIDE_EFFECT_FAILED,
                "Bill creation failed after retries",
                {'order_id': str(order_id), 'error': str(exc)},
            )
        raise self.retry(exc=exc)
