from celery import shared_task
import logging

from .services import IdempotencyService

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def sweep_idempotency_records(self):
    """
    Periodic task removing expired idempotency records.

    Returns:
        dict: Status and number of rows removed
    """
    try:
        deleted = IdempotencyService.sweep_expired()
        return {"status": "completed", "deleted": deleted}
    except Exception as exc:
        logger.error(f"Error sweeping idempotency records: {exc}")
        raise self.retry(exc=exc)
