from celery import shared_task
import logging
from datetime import date, timedelta

from django.utils import timezone

from tenant.models import Tenant

from .services import SettlementService

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def aggregate_daily_settlements(self, day=None):
    """
    Rebuild every active restaurant's settlement for ``day``
    (ISO date string, defaults to yesterday).

    Safe to re-run: aggregation recomputes each day from scratch.

    Returns:
        dict: Status and number of settlements rebuilt
    """
    target = date.fromisoformat(day) if day else timezone.localdate() - timedelta(days=1)
    try:
        count = 0
        for tenant in Tenant.objects.filter(is_active=True):
            SettlementService.aggregate_day(tenant, target)
            count += 1
        logger.info(f"Aggregated {count} settlements for {target}")
        return {"status": "completed", "date": target.isoformat(), "settlements": count}
    except Exception as exc:
        logger.error(f"Error aggregating settlements for {target}: {exc}")
        raise self.retry(exc=exc)
