import logging

from django.core.exceptions import ValidationError as DjangoValidationError

from core_backend.exceptions import DomainValidationError, NotFoundError

from .models import DiningTable, MenuItem

logger = logging.getLogger(__name__)


class MenuService:
    """
    Read-only menu access for the ordering core.

    Menu CRUD lives elsewhere; the core only needs to resolve a QR token and
    snapshot prices at order-creation time.
    """

    @staticmethod
    def resolve_table_token(token):
        """Returns (tenant, table) for a public ordering token."""
        try:
            table = DiningTable.all_objects.select_related('tenant').get(
                qr_token=token, is_active=True
            )
        except DiningTable.DoesNotExist:
            raise NotFoundError("Table", token, message="Invalid or inactive table token")

        if not table.tenant.is_active:
            raise NotFoundError("Table", token, message="Restaurant is not accepting orders")
        return table.tenant, table

    @staticmethod
    def get_table(tenant, table_id):
        try:
            return DiningTable.all_objects.get(tenant=tenant, id=table_id, is_active=True)
        except (DiningTable.DoesNotExist, ValueError, DjangoValidationError):
            raise DomainValidationError(f"Table {table_id} does not belong to this restaurant")

    @staticmethod
    def price_snapshot(tenant, item_ids):
        """
        Returns {str(item_id): MenuItem} for the requested ids.

        Every id must exist, belong to ``tenant`` and be available; otherwise
        the whole lookup fails so no partial order can be built from it.
        """
        wanted = {str(item_id) for item_id in item_ids}
        try:
            items = MenuItem.all_objects.filter(tenant=tenant, id__in=wanted)
            found = {str(item.id): item for item in items}
        except (ValueError, DjangoValidationError):
            raise DomainValidationError("Menu item ids must be UUIDs")

        missing = wanted - found.keys()
        if missing:
            raise DomainValidationError(
                "Unknown menu items for this restaurant",
                details={'menu_item_ids': sorted(missing)},
            )

        unavailable = [item_id for item_id, item in found.items() if not item.is_available]
        if unavailable:
            raise DomainValidationError(
                "Some menu items are currently unavailable",
                details={'menu_item_ids': sorted(unavailable)},
            )

        logger.debug(f"Snapshotted {len(found)} menu prices for tenant {tenant.id}")
        return found
