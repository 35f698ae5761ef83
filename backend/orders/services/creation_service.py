"""
Idempotent order creation.

A retried request carrying the same idempotency key gets the original order
back. Without a key, a short fallback window treats an order for the same
table with the same total as a resend. Prices are read from the menu once,
here, and frozen into OrderItem.price_at_sale.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone

from core_backend.db import serializable_atomic
from core_backend.exceptions import DomainValidationError
from menu.services import MenuService
from sync.models import IdempotencyRecord
from sync.services import IdempotencyService, is_idempotency_conflict

from ..models import Order, OrderItem

logger = logging.getLogger(__name__)

TOTAL_MATCH_TOLERANCE = Decimal("0.01")


@dataclass
class OrderCreationResult:
    order: Order
    created: bool
    deduplicated_by: str = ""


class OrderCreationService:

    @staticmethod
    def normalize_items(items):
        """
        Validates the requested lines and returns [(menu_item_id, quantity, notes)].

        Any bad line fails the whole request.
        """
        if not isinstance(items, (list, tuple)) or not items:
            raise DomainValidationError("An order needs at least one item")

        lines = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise DomainValidationError(f"Item {index} is malformed")
            menu_item_id = item.get('menu_item_id')
            quantity = item.get('quantity')
            if not menu_item_id:
                raise DomainValidationError(f"Item {index} is missing menu_item_id")
            # bool is an int subclass; reject it explicitly
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise DomainValidationError(
                    f"Item {index} quantity must be a positive integer",
                    details={'menu_item_id': str(menu_item_id), 'quantity': quantity},
                )
            lines.append((str(menu_item_id), quantity, item.get('notes') or ''))
        return lines

    @staticmethod
    def create_from_token(token, items, idempotency_key=None, notes='', is_priority=False):
        """Public QR ordering: the token resolves both restaurant and table."""
        tenant, table = MenuService.resolve_table_token(token)
        return OrderCreationService.create_order(
            tenant=tenant,
            table=table,
            items=items,
            caller_key=f"table:{table.qr_token}",
            idempotency_key=idempotency_key,
            notes=notes,
            is_priority=is_priority,
            source=Order.OrderSource.QR,
        )

    @staticmethod
    def create_order(*, tenant, table, items, caller_key, idempotency_key=None, notes='',
                     is_priority=False, created_by=None, source=Order.OrderSource.POS):
        lines = OrderCreationService.normalize_items(items)
        if idempotency_key is not None:
            idempotency_key = str(idempotency_key).strip()
            if not idempotency_key or len(idempotency_key) > 128:
                raise DomainValidationError("Idempotency key must be 1-128 characters")

        try:
            with serializable_atomic():
                return OrderCreationService._create_in_transaction(
                    tenant, table, lines, caller_key, idempotency_key,
                    notes, is_priority, created_by, source,
                )
        except IntegrityError as e:
            if idempotency_key and is_idempotency_conflict(e):
                # Another request with this key committed first; return its order
                logger.info(
                    f"Race on idempotency key {caller_key}:{idempotency_key}. "
                    f"Returning order from winner."
                )
                record = IdempotencyService.lookup(tenant, caller_key, idempotency_key)
                if record is not None:
                    order = Order.all_objects.get(id=record.entity_id)
                    return OrderCreationResult(order=order, created=False, deduplicated_by='idempotency_key')
            raise

    @staticmethod
    def _create_in_transaction(tenant, table, lines, caller_key, idempotency_key,
                               notes, is_priority, created_by, source):
        if idempotency_key:
            record = IdempotencyService.lookup(tenant, caller_key, idempotency_key)
            if record is not None:
                order = Order.all_objects.get(id=record.entity_id)
                logger.info(f"Replayed idempotency key {caller_key}:{idempotency_key} -> order {order.id}")
                return OrderCreationResult(order=order, created=False, deduplicated_by='idempotency_key')

        if table.tenant_id != tenant.id:
            raise DomainValidationError("Table does not belong to this restaurant")

        menu_items = MenuService.price_snapshot(tenant, [line[0] for line in lines])
        total = sum(
            (menu_items[menu_item_id].price * quantity for menu_item_id, quantity, _ in lines),
            Decimal("0.00"),
        )

        if not idempotency_key:
            duplicate = OrderCreationService.find_recent_duplicate(tenant, table, total)
            if duplicate is not None:
                logger.warning(
                    f"Order for table {table.number} with total {total} matched order "
                    f"{duplicate.id} inside the fallback window; treating as resend"
                )
                return OrderCreationResult(order=duplicate, created=False, deduplicated_by='fallback_window')

        order = Order.all_objects.create(
            tenant=tenant,
            table=table,
            total=total,
            notes=notes or '',
            is_priority=is_priority,
            created_by=created_by,
            source=source,
        )
        OrderItem.all_objects.bulk_create([
            OrderItem(
                tenant=tenant,
                order=order,
                menu_item=menu_items[menu_item_id],
                name_at_sale=menu_items[menu_item_id].name,
                price_at_sale=menu_items[menu_item_id].price,
                quantity=quantity,
                notes=line_notes,
            )
            for menu_item_id, quantity, line_notes in lines
        ])

        if idempotency_key:
            IdempotencyService.record(
                tenant=tenant,
                caller_key=caller_key,
                key=idempotency_key,
                operation_type=IdempotencyRecord.OperationType.CREATE_ORDER,
                entity_id=order.id,
                result_data={'order_id': order.id, 'total': total},
            )

        logger.info(f"Created order {order.id} for table {table.number} with total {total}")
        return OrderCreationResult(order=order, created=True)

    @staticmethod
    def find_recent_duplicate(tenant, table, total):
        window = timedelta(seconds=settings.ORDER_FALLBACK_DEDUP_WINDOW)
        recent = (
            Order.all_objects
            .filter(tenant=tenant, table=table, created_at__gte=timezone.now() - window)
            .exclude(status=Order.OrderStatus.CANCELLED)
            .order_by('-created_at')
            .first()
        )
        if recent is not None and abs(recent.total - total) < TOTAL_MATCH_TOLERANCE:
            return recent
        return None
