import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from core_backend.alerting import AlertType, trigger_financial_alert
from core_backend.exceptions import DomainValidationError, NotFoundError

from ..models import Order
from .state_machine import OrderStateMachine

logger = logging.getLogger(__name__)


class OrderService:

    @staticmethod
    def get_order(order_id, tenant=None, for_update=False) -> Order:
        qs = Order.all_objects.all()
        if tenant is not None:
            qs = qs.filter(tenant=tenant)
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(id=order_id)
        except (Order.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("Order", order_id)

    @staticmethod
    @transaction.atomic
    def transition(order_id, target_status: str, tenant=None) -> Order:
        """
        Moves an order along one kitchen edge.

        The order row is locked for the duration, so two terminals racing to
        move the same order are serialized and the loser sees the winner's
        status when the transition table is consulted.
        """
        if target_status not in Order.OrderStatus.values:
            raise DomainValidationError(f"'{target_status}' is not a valid order status.")

        order = OrderService.get_order(order_id, tenant=tenant, for_update=True)
        OrderStateMachine.assert_transition(order.status, target_status)

        previous = order.status
        order.status = target_status
        update_fields = ['status', 'updated_at']
        if target_status == Order.OrderStatus.SERVED:
            order.served_at = timezone.now()
            update_fields.append('served_at')
        elif target_status == Order.OrderStatus.CANCELLED:
            order.cancelled_at = timezone.now()
            update_fields.append('cancelled_at')
        order.save(update_fields=update_fields)

        logger.info(f"Order {order.id} moved {previous} -> {target_status}")

        if target_status == Order.OrderStatus.SERVED:
            served_id = order.id
            transaction.on_commit(lambda: OrderService.schedule_served_side_effects(served_id))

        return order

    @staticmethod
    def schedule_served_side_effects(order_id):
        """
        Queue bill creation and commission for a served order.

        Runs after the transition has committed. Each task is idempotent and
        retried by Celery; a failure to enqueue is alerted and never undoes
        the transition.
        """
        from .. import tasks as order_tasks
        from partners import tasks as partner_tasks

        for task in (order_tasks.create_bill_for_served_order, partner_tasks.compute_order_commission):
            try:
                task.delay(str(order_id))
            except Exception as e:
                logger.error(f"Failed to queue {task.name} for order {order_id}: {e}")
                trigger_financial_alert(
                    AlertType.SIDE_EFFECT_FAILED,
                    f"Could not queue {task.name} for served order",
                    {'order_id': str(order_id), 'error': str(e)},
                )

    @staticmethod
    def mark_orders_paid(order_ids) -> int:
        """
        Move SERVED orders to PAID. Called by bill closing inside its
        transaction; orders in any other state are left alone.
        """
        paid = 0
        orders = Order.all_objects.select_for_update().filter(id__in=list(order_ids))
        for order in orders:
            if not OrderStateMachine.can_settle(order.status):
                logger.info(f"Order {order.id} is {order.status}, not marking PAID")
                continue
            order.status = Order.OrderStatus.PAID
            order.save(update_fields=['status', 'updated_at'])
            paid += 1
        return paid
