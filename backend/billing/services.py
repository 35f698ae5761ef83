import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core_backend.db import serializable_atomic
from core_backend.exceptions import BillStateError, DomainValidationError, NotFoundError
from menu.models import MenuItem
from orders.models import Order, OrderItem
from orders.services import OrderService
from payments.models import Payment
from sync.models import IdempotencyRecord
from sync.services import IdempotencyService

from .calculator import BillCalculator
from .models import Bill, BillItem, BillSequence

logger = logging.getLogger(__name__)


@dataclass
class BillCreationResult:
    bill: Bill
    created: bool


def to_decimal(value, field):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise DomainValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise DomainValidationError(f"{field} must be a finite number")
    return amount


class BillService:

    # ------------------------------------------------------------------
    # Lookups and recomputation
    # ------------------------------------------------------------------

    @staticmethod
    def get_bill(bill_id, tenant=None, for_update=False) -> Bill:
        qs = Bill.all_objects.all()
        if tenant is not None:
            qs = qs.filter(tenant=tenant)
        if for_update:
            qs = qs.select_for_update()
        try:
            return qs.get(id=bill_id)
        except (Bill.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError("Bill", bill_id)

    @staticmethod
    def get_open_bill_for_update(bill_id, tenant=None) -> Bill:
        bill = BillService.get_bill(bill_id, tenant=tenant, for_update=True)
        if not bill.is_open:
            raise BillStateError(f"Bill {bill.bill_number} is closed")
        return bill

    @staticmethod
    def recalculate(bill: Bill, save=True) -> Bill:
        """
        Recompute every stored figure from the bill's items, adjustments and
        SUCCEEDED payments. Callers hold the bill row lock.
        """
        lines = BillItem.all_objects.filter(bill=bill).values_list('price', 'quantity')
        paid = (
            Payment.all_objects
            .filter(bill=bill, status=Payment.PaymentStatus.SUCCEEDED)
            .aggregate(total=Sum('amount'))['total']
        ) or Decimal("0.00")

        totals = BillCalculator(bill.tenant.currency).compute(
            lines,
            discount=bill.discount,
            service_charge=bill.service_charge,
            tax_rate=bill.tax_rate,
            paid_amount=paid,
        )
        for field, value in totals.as_dict().items():
            setattr(bill, field, value)

        if save:
            bill.save()
        return bill

    @staticmethod
    def next_bill_number(tenant) -> str:
        """BILL-{year}-{000001}; the counter restarts every calendar year."""
        year = timezone.localdate().year
        sequence, _ = BillSequence.all_objects.select_for_update().get_or_create(
            tenant=tenant, defaults={'year': year, 'last_number': 0}
        )
        if sequence.year != year:
            sequence.year = year
            sequence.last_number = 0
        sequence.last_number += 1
        sequence.save(update_fields=['year', 'last_number'])
        return f"BILL-{year}-{sequence.last_number:06d}"

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def create(tenant, items=None, table=None, tax_rate=None, created_by=None) -> Bill:
        """Open a bill with manually entered items."""
        tax_rate = settings.BILLING_DEFAULT_TAX_RATE if tax_rate is None else to_decimal(tax_rate, 'tax_rate')

        if table is not None and Bill.all_objects.filter(table=table, status=Bill.BillStatus.OPEN).exists():
            raise BillStateError(f"Table {table.number} already has an open bill")

        bill = Bill.all_objects.create(
            tenant=tenant,
            table=table,
            bill_number=BillService.next_bill_number(tenant),
            tax_rate=tax_rate,
            created_by=created_by,
        )
        for item in items or []:
            BillService._build_item(bill, item).save()

        BillService.recalculate(bill)
        logger.info(f"Opened bill {bill.bill_number} with {len(items or [])} items")
        return bill

    @staticmethod
    @transaction.atomic
    def create_from_order(order_id) -> BillCreationResult:
        """
        Copy a SERVED order's frozen items onto its table's OPEN bill,
        opening one if needed.

        Idempotent per order: an order whose items are already on a bill
        returns that bill with created=False.
        """
        order = OrderService.get_order(order_id, for_update=True)

        existing_line = BillItem.all_objects.filter(order=order).select_related('bill').first()
        if existing_line is not None:
            logger.info(f"Order {order.id} already billed on {existing_line.bill.bill_number}")
            return BillCreationResult(bill=existing_line.bill, created=False)

        if order.status != Order.OrderStatus.SERVED:
            raise BillStateError(f"Order {order.id} is {order.status}; only SERVED orders can be billed")

        items = list(OrderItem.all_objects.filter(order=order))
        if not items:
            raise DomainValidationError(f"Order {order.id} has no items to bill")

        bill = (
            Bill.all_objects.select_for_update()
            .filter(tenant=order.tenant, table=order.table, status=Bill.BillStatus.OPEN)
            .first()
        )
        created = bill is None
        if created:
            bill = Bill.all_objects.create(
                tenant=order.tenant,
                table=order.table,
                bill_number=BillService.next_bill_number(order.tenant),
                tax_rate=settings.BILLING_DEFAULT_TAX_RATE,
            )

        BillItem.all_objects.bulk_create([
            BillItem(
                tenant=order.tenant,
                bill=bill,
                order=order,
                menu_item_id=item.menu_item_id,
                name=item.name_at_sale,
                quantity=item.quantity,
                price=item.price_at_sale,
            )
            for item in items
        ])
        BillService.recalculate(bill)

        logger.info(
            f"{'Opened' if created else 'Extended'} bill {bill.bill_number} "
            f"with order {order.id}"
        )
        return BillCreationResult(bill=bill, created=True)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def _build_item(bill, data) -> BillItem:
        if not isinstance(data, dict):
            raise DomainValidationError("Bill item is malformed")

        quantity = data.get('quantity', 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise DomainValidationError("Quantity must be a positive integer")

        menu_item = None
        menu_item_id = data.get('menu_item_id')
        if menu_item_id:
            try:
                menu_item = MenuItem.all_objects.get(tenant=bill.tenant, id=menu_item_id)
            except (MenuItem.DoesNotExist, ValueError, DjangoValidationError):
                raise DomainValidationError(f"Menu item {menu_item_id} not found")

        price = data.get('price')
        if price is None:
            if menu_item is None:
                raise DomainValidationError("Custom bill items need a price")
            price = menu_item.price
        price = to_decimal(price, 'price')
        if price < 0:
            raise DomainValidationError("Price cannot be negative")

        name = data.get('name') or (menu_item.name if menu_item else '')
        if not name:
            raise DomainValidationError("Custom bill items need a name")

        return BillItem(
            tenant=bill.tenant,
            bill=bill,
            menu_item=menu_item,
            name=name,
            quantity=quantity,
            price=price,
        )

    @staticmethod
    def _clean_key(idempotency_key):
        if idempotency_key is None:
            return None
        idempotency_key = str(idempotency_key).strip()
        if not idempotency_key or len(idempotency_key) > 128:
            raise DomainValidationError("Idempotency key must be 1-128 characters")
        return idempotency_key

    @staticmethod
    def _keyed_edit(bill_id, tenant, idempotency_key, caller_key, operation_type, apply) -> Bill:
        """
        Run ``apply(bill)`` under the bill row lock. A replayed key returns
        the bill as it stands instead of applying the edit a second time;
        the lock serializes replays, so the ledger lookup sees any earlier
        commit.
        """
        idempotency_key = BillService._clean_key(idempotency_key)
        caller_key = caller_key or 'system'

        bill = BillService.get_bill(bill_id, tenant=tenant, for_update=True)
        if idempotency_key and IdempotencyService.lookup(bill.tenant, caller_key, idempotency_key):
            logger.info(f"Replayed {operation_type} key {caller_key}:{idempotency_key} on {bill.bill_number}")
            return bill
        if not bill.is_open:
            raise BillStateError(f"Bill {bill.bill_number} is closed")

        bill = apply(bill)
        if idempotency_key:
            IdempotencyService.record(
                tenant=bill.tenant,
                caller_key=caller_key,
                key=idempotency_key,
                operation_type=operation_type,
                entity_id=bill.id,
                result_data={'bill_number': bill.bill_number, 'total': bill.total},
            )
        return bill

    @staticmethod
    @transaction.atomic
    def add_item(bill_id, item, tenant=None, idempotency_key=None, caller_key=None) -> Bill:
        def apply(bill):
            BillService._build_item(bill, item).save()
            return BillService.recalculate(bill)

        return BillService._keyed_edit(
            bill_id, tenant, idempotency_key, caller_key, IdempotencyRecord.OperationType.ADD_BILL_ITEM, apply,
        )

    @staticmethod
    @transaction.atomic
    def remove_item(bill_id, item_id, tenant=None, idempotency_key=None, caller_key=None) -> Bill:
        def apply(bill):
            try:
                item = BillItem.all_objects.get(bill=bill, id=item_id)
            except (BillItem.DoesNotExist, ValueError, DjangoValidationError):
                raise NotFoundError("Bill item", item_id)
            item.delete()

            # A discount can never exceed what is left on the bill
            subtotal = BillCalculator(bill.tenant.currency).subtotal(
                BillItem.all_objects.filter(bill=bill).values_list('price', 'quantity')
            )
            if bill.discount > subtotal:
                logger.warning(
                    f"Clamping discount on {bill.bill_number} from {bill.discount} to {subtotal} after item removal"
                )
                bill.discount = subtotal
            return BillService.recalculate(bill)

        return BillService._keyed_edit(
            bill_id, tenant, idempotency_key, caller_key, IdempotencyRecord.OperationType.REMOVE_BILL_ITEM, apply,
        )

    @staticmethod
    @transaction.atomic
    def update_discount(bill_id, discount, tenant=None) -> Bill:
        bill = BillService.get_open_bill_for_update(bill_id, tenant)
        bill.discount = to_decimal(discount, 'discount')
        return BillService.recalculate(bill)

    @staticmethod
    @transaction.atomic
    def update_service_charge(bill_id, service_charge, tenant=None) -> Bill:
        bill = BillService.get_open_bill_for_update(bill_id, tenant)
        bill.service_charge = to_decimal(service_charge, 'service_charge')
        return BillService.recalculate(bill)

    @staticmethod
    def close(bill_id, tenant=None) -> Bill:
        """
        Settle and close a bill.

        PENDING payments are flipped to SUCCEEDED first, then the balance is
        checked. If it is still above epsilon the whole operation rolls back,
        including the flips. Closing an already closed bill returns it
        unchanged so replays are harmless.
        """
        from payments.services import SettlementService

        with serializable_atomic():
            bill = BillService.get_bill(bill_id, tenant=tenant, for_update=True)
            if not bill.is_open:
                logger.info(f"Bill {bill.bill_number} already closed; nothing to do")
                return bill

            now = timezone.now()
            pending = Payment.all_objects.select_for_update().filter(
                bill=bill, status=Payment.PaymentStatus.PENDING
            )
            for payment in pending:
                payment.mark_succeeded(at=now)

            BillService.recalculate(bill, save=False)
            if bill.balance > settings.BILLING_EPSILON:
                raise BillStateError(
                    f"Cannot close bill {bill.bill_number}: balance {bill.balance} outstanding"
                )

            bill.status = Bill.BillStatus.CLOSED
            bill.balance = Decimal("0.00")
            bill.closed_at = now
            bill.save()

            order_ids = (
                BillItem.all_objects.filter(bill=bill, order__isnull=False)
                .values_list('order_id', flat=True).distinct()
            )
            OrderService.mark_orders_paid(order_ids)

            SettlementService.aggregate_day(bill.tenant, timezone.localdate(now))

        logger.info(f"Closed bill {bill.bill_number} with total {bill.total}")
        return bill

    @staticmethod
    @transaction.atomic
    def delete(bill_id, tenant=None):
        """
        Delete a bill and its payments.

        Payments already folded into a settlement are detached first, in
        this same transaction, so the settlement never counts money that no
        longer exists.
        """
        from payments.services import SettlementService

        bill = BillService.get_bill(bill_id, tenant=tenant, for_update=True)
        detached = SettlementService.detach_bill(bill)

        bill_number = bill.bill_number
        bill.delete()
        logger.info(f"Deleted bill {bill_number} ({detached} settled payments detached)")
