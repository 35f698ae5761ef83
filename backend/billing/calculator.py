"""
Bill arithmetic.

    subtotal = sum(price * quantity)
    tax      = (subtotal - discount) * tax_rate / 100, split into cgst + sgst
    total    = subtotal - discount + service_charge + tax
    balance  = total - paid_amount

Every figure is quantized to the currency before it is combined, so the
identities above hold exactly on the stored values.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Tuple

from core_backend.exceptions import DomainValidationError
from payments.money import percentage_of, quantize, split_in_two

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    discount: Decimal
    service_charge: Decimal
    tax: Decimal
    cgst: Decimal
    sgst: Decimal
    total: Decimal
    paid_amount: Decimal
    balance: Decimal

    def as_dict(self):
        return {
            'subtotal': self.subtotal,
            'discount': self.discount,
            'service_charge': self.service_charge,
            'tax': self.tax,
            'cgst': self.cgst,
            'sgst': self.sgst,
            'total': self.total,
            'paid_amount': self.paid_amount,
            'balance': self.balance,
        }


class BillCalculator:
    """Pure bill computation; no database access."""

    def __init__(self, currency: str = "INR"):
        self.currency = currency

    def subtotal(self, lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
        """``lines`` is an iterable of (unit price, quantity)."""
        return quantize(
            self.currency,
            sum((Decimal(price) * quantity for price, quantity in lines), ZERO),
        )

    def compute(self, lines, discount=ZERO, service_charge=ZERO, tax_rate=Decimal("18"),
                paid_amount=ZERO) -> BillTotals:
        subtotal = self.subtotal(lines)
        discount = quantize(self.currency, discount)
        service_charge = quantize(self.currency, service_charge)
        paid_amount = quantize(self.currency, paid_amount)
        tax_rate = Decimal(str(tax_rate))

        self.validate_adjustments(subtotal, discount, service_charge, tax_rate)

        tax = percentage_of(self.currency, subtotal - discount, tax_rate)
        cgst, sgst = split_in_two(self.currency, tax)
        total = subtotal - discount + service_charge + tax
        return BillTotals(
            subtotal=subtotal,
            discount=discount,
            service_charge=service_charge,
            tax=tax,
            cgst=cgst,
            sgst=sgst,
            total=total,
            paid_amount=paid_amount,
            balance=total - paid_amount,
        )

    @staticmethod
    def validate_adjustments(subtotal, discount, service_charge, tax_rate):
        if discount < 0:
            raise DomainValidationError("Discount cannot be negative")
        if discount > subtotal:
            raise DomainValidationError(
                f"Discount {discount} exceeds bill subtotal {subtotal}"
            )
        if service_charge < 0:
            raise DomainValidationError("Service charge cannot be negative")
        if tax_rate < 0 or tax_rate > 100:
            raise DomainValidationError("Tax rate must be between 0 and 100")
