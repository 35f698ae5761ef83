"""
Monetary precision helpers for bills, payments and revenue share.

Key Principles:
1. NEVER use float for money
2. Always quantize Decimals BEFORE converting to minor units
3. Use ROUND_HALF_EVEN (banker's rounding) to prevent systematic bias
4. Split amounts so the parts always add back to the whole
"""

from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from typing import Tuple, Union

# Set high precision for intermediate calculations
getcontext().prec = 28

Number = Union[Decimal, str, int, float]

# Currency minor unit exponents (how many decimal places)
CURRENCY_EXPONENT = {
    # 2-decimal currencies (most common)
    "INR": 2,  # Indian Rupee (paise)
    "USD": 2,  # United States Dollar (cents)
    "EUR": 2,  # Euro (cents)
    "GBP": 2,  # British Pound (pence)
    "AED": 2,  # UAE Dirham (fils)
    "SGD": 2,  # Singapore Dollar (cents)

    # Zero-decimal currencies
    "JPY": 0,  # Japanese Yen (no subunit)
    "KRW": 0,  # South Korean Won (no subunit)

    # 3-decimal currencies
    "KWD": 3,  # Kuwaiti Dinar (fils)
    "BHD": 3,  # Bahraini Dinar (fils)
    "OMR": 3,  # Omani Rial (baisa)
}


def currency_exponent(currency: str) -> int:
    """
    Get the number of decimal places for a currency.

    Examples:
        >>> currency_exponent("INR")
        2
        >>> currency_exponent("JPY")
        0
    """
    return CURRENCY_EXPONENT.get(currency.upper(), 2)


def quantize_decimal(currency: str) -> Decimal:
    """Smallest unit for a currency, e.g. Decimal('0.01') for INR."""
    return Decimal(10) ** -currency_exponent(currency)


def quantize(currency: str, amount: Number) -> Decimal:
    """
    Round to currency decimals using banker's rounding (ROUND_HALF_EVEN).

    Examples:
        >>> quantize("INR", "10.127")
        Decimal('10.13')
        >>> quantize("INR", "10.125")
        Decimal('10.12')  # Banker's rounding
    """
    if isinstance(amount, float):
        # Convert float to string first to avoid precision issues
        amount = str(amount)

    amount_decimal = Decimal(amount)
    return amount_decimal.quantize(quantize_decimal(currency), rounding=ROUND_HALF_EVEN)


def to_minor(currency: str, amount: Number) -> int:
    """
    Convert to minor units (e.g., paise) after quantization.

    Examples:
        >>> to_minor("INR", "10.127")
        1013
        >>> to_minor("JPY", "1234.56")
        1235
    """
    quantized = quantize(currency, amount)
    exponent = currency_exponent(currency)
    return int((quantized * (10 ** exponent)).to_integral_value())


def from_minor(currency: str, minor: int) -> Decimal:
    """
    Convert from minor units to Decimal.

    Examples:
        >>> from_minor("INR", 1013)
        Decimal('10.13')
    """
    exponent = currency_exponent(currency)
    return quantize(currency, Decimal(minor) / (10 ** exponent))


def percentage_of(currency: str, amount: Number, percentage: Number) -> Decimal:
    """
    ``amount * percentage / 100`` rounded to the currency.

    Examples:
        >>> percentage_of("INR", "250.00", "18")
        Decimal('45.00')
    """
    result = Decimal(str(amount)) * Decimal(str(percentage)) / Decimal('100')
    return quantize(currency, result)


def split_in_two(currency: str, amount: Number) -> Tuple[Decimal, Decimal]:
    """
    Split an amount into two halves that add back exactly.

    When the amount has an odd number of minor units the first half gets the
    extra unit.

    Examples:
        >>> split_in_two("INR", "45.00")
        (Decimal('22.50'), Decimal('22.50'))
        >>> split_in_two("INR", "0.05")
        (Decimal('0.03'), Decimal('0.02'))
    """
    total_minor = to_minor(currency, amount)
    second = total_minor // 2
    first = total_minor - second
    return from_minor(currency, first), from_minor(currency, second)


def apply_rate_minor(amount_minor: int, rate: Number) -> int:
    """
    Multiply an integer minor-unit amount by a fractional rate (0..1),
    rounding half-even to a whole minor unit.

    Examples:
        >>> apply_rate_minor(99900, "0.2")
        19980
        >>> apply_rate_minor(5, "0.5")
        2
    """
    result = Decimal(int(amount_minor)) * Decimal(str(rate))
    return int(result.to_integral_value(rounding=ROUND_HALF_EVEN))
