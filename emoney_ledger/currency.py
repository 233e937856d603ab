"""
Money Module

Fixed-point money representation for the ledger. Balances are Decimal values
quantized to two places; float is never used for balance arithmetic.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Union
import re

from .errors import InvalidAmount

# Set global decimal context for financial precision
getcontext().prec = 28

PRECISION = 2
QUANTUM = Decimal('0.1') ** PRECISION

AmountLike = Union['Money', Decimal, int, str]


@dataclass(frozen=True)
class Money:
    """
    Immutable money amount, always rounded to PRECISION decimal places.
    The ledger is single-currency, so no currency code is carried.
    """
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            # str() first so a float 0.1 becomes Decimal('0.1'), not its binary expansion
            try:
                object.__setattr__(self, 'amount', Decimal(str(self.amount)))
            except InvalidOperation:
                raise InvalidAmount(f"Cannot convert {self.amount!r} to an amount")

        if not self.amount.is_finite():
            raise InvalidAmount(f"Amount must be finite, got {self.amount}")

        try:
            rounded = self.amount.quantize(QUANTUM, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise InvalidAmount(f"Amount {self.amount} exceeds supported precision")
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal('0'))

    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + other.amount)

    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - other.amount)

    def __neg__(self) -> 'Money':
        return Money(-self.amount)

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        return f"{self.amount:,.{PRECISION}f}"

    def __str__(self) -> str:
        return str(self.amount)


def decimal_from_string(value: str) -> Decimal:
    """
    Convert user-entered text to Decimal, handling common formats

    Args:
        value: String representation of number, e.g. "1,250.50" or "12,5"

    Returns:
        Decimal value

    Raises:
        InvalidAmount: If string cannot be converted to a valid Decimal
    """
    if not value or not isinstance(value, str):
        raise InvalidAmount("Amount must be a non-empty string")

    # Remove currency symbols and whitespace
    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if ',' in clean_value and '.' in clean_value:
        # Both comma and dot - assume comma is thousands separator
        clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:  # Decimal separator
            clean_value = clean_value.replace(',', '.')
        else:  # Thousands separator
            clean_value = clean_value.replace(',', '')

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise InvalidAmount(f"Cannot convert '{value}' to an amount")


def to_money(value: AmountLike) -> Money:
    """Coerce Money, Decimal, int or str input to Money"""
    if isinstance(value, Money):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(f"Unsupported amount type: {type(value).__name__}")
    if isinstance(value, str):
        return Money(decimal_from_string(value))
    if isinstance(value, (Decimal, int)):
        return Money(Decimal(value))
    raise InvalidAmount(f"Unsupported amount type: {type(value).__name__}")


def parse_positive_amount(value: AmountLike) -> Money:
    """
    Parse an amount for a payment, transfer or top-up.

    Rounding happens before the sign check, so "0.001" is rejected.

    Raises:
        InvalidAmount: If the value is unparsable or not strictly positive
    """
    money = to_money(value)
    if not money.is_positive():
        raise InvalidAmount(f"Amount must be positive, got {money.amount}")
    return money
