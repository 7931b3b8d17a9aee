"""
Common Value Objects

Money is the only value object shared across apps; it normalises amounts
before they cross the payment gateway boundary.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from shared.domain.base import ValueObject

SUPPORTED_CURRENCIES = ('NGN', 'USD', 'GBP', 'EUR')
CENT = Decimal('0.01')


@dataclass(frozen=True)
class Money(ValueObject):
    """Non-negative amount in a supported currency, kept at two decimal places."""
    amount: Decimal
    currency: str = 'NGN'

    def __post_init__(self):
        amount = Decimal(str(self.amount)).quantize(CENT, rounding=ROUND_HALF_UP)
        object.__setattr__(self, 'amount', amount)
        if amount < 0:
            raise ValueError("Amount cannot be negative")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    def to_minor_units(self) -> int:
        """Amount in kobo/cents, as payment gateways expect."""
        return int((self.amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"
