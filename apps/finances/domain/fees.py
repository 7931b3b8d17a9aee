"""Fee arithmetic for bookings.

All amounts are ``Decimal`` and rounded to two places with ROUND_HALF_UP.
The guest pays room fee, cleaning fee, service fee and the refundable
security deposit. Cleaning fee goes to the realtor and service fee to the
platform at payment time; room fee and deposit stay in escrow.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")


def quantize_money(value) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    nightly_rate: Decimal
    nights: int
    room_fee: Decimal
    cleaning_fee: Decimal
    security_deposit: Decimal
    service_fee: Decimal
    platform_fee: Decimal
    subtotal: Decimal
    total: Decimal
    service_fee_rate: Decimal
    platform_fee_rate: Decimal

    @property
    def cleaning_fee_to_realtor(self) -> Decimal:
        return self.cleaning_fee

    @property
    def service_fee_to_platform(self) -> Decimal:
        return self.service_fee

    @property
    def room_fee_in_escrow(self) -> Decimal:
        return self.room_fee

    @property
    def deposit_in_escrow(self) -> Decimal:
        return self.security_deposit

    @property
    def room_fee_split_realtor(self) -> Decimal:
        return self.room_fee - self.platform_fee

    @property
    def room_fee_split_platform(self) -> Decimal:
        return self.platform_fee

    def as_dict(self) -> dict:
        return {
            "nightly_rate": str(self.nightly_rate),
            "nights": self.nights,
            "room_fee": str(self.room_fee),
            "cleaning_fee": str(self.cleaning_fee),
            "security_deposit": str(self.security_deposit),
            "service_fee": str(self.service_fee),
            "platform_fee": str(self.platform_fee),
            "subtotal": str(self.subtotal),
            "total": str(self.total),
            "service_fee_rate": str(self.service_fee_rate),
            "platform_fee_rate": str(self.platform_fee_rate),
            "realtor_payout": str(self.room_fee_split_realtor + self.cleaning_fee),
        }


def calculate_fee_breakdown(
    nightly_rate,
    nights: int,
    cleaning_fee=Decimal("0"),
    security_deposit=Decimal("0"),
    *,
    service_fee_rate,
    platform_fee_rate,
) -> FeeBreakdown:
    """
    Compute every amount charged for a stay.

    Raises ``ValueError`` for fewer than one night or negative amounts.
    """
    if nights < 1:
        raise ValueError("A booking must cover at least one night.")

    nightly_rate = quantize_money(nightly_rate)
    cleaning_fee = quantize_money(cleaning_fee)
    security_deposit = quantize_money(security_deposit)
    service_fee_rate = Decimal(str(service_fee_rate))
    platform_fee_rate = Decimal(str(platform_fee_rate))

    for label, value in (
        ("nightly_rate", nightly_rate),
        ("cleaning_fee", cleaning_fee),
        ("security_deposit", security_deposit),
        ("service_fee_rate", service_fee_rate),
        ("platform_fee_rate", platform_fee_rate),
    ):
        if value < 0:
            raise ValueError(f"{label} cannot be negative.")

    room_fee = quantize_money(nightly_rate * nights)
    subtotal = room_fee + cleaning_fee
    service_fee = quantize_money(subtotal * service_fee_rate)
    platform_fee = quantize_money(room_fee * platform_fee_rate)
    total = subtotal + service_fee + security_deposit

    return FeeBreakdown(
        nightly_rate=nightly_rate,
        nights=nights,
        room_fee=room_fee,
        cleaning_fee=cleaning_fee,
        security_deposit=security_deposit,
        service_fee=service_fee,
        platform_fee=platform_fee,
        subtotal=subtotal,
        total=total,
        service_fee_rate=service_fee_rate,
        platform_fee_rate=platform_fee_rate,
    )


def split_room_fee(room_fee, commission_rate) -> tuple[Decimal, Decimal]:
    """Return ``(realtor_amount, platform_amount)``; the parts always sum to ``room_fee``."""
    room_fee = quantize_money(room_fee)
    platform_amount = quantize_money(room_fee * Decimal(str(commission_rate)))
    return room_fee - platform_amount, platform_amount
