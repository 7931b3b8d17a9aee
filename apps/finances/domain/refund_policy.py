"""Cancellation refund tiers.

The tier is picked from the hours left until check-in. Tier shares apply
to the room fee only: cleaning and service fees were released when the
payment cleared and are kept, and the security deposit is always returned.
The policy itself is loaded and validated in ``apps.finances.config``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from ..config import load_cancellation_policy
from .fees import quantize_money


class RefundTier(models.TextChoices):
    EARLY = "early", _("Early")
    MEDIUM = "medium", _("Medium")
    LATE = "late", _("Late")
    NONE = "none", _("None")
    FULL = "full", _("Full refund")


@dataclass(frozen=True)
class CancellationRefund:
    tier: str
    customer_room_refund: Decimal
    realtor_share: Decimal
    platform_share: Decimal
    deposit_refund: Decimal
    cleaning_fee_refund: Decimal
    service_fee_refund: Decimal

    @property
    def total_refund(self) -> Decimal:
        return (
            self.customer_room_refund
            + self.deposit_refund
            + self.cleaning_fee_refund
            + self.service_fee_refund
        )

    def as_dict(self) -> dict:
        return {
            "tier": self.tier,
            "customer_room_refund": str(self.customer_room_refund),
            "realtor_share": str(self.realtor_share),
            "platform_share": str(self.platform_share),
            "deposit_refund": str(self.deposit_refund),
            "cleaning_fee_refund": str(self.cleaning_fee_refund),
            "service_fee_refund": str(self.service_fee_refund),
            "total_refund": str(self.total_refund),
        }


def get_cancellation_policy() -> dict:
    return load_cancellation_policy()


def determine_refund_tier(hours_until_check_in, *, paid: bool = True) -> str:
    if not paid:
        return RefundTier.NONE
    policy = get_cancellation_policy()
    hours = Decimal(str(hours_until_check_in))
    if hours >= Decimal(policy["EARLY_HOURS"]):
        return RefundTier.EARLY
    if hours >= Decimal(policy["MEDIUM_HOURS"]):
        return RefundTier.MEDIUM
    return RefundTier.LATE


def calculate_cancellation_refund(
    tier: str,
    room_fee,
    cleaning_fee,
    service_fee,
    security_deposit,
) -> CancellationRefund:
    """
    Amounts owed to each party when a paid booking is cancelled.

    ``RefundTier.FULL`` returns everything the guest paid; the other tiers
    split the room fee by policy shares. The realtor part absorbs rounding so
    the three shares always add up to the room fee.
    """
    room_fee = quantize_money(room_fee)
    cleaning_fee = quantize_money(cleaning_fee)
    service_fee = quantize_money(service_fee)
    security_deposit = quantize_money(security_deposit)
    zero = Decimal("0.00")

    if tier == RefundTier.NONE:
        return CancellationRefund(tier, zero, zero, zero, zero, zero, zero)

    if tier == RefundTier.FULL:
        return CancellationRefund(
            tier,
            customer_room_refund=room_fee,
            realtor_share=zero,
            platform_share=zero,
            deposit_refund=security_deposit,
            cleaning_fee_refund=cleaning_fee,
            service_fee_refund=service_fee,
        )

    shares = get_cancellation_policy()["TIERS"][str(tier)]
    customer = quantize_money(room_fee * Decimal(str(shares["customer"])))
    platform = quantize_money(room_fee * Decimal(str(shares["platform"])))
    customer = min(customer, room_fee)
    platform = min(platform, room_fee - customer)
    realtor = room_fee - customer - platform

    return CancellationRefund(
        tier,
        customer_room_refund=customer,
        realtor_share=realtor,
        platform_share=platform,
        deposit_refund=security_deposit,
        cleaning_fee_refund=zero,
        service_fee_refund=zero,
    )
