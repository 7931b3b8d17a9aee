"""
Finance Domain Events

Published after the transaction that moved the money commits.
"""

from dataclasses import dataclass
from decimal import Decimal

from shared.domain.base import DomainEvent


# ===== Escrow Events =====

@dataclass
class RoomFeeReleased(DomainEvent):
    """
    Event: Room fee left escrow after the guest dispute window closed

    Triggers:
    - Notify realtor of the payout credited to their wallet
    """
    booking_id: int
    realtor_id: int
    realtor_amount: Decimal
    platform_amount: Decimal


@dataclass
class SecurityDepositReturned(DomainEvent):
    """
    Event: Security deposit refunded to the guest, booking completed

    Triggers:
    - Notify guest of the refund
    - Invite guest to leave a review
    """
    booking_id: int
    guest_id: int
    amount: Decimal


# ===== Withdrawal Events =====

@dataclass
class WithdrawalCompleted(DomainEvent):
    withdrawal_id: int
    realtor_id: int
    net_amount: Decimal


@dataclass
class WithdrawalFailed(DomainEvent):
    withdrawal_id: int
    realtor_id: int
    reason: str


# ===== Refund Request Events =====

@dataclass
class RefundRequested(DomainEvent):
    """
    Event: Guest asked for money back on a paid-out booking

    Triggers:
    - Notify realtor to approve or reject
    """
    refund_request_id: int
    booking_id: int
    realtor_id: int
    amount: Decimal


@dataclass
class RefundRequestDecided(DomainEvent):
    refund_request_id: int
    booking_id: int
    guest_id: int
    approved: bool
    reason: str = ""


@dataclass
class RefundRequestCompleted(DomainEvent):
    """
    Event: Admin sent the refund through the gateway

    Triggers:
    - Notify guest of the refund
    - Notify realtor of the wallet debit
    """
    refund_request_id: int
    booking_id: int
    guest_id: int
    realtor_id: int
    amount: Decimal
