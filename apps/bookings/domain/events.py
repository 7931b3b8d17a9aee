"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from shared.domain.base import DomainEvent


# ===== Booking Events =====

@dataclass
class BookingActivated(DomainEvent):
    """
    Event: Payment cleared and funds are held (PENDING -> ACTIVE)

    Triggers:
    - Send booking confirmation to guest
    - Notify property owner of the new booking
    """
    booking_id: int
    property_id: int
    guest_id: int
    realtor_id: int
    amount: Decimal


@dataclass
class BookingCancelled(DomainEvent):
    """
    Event: Booking cancelled by guest, realtor or admin

    Triggers:
    - Notify both parties, including the refunded amount
    """
    booking_id: int
    guest_id: int
    realtor_id: int
    source: str
    refund_tier: str
    refund_amount: Decimal


@dataclass
class BookingExpired(DomainEvent):
    """
    Event: Payment hold ran out before the guest paid

    Triggers:
    - Tell the guest the dates were released
    """
    booking_id: int
    guest_id: int


# ===== Stay Events =====

@dataclass
class CheckInConfirmed(DomainEvent):
    """
    Event: Stay started; the guest dispute window is open

    Triggers:
    - Tell the guest how long they can report a problem
    - Notify the realtor
    """
    booking_id: int
    guest_id: int
    realtor_id: int
    confirmation_type: str
    dispute_window_closes_at: datetime


@dataclass
class GuestCheckedOut(DomainEvent):
    """
    Event: Guest left; the realtor dispute window is open

    Triggers:
    - Tell the realtor how long they can claim against the deposit
    """
    booking_id: int
    guest_id: int
    realtor_id: int
    realtor_dispute_closes_at: datetime
