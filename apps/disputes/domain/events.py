"""
Dispute Domain Events

Published after the dispute change has been committed.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from shared.domain.base import DomainEvent


@dataclass
class DisputeOpened(DomainEvent):
    """
    Event: Guest or realtor opened a dispute; escrow for it is frozen

    Triggers:
    - Ask the counterparty to accept or escalate
    """
    dispute_id: int
    booking_id: int
    subject: str
    opened_by_id: int
    counterparty_id: int


@dataclass
class DisputeEscalated(DomainEvent):
    """
    Event: Counterparty rejected the claim; an admin must decide

    Triggers:
    - Alert platform admins with the decision deadline
    """
    dispute_id: int
    booking_id: int
    admin_deadline: datetime


@dataclass
class DisputeResolved(DomainEvent):
    """
    Event: Outcome executed against escrow

    Triggers:
    - Tell guest and realtor what was refunded or paid
    """
    dispute_id: int
    booking_id: int
    guest_id: int
    realtor_id: int
    outcome: str
    refund_amount: Decimal
    realtor_amount: Decimal
