"""Domain events raised by realtor account oversight."""

from dataclasses import dataclass

from shared.domain.base import DomainEvent


@dataclass
class RealtorStatusChanged(DomainEvent):
    """
    Event: An admin approved, rejected, suspended or reinstated a realtor

    Triggers:
    - Email and in-app notification to the realtor
    """
    realtor_id: int
    status: str
    reason: str = ""
