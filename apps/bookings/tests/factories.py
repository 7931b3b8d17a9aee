"""Builders for the objects most tests need: users, listings and bookings in a given state."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from itertools import count

from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking
from apps.bookings.services import confirm_check_in, create_booking
from apps.finances.models import Payment
from apps.finances.services import finalize_payment, initialize_payment
from apps.properties.models import Property
from apps.users.models import RealtorProfile, User

PASSWORD = "StrongPass123"

_sequence = count(1)


def make_guest(email: str | None = None, **extra) -> User:
    n = next(_sequence)
    return User.objects.create_user(
        email=email or f"guest{n}@example.com",
        password=PASSWORD,
        role=User.RoleChoices.GUEST,
        **extra,
    )


def make_realtor(
    email: str | None = None,
    *,
    approved: bool = True,
    recipient_code: str = "RCP_test",
    **extra,
) -> User:
    n = next(_sequence)
    user = User.objects.create_user(
        email=email or f"realtor{n}@example.com",
        password=PASSWORD,
        role=User.RoleChoices.REALTOR,
        **extra,
    )
    RealtorProfile.objects.create(
        user=user,
        business_name=f"Lagos Stays {n}",
        status=RealtorProfile.Status.APPROVED if approved else RealtorProfile.Status.PENDING,
        payout_recipient_code=recipient_code,
    )
    return user


def make_admin(email: str | None = None) -> User:
    n = next(_sequence)
    return User.objects.create_user(
        email=email or f"admin{n}@example.com",
        password=PASSWORD,
        role=User.RoleChoices.ADMIN,
    )


def make_property(owner: User, **overrides) -> Property:
    fields = {
        "title": "Lekki Waterfront Apartment",
        "description": "Two bedroom apartment with a view of the lagoon.",
        "address": "12 Admiralty Way",
        "city": "Lagos",
        "state": "Lagos",
        "price_per_night": Decimal("10000.00"),
        "cleaning_fee": Decimal("2000.00"),
        "security_deposit": Decimal("5000.00"),
        "max_guests": 4,
        "status": Property.Status.ACTIVE,
    }
    fields.update(overrides)
    return Property.objects.create(owner=owner, **fields)


def make_booking(
    guest: User,
    property_obj: Property,
    *,
    days_ahead: int = 10,
    nights: int = 2,
    guests_count: int = 1,
) -> Booking:
    check_in = timezone.localdate() + timedelta(days=days_ahead)
    return create_booking(
        guest,
        property_obj,
        check_in=check_in,
        check_out=check_in + timedelta(days=nights),
        guests_count=guests_count,
    )


def pay_booking(booking: Booking) -> Payment:
    """Run the booking through checkout so its money sits in escrow."""
    payment = initialize_payment(booking)
    finalize_payment(payment)
    booking.refresh_from_db()
    payment.refresh_from_db()
    return payment


def check_in_booking(booking: Booking, now: datetime | None = None) -> Booking:
    return confirm_check_in(
        booking,
        confirmation_type=Booking.CheckInConfirmation.GUEST_CONFIRMED,
        now=now or booking.check_in_at,
    )
