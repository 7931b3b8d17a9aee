"""
Booking and payment state machine.

Allowed transitions are declared in ``BOOKING_TRANSITIONS`` and
``PAYMENT_TRANSITIONS``. The ``validate_*`` functions are pure; the
``transition_*`` functions validate and then apply a compare-and-set
update (``UPDATE ... WHERE status = <expected>``) so two writers racing on
the same row cannot both succeed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking
from apps.finances.models import Payment

logger = logging.getLogger(__name__)

BookingStatus = Booking.Status
PaymentStatus = Payment.Status

BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.ACTIVE, BookingStatus.CANCELLED}),
    BookingStatus.ACTIVE: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.DISPUTED}
    ),
    BookingStatus.DISPUTED: frozenset(
        {BookingStatus.ACTIVE, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.ESCROW_HELD, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.ESCROW_HELD: frozenset(
        {PaymentStatus.PARTIALLY_RELEASED, PaymentStatus.REFUNDED, PaymentStatus.DISPUTED}
    ),
    PaymentStatus.PARTIALLY_RELEASED: frozenset({PaymentStatus.SETTLED, PaymentStatus.DISPUTED}),
    PaymentStatus.DISPUTED: frozenset(
        {
            PaymentStatus.ESCROW_HELD,
            PaymentStatus.PARTIALLY_RELEASED,
            PaymentStatus.SETTLED,
            PaymentStatus.REFUNDED,
        }
    ),
    PaymentStatus.SETTLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

# Payment states in which the guest's money has been received
HELD_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.ESCROW_HELD, PaymentStatus.PARTIALLY_RELEASED, PaymentStatus.SETTLED}
)


class BookingLifecycleError(Exception):
    """Base class for lifecycle rule violations."""


class InvalidStatusTransitionError(BookingLifecycleError):
    def __init__(self, current: str, target: str, reason: str = ""):
        self.current = current
        self.target = target
        self.reason = reason
        message = f"Cannot move from {current} to {target}"
        super().__init__(f"{message}: {reason}" if reason else message)


class BookingStatusConflictError(BookingLifecycleError):
    """Another writer changed the row between read and update."""

    def __init__(self, object_id: Any, expected: str, actual: str | None):
        self.object_id = object_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Status of {object_id} changed concurrently: expected {expected}, found {actual}"
        )


class CheckInError(BookingLifecycleError):
    pass


class CancellationNotAllowedError(BookingLifecycleError):
    pass


def lifecycle_settings() -> dict:
    defaults = {
        "HOLD_MINUTES": 15,
        "GUEST_DISPUTE_WINDOW_HOURS": 1,
        "REALTOR_DISPUTE_WINDOW_HOURS": 2,
        "AUTO_CHECK_IN_GRACE_MINUTES": 30,
        "ADMIN_REVIEW_HOURS": 48,
    }
    defaults.update(getattr(settings, "BOOKING_LIFECYCLE", {}) or {})
    return defaults


def validate_booking_transition(
    current: str,
    target: str,
    *,
    payment_status: str | None = None,
    check_in_at: datetime | None = None,
    now: datetime | None = None,
) -> None:
    if target not in BOOKING_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransitionError(current, target, "transition not allowed")

    if target == BookingStatus.ACTIVE and payment_status not in HELD_PAYMENT_STATUSES:
        raise InvalidStatusTransitionError(
            current, target, f"payment is {payment_status or 'missing'}, funds not held"
        )

    if target == BookingStatus.COMPLETED:
        now = now or timezone.now()
        if check_in_at is None or check_in_at > now:
            raise InvalidStatusTransitionError(current, target, "check-in time has not been reached")


def validate_payment_transition(current: str, target: str) -> None:
    if target not in PAYMENT_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransitionError(current, target, "payment transition not allowed")


def _current_payment_status(booking: Booking) -> str | None:
    return Payment.objects.filter(booking_id=booking.pk).values_list("status", flat=True).first()


def transition_booking_status(
    booking: Booking,
    target: str,
    *,
    reason: str = "",
    now: datetime | None = None,
    extra_fields: dict | None = None,
) -> Booking:
    """Validate and apply ``booking.status -> target``; raises on conflict."""
    now = now or timezone.now()
    expected = booking.status
    validate_booking_transition(
        expected,
        target,
        payment_status=_current_payment_status(booking),
        check_in_at=booking.check_in_at,
        now=now,
    )

    fields = dict(extra_fields or {})
    updated = Booking.objects.filter(pk=booking.pk, status=expected).update(
        status=target, updated_at=now, **fields
    )
    if not updated:
        actual = Booking.objects.filter(pk=booking.pk).values_list("status", flat=True).first()
        raise BookingStatusConflictError(booking.pk, expected, actual)

    booking.status = target
    booking.updated_at = now
    for name, value in fields.items():
        setattr(booking, name, value)
    logger.info(f"Booking {booking.pk}: {expected} -> {target} {reason}".rstrip())
    return booking


def transition_payment_status(payment: Payment, target: str, **extra_fields: Any) -> Payment:
    expected = payment.status
    validate_payment_transition(expected, target)

    now = timezone.now()
    updated = Payment.objects.filter(pk=payment.pk, status=expected).update(
        status=target, updated_at=now, **extra_fields
    )
    if not updated:
        actual = Payment.objects.filter(pk=payment.pk).values_list("status", flat=True).first()
        raise BookingStatusConflictError(f"payment {payment.pk}", expected, actual)

    payment.status = target
    payment.updated_at = now
    for name, value in extra_fields.items():
        setattr(payment, name, value)
    logger.info(f"Payment {payment.reference}: {expected} -> {target}")
    return payment


def batch_update_booking_status(ids: Iterable[int], target: str, reason: str = "") -> dict:
    """Apply one transition to many bookings; each booking succeeds or fails on its own."""
    result: dict[str, list] = {"successful": [], "failed": []}
    for booking_id in ids:
        try:
            with transaction.atomic():
                booking = Booking.objects.select_related("property").get(pk=booking_id)
                transition_booking_status(booking, target, reason=reason)
            result["successful"].append(booking_id)
        except Booking.DoesNotExist:
            result["failed"].append({"id": booking_id, "error": "Booking not found."})
        except BookingLifecycleError as exc:
            result["failed"].append({"id": booking_id, "error": str(exc)})
    return result


def can_cancel_booking(booking: Booking, now: datetime | None = None) -> tuple[bool, str]:
    now = now or timezone.now()
    if booking.status not in (BookingStatus.PENDING, BookingStatus.ACTIVE):
        return False, f"Bookings in status '{booking.status}' cannot be cancelled."
    if booking.stay_status != Booking.StayStatus.NOT_CHECKED_IN:
        return False, "The guest has already checked in."
    if now >= booking.check_in_at:
        return False, "The check-in time has passed."
    return True, ""
