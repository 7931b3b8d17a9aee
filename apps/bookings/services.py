"""Domain services for booking workflows."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.finances.config import get_platform_fee_rate, get_service_fee_rate
from apps.finances.domain.fees import FeeBreakdown, calculate_fee_breakdown
from apps.finances.domain.refund_policy import RefundTier
from apps.finances.models import Payment
from apps.finances.refunds import execute_cancellation_refund, preview_cancellation_refund
from apps.finances.services import mark_payment_failed
from apps.properties.models import Property
from apps.properties.services import is_range_available, release_booking_dates, reserve_booking_dates
from shared.application.uow import DjangoUnitOfWork

from .domain.events import BookingCancelled, BookingExpired, CheckInConfirmed, GuestCheckedOut
from .domain.lifecycle import (
    HELD_PAYMENT_STATUSES,
    CancellationNotAllowedError,
    CheckInError,
    can_cancel_booking,
    lifecycle_settings,
    transition_booking_status,
)
from .models import Booking

logger = logging.getLogger(__name__)


class BookingConflictError(Exception):
    """Raised when a property is busy for requested dates."""


class BookingValidationError(Exception):
    """Requested stay breaks one of the property's booking rules."""


def validate_stay(property_obj: Property, check_in: date, check_out: date, guests_count: int = 1) -> int:
    """Check the stay against the property's rules and return the number of nights."""
    if check_in >= check_out:
        raise BookingValidationError("Check-out must be after check-in.")
    if check_in < timezone.localdate():
        raise BookingValidationError("Check-in cannot be in the past.")
    if property_obj.status != Property.Status.ACTIVE:
        raise BookingValidationError("This property is not available for booking.")
    if guests_count < 1 or guests_count > property_obj.max_guests:
        raise BookingValidationError(f"This property accepts 1 to {property_obj.max_guests} guests.")
    nights = (check_out - check_in).days
    if nights < property_obj.min_nights:
        raise BookingValidationError(f"The minimum stay is {property_obj.min_nights} nights.")
    if nights > property_obj.max_nights:
        raise BookingValidationError(f"The maximum stay is {property_obj.max_nights} nights.")
    return nights


def quote_booking(property_obj: Property, check_in: date, check_out: date, guests_count: int = 1) -> FeeBreakdown:
    nights = validate_stay(property_obj, check_in, check_out, guests_count)
    return calculate_fee_breakdown(
        property_obj.price_per_night,
        nights,
        property_obj.cleaning_fee,
        property_obj.security_deposit,
        service_fee_rate=get_service_fee_rate(),
        platform_fee_rate=get_platform_fee_rate(),
    )


def create_booking(
    guest,
    property_obj: Property,
    *,
    check_in: date,
    check_out: date,
    guests_count: int = 1,
    special_requests: str = "",
    now: datetime | None = None,
) -> Booking:
    """
    Create a PENDING booking with its fee snapshot and reserve the dates.

    The property row is locked for the availability check so two guests
    cannot book the same nights.
    """
    now = now or timezone.now()
    fees = quote_booking(property_obj, check_in, check_out, guests_count)
    hold_minutes = lifecycle_settings()["HOLD_MINUTES"]

    with transaction.atomic():
        Property.objects.select_for_update().filter(pk=property_obj.pk).first()
        if not is_range_available(property_obj, check_in, check_out):
            raise BookingConflictError("The property is not available for the selected dates.")

        booking = Booking.objects.create(
            guest=guest,
            property=property_obj,
            check_in=check_in,
            check_out=check_out,
            guests_count=guests_count,
            special_requests=special_requests,
            nightly_rate=fees.nightly_rate,
            total_nights=fees.nights,
            room_fee=fees.room_fee,
            cleaning_fee=fees.cleaning_fee,
            security_deposit=fees.security_deposit,
            service_fee=fees.service_fee,
            platform_fee=fees.platform_fee,
            total_price=fees.total,
            currency=property_obj.currency,
            expires_at=now + timedelta(minutes=hold_minutes),
        )
        reserve_booking_dates(booking)

    logger.info(
        f"Booking {booking.booking_code} created by guest {guest.pk} for property {property_obj.pk} "
        f"({check_in} - {check_out}, total {fees.total})"
    )
    return booking


def cancellation_source_for(booking: Booking, user) -> str | None:
    """Who is cancelling, or None when the user has no say over the booking."""
    if hasattr(user, "is_platform_admin") and user.is_platform_admin():
        return Booking.CancellationSource.ADMIN
    if booking.property.owner_id == user.pk:
        return Booking.CancellationSource.REALTOR
    if booking.guest_id == user.pk:
        return Booking.CancellationSource.GUEST
    return None


def cancel_booking(
    booking: Booking,
    *,
    source: str,
    reason: str = "",
    triggered_by=None,
    now: datetime | None = None,
) -> dict:
    """
    Cancel a booking that has not started.

    An unpaid booking is cancelled and its pending payment failed. A paid
    booking goes through the cancellation refund, which refunds the guest
    according to the tier and pays the kept shares out.

    Returns ``{"booking": ..., "refund": CancellationRefund | None}``.
    """
    now = now or timezone.now()
    allowed, why = can_cancel_booking(booking, now)
    if not allowed:
        raise CancellationNotAllowedError(why)

    if booking.status == Booking.Status.ACTIVE:
        refund = execute_cancellation_refund(
            booking,
            source=source,
            reason=reason,
            triggered_by=triggered_by,
            now=now,
        )
        booking.refresh_from_db()
        return {"booking": booking, "refund": refund}

    with DjangoUnitOfWork() as uow:
        transition_booking_status(
            booking,
            Booking.Status.CANCELLED,
            reason=f"cancelled by {source} before payment",
            now=now,
            extra_fields={
                "cancelled_at": now,
                "cancellation_source": source,
                "cancellation_reason": reason[:255],
                "refund_tier": RefundTier.NONE,
                "expires_at": None,
            },
        )
        release_booking_dates(booking)
        payment = Payment.objects.filter(booking=booking, status=Payment.Status.PENDING).first()
        if payment is not None:
            mark_payment_failed(payment, f"Booking cancelled by {source}")
        uow.add_event(
            BookingCancelled(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                guest_id=booking.guest_id,
                realtor_id=booking.property.owner_id,
                source=source,
                refund_tier=RefundTier.NONE,
                refund_amount=Decimal("0.00"),
            )
        )
    return {"booking": booking, "refund": None}


def preview_cancellation(booking: Booking, *, source: str, now: datetime | None = None) -> dict:
    allowed, why = can_cancel_booking(booking, now)
    refund = preview_cancellation_refund(booking, source, now)
    return {"can_cancel": allowed, "reason": why, **refund.as_dict()}


def expire_booking(booking: Booking, *, now: datetime | None = None) -> bool:
    """Cancel an unpaid booking whose hold ran out. Returns False when it is not due."""
    now = now or timezone.now()
    if not booking.is_hold_expired(now):
        return False

    with DjangoUnitOfWork() as uow:
        transition_booking_status(
            booking,
            Booking.Status.CANCELLED,
            reason="payment hold expired",
            now=now,
            extra_fields={
                "cancelled_at": now,
                "cancellation_source": Booking.CancellationSource.SYSTEM,
                "cancellation_reason": "Payment was not completed in time.",
                "refund_tier": RefundTier.NONE,
            },
        )
        release_booking_dates(booking)
        payment = Payment.objects.filter(booking=booking, status=Payment.Status.PENDING).first()
        if payment is not None:
            mark_payment_failed(payment, "Payment hold expired")
        uow.add_event(BookingExpired(aggregate_id=booking.pk, booking_id=booking.pk, guest_id=booking.guest_id))
    logger.info(f"Booking {booking.booking_code} expired")
    return True


def confirm_check_in(
    booking: Booking,
    *,
    confirmation_type: str,
    now: datetime | None = None,
) -> Booking:
    """
    Start the stay and open the guest dispute window.

    Guests may confirm any time after payment, realtors from the check-in
    time, and the system once the auto check-in grace period has passed.
    """
    now = now or timezone.now()
    if booking.status != Booking.Status.ACTIVE:
        raise CheckInError("Only active bookings can be checked in.")
    if booking.stay_status != Booking.StayStatus.NOT_CHECKED_IN:
        raise CheckInError("The guest has already checked in.")
    payment_status = Payment.objects.filter(booking=booking).values_list("status", flat=True).first()
    if payment_status not in HELD_PAYMENT_STATUSES:
        raise CheckInError("The booking has not been paid.")

    Confirmation = Booking.CheckInConfirmation
    if confirmation_type == Confirmation.REALTOR_CONFIRMED and now < booking.check_in_at:
        raise CheckInError("Realtors can confirm check-in only from the check-in time.")
    if confirmation_type == Confirmation.AUTO_FALLBACK and now < booking.auto_check_in_due_at():
        raise CheckInError("Automatic check-in is not due yet.")

    window_closes = now + timedelta(hours=lifecycle_settings()["GUEST_DISPUTE_WINDOW_HOURS"])
    with DjangoUnitOfWork() as uow:
        updated = Booking.objects.filter(
            pk=booking.pk,
            status=Booking.Status.ACTIVE,
            stay_status=Booking.StayStatus.NOT_CHECKED_IN,
        ).update(
            stay_status=Booking.StayStatus.CHECKED_IN,
            checked_in_at=now,
            checkin_confirmation_type=confirmation_type,
            dispute_window_closes_at=window_closes,
            room_fee_release_eligible_at=window_closes,
            updated_at=now,
        )
        if not updated:
            raise CheckInError("The booking changed while checking in.")
        booking.refresh_from_db()
        uow.add_event(
            CheckInConfirmed(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                guest_id=booking.guest_id,
                realtor_id=booking.property.owner_id,
                confirmation_type=confirmation_type,
                dispute_window_closes_at=window_closes,
            )
        )
    logger.info(f"Booking {booking.booking_code} checked in ({confirmation_type})")
    return booking


def check_out(booking: Booking, *, now: datetime | None = None) -> Booking:
    """End the stay and open the realtor dispute window."""
    now = now or timezone.now()
    if booking.stay_status != Booking.StayStatus.CHECKED_IN:
        raise CheckInError("The guest has not checked in.")
    if booking.status not in (Booking.Status.ACTIVE, Booking.Status.DISPUTED):
        raise CheckInError(f"Bookings in status '{booking.status}' cannot be checked out.")

    window_closes = now + timedelta(hours=lifecycle_settings()["REALTOR_DISPUTE_WINDOW_HOURS"])
    with DjangoUnitOfWork() as uow:
        updated = Booking.objects.filter(
            pk=booking.pk,
            stay_status=Booking.StayStatus.CHECKED_IN,
        ).update(
            stay_status=Booking.StayStatus.CHECKED_OUT,
            checked_out_at=now,
            deposit_refund_eligible_at=window_closes,
            realtor_dispute_closes_at=window_closes,
            updated_at=now,
        )
        if not updated:
            raise CheckInError("The booking changed while checking out.")
        booking.refresh_from_db()
        uow.add_event(
            GuestCheckedOut(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                guest_id=booking.guest_id,
                realtor_id=booking.property.owner_id,
                realtor_dispute_closes_at=window_closes,
            )
        )
    logger.info(f"Booking {booking.booking_code} checked out")
    return booking


def dispute_windows(booking: Booking, now: datetime | None = None) -> dict:
    now = now or timezone.now()
    return {
        "booking_id": booking.pk,
        "stay_status": booking.stay_status,
        "guest_window_closes_at": booking.dispute_window_closes_at,
        "guest_window_open": booking.guest_dispute_window_open(now),
        "guest_dispute_opened": booking.user_dispute_opened,
        "realtor_window_closes_at": booking.realtor_dispute_closes_at,
        "realtor_window_open": booking.realtor_dispute_window_open(now),
        "realtor_dispute_opened": booking.realtor_dispute_opened,
    }
