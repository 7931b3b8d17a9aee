"""Calendar services for properties.

Booked ranges are written by the booking flow through ``reserve_booking_dates``
and removed through ``release_booking_dates``. Owners add and remove manual
blocks through ``block_dates`` / ``unblock_dates``.
"""

from __future__ import annotations

import logging
from datetime import date

from django.db import transaction  # type: ignore

from .models import Property, PropertyAvailability

logger = logging.getLogger(__name__)


class CalendarConflictError(Exception):
    """The requested range overlaps a live booking or an existing block."""


def overlapping_availability(property_obj: Property, start_date: date, end_date: date):
    return PropertyAvailability.objects.filter(
        property=property_obj,
        start_date__lt=end_date,
        end_date__gt=start_date,
    )


def has_live_booking_overlap(
    property_obj: Property,
    start_date: date,
    end_date: date,
    exclude_booking_id: int | None = None,
) -> bool:
    from apps.bookings.models import Booking

    qs = Booking.objects.filter(
        property=property_obj,
        status__in=Booking.LIVE_STATUSES,
        check_in__lt=end_date,
        check_out__gt=start_date,
    )
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    return qs.exists()


def is_range_available(
    property_obj: Property,
    start_date: date,
    end_date: date,
    exclude_booking_id: int | None = None,
) -> bool:
    blocks = overlapping_availability(property_obj, start_date, end_date)
    if exclude_booking_id is not None:
        blocks = blocks.exclude(booking_id=exclude_booking_id)
    if blocks.exists():
        return False
    return not has_live_booking_overlap(property_obj, start_date, end_date, exclude_booking_id)


@transaction.atomic
def block_dates(
    property_obj: Property,
    *,
    start_date: date,
    end_date: date,
    created_by,
    status: str = PropertyAvailability.AvailabilityStatus.BLOCKED,
    reason: str = "",
) -> PropertyAvailability:
    """Add a manual block. Refused when the range overlaps a booking or block."""
    # Serialize writers on the same property
    Property.objects.select_for_update().filter(pk=property_obj.pk).first()

    if has_live_booking_overlap(property_obj, start_date, end_date):
        raise CalendarConflictError("Selected dates overlap an existing booking.")
    if overlapping_availability(property_obj, start_date, end_date).exists():
        raise CalendarConflictError("Selected dates overlap an existing blocked period.")

    period = PropertyAvailability.objects.create(
        property=property_obj,
        start_date=start_date,
        end_date=end_date,
        status=status,
        source=PropertyAvailability.Source.MANUAL,
        reason=reason,
        created_by=created_by,
    )
    logger.info(f"Property {property_obj.id}: blocked {start_date} - {end_date} ({status})")
    return period


def unblock_dates(period: PropertyAvailability) -> None:
    if period.source != PropertyAvailability.Source.MANUAL:
        raise CalendarConflictError("Booking reservations cannot be removed manually.")
    logger.info(f"Property {period.property_id}: removed block {period.start_date} - {period.end_date}")
    period.delete()


def reserve_booking_dates(booking) -> PropertyAvailability:
    return PropertyAvailability.objects.create(
        property_id=booking.property_id,
        booking=booking,
        start_date=booking.check_in,
        end_date=booking.check_out,
        status=PropertyAvailability.AvailabilityStatus.BOOKED,
        source=PropertyAvailability.Source.BOOKING,
        created_by=booking.guest,
    )


def release_booking_dates(booking) -> int:
    deleted, _ = PropertyAvailability.objects.filter(
        booking=booking,
        source=PropertyAvailability.Source.BOOKING,
    ).delete()
    if deleted:
        logger.info(f"Booking {booking.id}: released {booking.check_in} - {booking.check_out}")
    return deleted
