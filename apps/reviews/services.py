"""Review rules and the property rating aggregate."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction  # type: ignore
from django.db.models import Avg, Count  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking
from apps.properties.models import Property

from .models import Review

logger = logging.getLogger(__name__)


class ReviewError(Exception):
    """Raised when a review action is not allowed."""


def recompute_property_rating(property_id: int) -> Property:
    """Refresh ``average_rating`` and ``review_count`` from visible reviews."""
    stats = Review.objects.filter(property_id=property_id, is_visible=True).aggregate(
        avg=Avg('rating'), count=Count('id')
    )
    average = Decimal(str(stats['avg'] or 0)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    Property.objects.filter(pk=property_id).update(average_rating=average, review_count=stats['count'])
    return Property.objects.get(pk=property_id)


@transaction.atomic
def create_review(guest, booking: Booking, *, rating: int, comment: str = '', **sub_ratings) -> Review:  # type: ignore
    if booking.guest_id != guest.id:
        raise ReviewError('Only the guest of this booking can review it.')
    if booking.status != Booking.Status.COMPLETED:
        raise ReviewError('A review can only be left for a completed booking.')
    if Review.objects.filter(booking=booking).exists():
        raise ReviewError('This booking has already been reviewed.')

    review = Review.objects.create(
        guest=guest,
        property_id=booking.property_id,
        booking=booking,
        rating=rating,
        comment=comment,
        **sub_ratings,
    )
    recompute_property_rating(booking.property_id)
    logger.info(f"Review {review.pk} created for booking {booking.booking_code}")
    return review


def respond_to_review(review: Review, user, text: str) -> Review:  # type: ignore
    if review.property.owner_id != user.id:
        raise ReviewError('Only the property owner can respond to reviews.')
    if review.realtor_response_at is not None:
        raise ReviewError('This review already has a response.')
    review.realtor_response = text
    review.realtor_response_at = timezone.now()
    review.save(update_fields=['realtor_response', 'realtor_response_at', 'updated_at'])
    return review


@transaction.atomic
def set_review_visibility(review: Review, is_visible: bool) -> Review:
    review.is_visible = is_visible
    review.save(update_fields=['is_visible', 'updated_at'])
    recompute_property_rating(review.property_id)
    logger.info(f"Review {review.pk} visibility set to {is_visible}")
    return review
