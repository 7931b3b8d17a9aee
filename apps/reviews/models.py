"""Models for the review domain.

A ``Review`` is feedback left by a guest for a completed booking: an
overall rating, optional sub-ratings and a comment. One review per
booking. The property owner may respond once; admins may hide a review.
"""

from __future__ import annotations

import builtins

from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

RATING_VALIDATORS = [MinValueValidator(1), MaxValueValidator(5)]

SUB_RATING_FIELDS = (
    'cleanliness_rating',
    'communication_rating',
    'check_in_rating',
    'accuracy_rating',
    'location_rating',
    'value_rating',
)


def _sub_rating(help_text):  # type: ignore
    return models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=RATING_VALIDATORS,
        help_text=help_text,
    )


class Review(models.Model):
    """Represents a review left by a guest for a property."""

    guest = models.ForeignKey(
        'users.CustomUser', on_delete=models.CASCADE, related_name='reviews'
    )
    property = models.ForeignKey(
        'properties.Property', on_delete=models.CASCADE, related_name='reviews'
    )
    booking = models.OneToOneField(
        'bookings.Booking',
        on_delete=models.CASCADE,
        related_name='review',
    )
    rating = models.PositiveSmallIntegerField(
        validators=RATING_VALIDATORS,
        help_text=_('Overall rating from 1 to 5'),
    )
    comment = models.TextField(blank=True)

    cleanliness_rating = _sub_rating(_('Cleanliness'))
    communication_rating = _sub_rating(_('Communication with the owner'))
    check_in_rating = _sub_rating(_('Check-in process'))
    accuracy_rating = _sub_rating(_('Matches the listing'))
    location_rating = _sub_rating(_('Location'))
    value_rating = _sub_rating(_('Value for money'))

    realtor_response = models.TextField(blank=True)
    realtor_response_at = models.DateTimeField(null=True, blank=True)

    is_visible = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['property', '-created_at']),
            models.Index(fields=['guest']),
        ]

    def __str__(self) -> str:
        return f"Review by {self.guest_id} for property {self.property_id} (Rating: {self.rating})"

    @builtins.property
    def average_rating(self) -> float:
        """Mean of the overall rating and every sub-rating given."""
        ratings = [self.rating] + [getattr(self, name) for name in SUB_RATING_FIELDS]
        valid_ratings = [r for r in ratings if r is not None]
        return sum(valid_ratings) / len(valid_ratings)
