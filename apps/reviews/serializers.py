"""Serializers for reviews.

The reviewing guest is taken from the request; the property is taken
from the booking.
"""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.models import Booking

from .models import SUB_RATING_FIELDS, Review


class ReviewCreateSerializer(serializers.ModelSerializer):
    booking = serializers.PrimaryKeyRelatedField(queryset=Booking.objects.all())

    class Meta:
        model = Review
        fields = ['booking', 'rating', 'comment', *SUB_RATING_FIELDS]


class ReviewSerializer(serializers.ModelSerializer):
    """Read serializer for reviews including related ids."""

    guest_id = serializers.ReadOnlyField(source='guest.id')
    guest_name = serializers.ReadOnlyField(source='guest.username')
    property_id = serializers.ReadOnlyField(source='property.id')
    property_title = serializers.ReadOnlyField(source='property.title')
    booking_code = serializers.ReadOnlyField(source='booking.booking_code')
    average_rating = serializers.ReadOnlyField()

    class Meta:
        model = Review
        fields = [
            'id',
            'guest_id',
            'guest_name',
            'property_id',
            'property_title',
            'booking_code',
            'rating',
            'comment',
            *SUB_RATING_FIELDS,
            'average_rating',
            'realtor_response',
            'realtor_response_at',
            'is_visible',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class RealtorResponseSerializer(serializers.Serializer):
    realtor_response = serializers.CharField(max_length=2000)
