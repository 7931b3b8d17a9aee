"""Serializers for notifications."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    booking_code = serializers.ReadOnlyField(source='booking.booking_code', default=None)

    class Meta:
        model = Notification
        fields = ['id', 'type', 'title', 'message', 'booking', 'booking_code', 'is_read', 'read_at', 'created_at']
        read_only_fields = fields
