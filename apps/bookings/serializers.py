"""Serializers for the booking domain."""

from __future__ import annotations

from datetime import date

from rest_framework import serializers  # type: ignore

from apps.properties.models import Property

from .models import Booking
from .services import BookingConflictError, BookingValidationError, create_booking


class BookingQuoteSerializer(serializers.Serializer):
    property = serializers.PrimaryKeyRelatedField(queryset=Property.objects.all())
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests_count = serializers.IntegerField(min_value=1, default=1)

    def validate(self, attrs):  # type: ignore
        check_in: date = attrs["check_in"]
        check_out: date = attrs["check_out"]
        if check_in >= check_out:
            raise serializers.ValidationError("Check-out must be after check-in.")
        return attrs


class BookingCreateSerializer(serializers.ModelSerializer):
    """Guest creates a booking; dates are reserved until the hold expires."""

    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests_count = serializers.IntegerField(min_value=1, default=1)

    class Meta:
        model = Booking
        fields = [
            "property",
            "check_in",
            "check_out",
            "guests_count",
            "special_requests",
        ]
        extra_kwargs = {
            "special_requests": {"required": False, "allow_blank": True},
        }

    def validate(self, attrs):  # type: ignore
        if attrs["check_in"] >= attrs["check_out"]:
            raise serializers.ValidationError("Check-out must be after check-in.")
        return attrs

    def create(self, validated_data):  # type: ignore
        request = self.context["request"]
        try:
            return create_booking(
                request.user,
                validated_data["property"],
                check_in=validated_data["check_in"],
                check_out=validated_data["check_out"],
                guests_count=validated_data.get("guests_count", 1),
                special_requests=validated_data.get("special_requests", ""),
            )
        except (BookingConflictError, BookingValidationError) as exc:
            raise serializers.ValidationError({"non_field_errors": [str(exc)]})


class BookingSerializer(serializers.ModelSerializer):
    """Full booking details for the guest, the owner and admins."""

    guest_id = serializers.ReadOnlyField(source="guest.id")
    property_id = serializers.ReadOnlyField(source="property.id")
    property_title = serializers.ReadOnlyField(source="property.title")
    payment_status = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "booking_code",
            "guest_id",
            "property_id",
            "property_title",
            "check_in",
            "check_out",
            "guests_count",
            "status",
            "stay_status",
            "payment_status",
            "nightly_rate",
            "total_nights",
            "room_fee",
            "cleaning_fee",
            "security_deposit",
            "service_fee",
            "total_price",
            "currency",
            "special_requests",
            "expires_at",
            "checked_in_at",
            "checkin_confirmation_type",
            "dispute_window_closes_at",
            "checked_out_at",
            "realtor_dispute_closes_at",
            "refund_tier",
            "cancelled_at",
            "cancellation_source",
            "cancellation_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_payment_status(self, obj: Booking):  # type: ignore
        payment = getattr(obj, "payment", None)
        return payment.status if payment else None


class CancelBookingSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class AdminStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.Status.choices)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class BatchStatusSerializer(AdminStatusSerializer):
    booking_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False, max_length=100)
