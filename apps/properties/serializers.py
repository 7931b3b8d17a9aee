"""Serializers for the properties domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Property, PropertyAvailability


class PropertySerializer(serializers.ModelSerializer):
    """Read serializer for listings."""

    owner_id = serializers.ReadOnlyField(source="owner.id")
    owner_name = serializers.ReadOnlyField(source="owner.display_name")

    class Meta:
        model = Property
        fields = [
            "id",
            "owner_id",
            "owner_name",
            "title",
            "slug",
            "description",
            "status",
            "property_type",
            "address",
            "city",
            "state",
            "country",
            "max_guests",
            "bedrooms",
            "bathrooms",
            "price_per_night",
            "cleaning_fee",
            "security_deposit",
            "currency",
            "min_nights",
            "max_nights",
            "check_in_time",
            "check_out_time",
            "amenities",
            "house_rules",
            "average_rating",
            "review_count",
            "published_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PropertyWriteSerializer(serializers.ModelSerializer):
    """Create and update listings. Status changes go through publish/unpublish."""

    class Meta:
        model = Property
        fields = [
            "id",
            "title",
            "description",
            "property_type",
            "address",
            "city",
            "state",
            "country",
            "max_guests",
            "bedrooms",
            "bathrooms",
            "price_per_night",
            "cleaning_fee",
            "security_deposit",
            "currency",
            "min_nights",
            "max_nights",
            "check_in_time",
            "check_out_time",
            "amenities",
            "house_rules",
        ]
        read_only_fields = ["id"]

    def validate_currency(self, value: str) -> str:
        from shared.domain.value_objects import SUPPORTED_CURRENCIES

        if value not in SUPPORTED_CURRENCIES:
            raise serializers.ValidationError(f"Unsupported currency: {value}")
        return value

    def validate_amenities(self, value):  # type: ignore
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("Amenities must be a list of strings.")
        return value

    def validate(self, attrs):  # type: ignore
        min_nights = attrs.get("min_nights", getattr(self.instance, "min_nights", 1))
        max_nights = attrs.get("max_nights", getattr(self.instance, "max_nights", 30))
        if min_nights < 1 or max_nights < min_nights:
            raise serializers.ValidationError(
                {"max_nights": "max_nights must be at least min_nights, and min_nights at least 1."}
            )
        return attrs

    def create(self, validated_data):  # type: ignore
        validated_data["owner"] = self.context["request"].user
        return super().create(validated_data)


class PropertyAvailabilitySerializer(serializers.ModelSerializer):
    class Meta:
        model = PropertyAvailability
        fields = ["id", "start_date", "end_date", "status", "source", "reason", "created_at"]
        read_only_fields = ["id", "source", "created_at"]


class BlockDatesSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    status = serializers.ChoiceField(
        choices=[
            PropertyAvailability.AvailabilityStatus.BLOCKED,
            PropertyAvailability.AvailabilityStatus.MAINTENANCE,
        ],
        default=PropertyAvailability.AvailabilityStatus.BLOCKED,
    )
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")

    def validate(self, attrs):  # type: ignore
        if attrs["end_date"] <= attrs["start_date"]:
            raise serializers.ValidationError({"end_date": "End date must be after start date."})
        return attrs
