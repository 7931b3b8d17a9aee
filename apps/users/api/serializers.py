"""Serializers for the platform admin realtor API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.users.models import RealtorProfile


class AdminRealtorSerializer(serializers.ModelSerializer):
    """Realtor profile as seen by platform admins."""

    user_id = serializers.IntegerField(source="user.id", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    phone = serializers.CharField(source="user.phone", read_only=True)
    has_payout_account = serializers.BooleanField(read_only=True)
    properties_count = serializers.SerializerMethodField()

    class Meta:
        model = RealtorProfile
        fields = [
            "id",
            "user_id",
            "email",
            "phone",
            "business_name",
            "business_phone",
            "status",
            "rejection_reason",
            "suspension_reason",
            "has_payout_account",
            "properties_count",
            "status_changed_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_properties_count(self, obj: RealtorProfile) -> int:
        return obj.user.properties.count()


class RealtorActionSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
