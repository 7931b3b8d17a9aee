"""Serializers for user-related API endpoints."""

from __future__ import annotations

from django.contrib.auth import get_user_model  # type: ignore
from rest_framework import serializers  # type: ignore

from .models import RealtorProfile

User = get_user_model()


class RealtorProfileSerializer(serializers.ModelSerializer):
    """Realtor business details; the account number is always masked."""

    account_number = serializers.CharField(source="masked_account_number", read_only=True)
    has_payout_account = serializers.BooleanField(read_only=True)

    class Meta:
        model = RealtorProfile
        fields = [
            "business_name",
            "business_phone",
            "status",
            "rejection_reason",
            "suspension_reason",
            "bank_code",
            "bank_name",
            "account_number",
            "account_name",
            "has_payout_account",
            "status_changed_at",
        ]
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """Main user serializer."""

    realtor_profile = RealtorProfileSerializer(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "username",
            "first_name",
            "last_name",
            "phone",
            "role",
            "realtor_profile",
            "is_email_verified",
            "last_activity_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "email",
            "role",
            "realtor_profile",
            "is_email_verified",
            "last_activity_at",
            "created_at",
            "updated_at",
        ]


class PayoutAccountSerializer(serializers.Serializer):
    bank_code = serializers.CharField(max_length=20)
    bank_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    account_number = serializers.RegexField(r"^\d{10}$", error_messages={"invalid": "Account number must be 10 digits."})
    account_name = serializers.CharField(max_length=255)
