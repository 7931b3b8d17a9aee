"""Serializers for the dispute domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.models import Booking

from .models import Dispute
from .services import DEPOSIT_CATEGORIES, ROOM_FEE_CATEGORY_LIMITS


class DisputeSerializer(serializers.ModelSerializer):
    booking_code = serializers.ReadOnlyField(source="booking.booking_code")
    opened_by_id = serializers.ReadOnlyField(source="opened_by.id")

    class Meta:
        model = Dispute
        fields = [
            "id",
            "booking",
            "booking_code",
            "subject",
            "category",
            "status",
            "opened_by_id",
            "description",
            "evidence_urls",
            "claimed_amount",
            "max_refund_percent",
            "response_action",
            "response_note",
            "responded_at",
            "escalated_at",
            "admin_deadline",
            "admin_decision",
            "awarded_amount",
            "admin_notes",
            "outcome",
            "resolved_at",
            "created_at",
        ]
        read_only_fields = fields


class _OpenDisputeSerializer(serializers.Serializer):
    booking = serializers.PrimaryKeyRelatedField(queryset=Booking.objects.select_related("property"))
    description = serializers.CharField()
    evidence_urls = serializers.ListField(child=serializers.URLField(), required=False, default=list)


class RoomFeeDisputeSerializer(_OpenDisputeSerializer):
    category = serializers.ChoiceField(choices=sorted(ROOM_FEE_CATEGORY_LIMITS))


class DepositDisputeSerializer(_OpenDisputeSerializer):
    category = serializers.ChoiceField(choices=sorted(DEPOSIT_CATEGORIES))
    claimed_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class DisputeResponseSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=Dispute.ResponseAction.choices)
    note = serializers.CharField(required=False, allow_blank=True, default="")


class AdminResolveSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=Dispute.AdminDecision.choices)
    awarded_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
