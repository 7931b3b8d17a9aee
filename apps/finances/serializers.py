"""Serializers for the finance domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import EscrowEvent, Payment, RefundRequest, Wallet, WalletTransaction, WithdrawalRequest


class PaymentSerializer(serializers.ModelSerializer):
    booking_code = serializers.ReadOnlyField(source="booking.booking_code")

    class Meta:
        model = Payment
        fields = [
            "id",
            "booking",
            "booking_code",
            "reference",
            "status",
            "amount",
            "currency",
            "authorization_url",
            "room_fee",
            "cleaning_fee",
            "service_fee",
            "security_deposit",
            "room_fee_in_escrow",
            "deposit_in_escrow",
            "refund_amount",
            "paid_at",
            "refunded_at",
            "created_at",
        ]
        read_only_fields = fields


class InitializePaymentSerializer(serializers.Serializer):
    booking = serializers.IntegerField()


class VerifyPaymentSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=100)


class EscrowEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = EscrowEvent
        fields = [
            "id",
            "event_type",
            "amount",
            "currency",
            "from_party",
            "to_party",
            "transaction_reference",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ["id", "owner_type", "balance_available", "balance_pending", "currency", "updated_at"]
        read_only_fields = fields


class WalletTransactionSerializer(serializers.ModelSerializer):
    booking_code = serializers.ReadOnlyField(source="booking.booking_code", default=None)

    class Meta:
        model = WalletTransaction
        fields = [
            "id",
            "type",
            "source",
            "status",
            "amount",
            "balance_after",
            "reference",
            "booking",
            "booking_code",
            "created_at",
        ]
        read_only_fields = fields


class WithdrawalRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = WithdrawalRequest
        fields = [
            "id",
            "amount",
            "fee",
            "net_amount",
            "status",
            "reference",
            "failure_reason",
            "retry_count",
            "processed_at",
            "created_at",
        ]
        read_only_fields = [
            "id",
            "fee",
            "net_amount",
            "status",
            "reference",
            "failure_reason",
            "retry_count",
            "processed_at",
            "created_at",
        ]

    def validate_amount(self, value):  # type: ignore
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value


class AdminWithdrawalSerializer(WithdrawalRequestSerializer):
    realtor_id = serializers.IntegerField(source="realtor.id", read_only=True)
    realtor_email = serializers.EmailField(source="realtor.email", read_only=True)

    class Meta(WithdrawalRequestSerializer.Meta):
        fields = WithdrawalRequestSerializer.Meta.fields + ["realtor_id", "realtor_email", "transfer_code", "needs_reconciliation"]
        read_only_fields = fields


class RefundRequestSerializer(serializers.ModelSerializer):
    booking_code = serializers.ReadOnlyField(source="booking.booking_code")
    guest_email = serializers.EmailField(source="requested_by.email", read_only=True)

    class Meta:
        model = RefundRequest
        fields = [
            "id",
            "booking",
            "booking_code",
            "guest_email",
            "requested_amount",
            "actual_refund_amount",
            "currency",
            "reason",
            "customer_notes",
            "status",
            "realtor_reason",
            "realtor_notes",
            "realtor_decided_at",
            "admin_notes",
            "failure_reason",
            "admin_processed_at",
            "completed_at",
            "created_at",
        ]
        read_only_fields = [
            "id",
            "booking_code",
            "guest_email",
            "actual_refund_amount",
            "currency",
            "status",
            "realtor_reason",
            "realtor_notes",
            "realtor_decided_at",
            "admin_notes",
            "failure_reason",
            "admin_processed_at",
            "completed_at",
            "created_at",
        ]


class RefundDecisionSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):  # type: ignore
        if not attrs["approved"] and not attrs["reason"].strip():
            raise serializers.ValidationError({"reason": "A reason is required when rejecting."})
        return attrs


class ProcessRefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
