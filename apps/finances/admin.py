"""Admin registrations for the finance domain. The ledger is read-only here."""

from __future__ import annotations

from django.contrib import admin

from .models import (
    EscrowEvent,
    Payment,
    PaymentTransaction,
    RefundRequest,
    Wallet,
    WalletTransaction,
    WithdrawalRequest,
)


class EscrowEventInline(admin.TabularInline):
    model = EscrowEvent
    extra = 0
    can_delete = False
    fields = ("event_type", "amount", "from_party", "to_party", "transaction_reference", "created_at")
    readonly_fields = fields


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("reference", "booking", "status", "amount", "currency", "paid_at")
    list_filter = ("status", "currency")
    search_fields = ("reference", "booking__booking_code", "booking__guest__email")
    readonly_fields = ("reference", "paid_at", "refunded_at", "metadata")
    inlines = (EscrowEventInline,)


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ("event", "reference", "status", "created_at")
    search_fields = ("reference",)


@admin.register(EscrowEvent)
class EscrowEventAdmin(admin.ModelAdmin):
    list_display = ("booking", "event_type", "amount", "from_party", "to_party", "transaction_reference", "created_at")
    list_filter = ("event_type",)
    search_fields = ("transaction_reference", "booking__booking_code")

    def has_change_permission(self, request, obj=None):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False


class WalletTransactionInline(admin.TabularInline):
    model = WalletTransaction
    extra = 0
    can_delete = False
    fields = ("type", "source", "amount", "balance_after", "reference", "created_at")
    readonly_fields = fields


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("id", "owner_type", "user", "balance_available", "balance_pending", "currency")
    list_filter = ("owner_type",)
    readonly_fields = ("balance_available", "balance_pending")
    inlines = (WalletTransactionInline,)


@admin.register(WithdrawalRequest)
class WithdrawalRequestAdmin(admin.ModelAdmin):
    list_display = ("reference", "realtor", "amount", "fee", "net_amount", "status", "retry_count", "created_at")
    list_filter = ("status",)
    search_fields = ("reference", "realtor__email")


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "requested_by", "requested_amount", "actual_refund_amount", "status", "created_at")
    list_filter = ("status", "reason")
    search_fields = ("booking__booking_code", "requested_by__email")
    readonly_fields = ("provider_response", "realtor_decided_at", "admin_processed_at", "completed_at")
