"""Admin registration for disputes. Decisions are made through the admin API."""

from __future__ import annotations

from django.contrib import admin

from .models import Dispute


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "subject", "category", "status", "outcome", "admin_deadline", "created_at")
    list_filter = ("subject", "status", "category")
    search_fields = ("booking__booking_code", "opened_by__email")
    readonly_fields = (
        "status",
        "outcome",
        "admin_decision",
        "awarded_amount",
        "resolved_by",
        "resolved_at",
        "escalated_at",
        "admin_deadline",
    )
