"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "property",
        "guest",
        "status",
        "stay_status",
        "check_in",
        "check_out",
        "total_price",
        "created_at",
    )
    list_filter = ("status", "stay_status", "check_in", "check_out", "cancellation_source")
    search_fields = ("booking_code", "property__title", "guest__email")
    # Status changes go through the lifecycle, never through this form
    readonly_fields = (
        "booking_code",
        "status",
        "stay_status",
        "created_at",
        "updated_at",
        "nightly_rate",
        "total_nights",
        "room_fee",
        "cleaning_fee",
        "security_deposit",
        "service_fee",
        "total_price",
        "checked_in_at",
        "checked_out_at",
        "dispute_window_closes_at",
        "realtor_dispute_closes_at",
    )
