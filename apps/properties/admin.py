"""Admin registrations for properties domain."""

from __future__ import annotations

from django.contrib import admin  # type: ignore

from .models import Property, PropertyAvailability


class PropertyAvailabilityInline(admin.TabularInline):
    model = PropertyAvailability
    extra = 0
    fields = ("start_date", "end_date", "status", "source", "booking", "reason")
    readonly_fields = ("booking",)


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "city",
        "state",
        "property_type",
        "status",
        "price_per_night",
        "max_guests",
        "owner",
    )
    list_filter = ("status", "city", "property_type")
    search_fields = ("title", "city", "state", "owner__email")
    inlines = (PropertyAvailabilityInline,)
    readonly_fields = ("slug", "average_rating", "review_count", "created_at", "updated_at", "published_at")


@admin.register(PropertyAvailability)
class PropertyAvailabilityAdmin(admin.ModelAdmin):
    list_display = ("property", "start_date", "end_date", "status", "source")
    list_filter = ("status", "source")
    search_fields = ("property__title",)
