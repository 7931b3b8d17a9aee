"""FilterSet definitions for properties search and listing."""

from __future__ import annotations

import django_filters  # type: ignore
from django.db.models import Q  # type: ignore

from .models import Property, PropertyAvailability


class PropertyFilterSet(django_filters.FilterSet):
    """FilterSet for Property with common filters used in list and search.

    ``check_in``/``check_out`` together exclude properties that are booked
    or blocked for any night in the window.
    """

    city = django_filters.CharFilter(field_name="city", lookup_expr="icontains")
    state = django_filters.CharFilter(field_name="state", lookup_expr="icontains")
    location = django_filters.CharFilter(method="filter_location")
    property_type = django_filters.ChoiceFilter(choices=Property.PropertyType.choices)

    price_min = django_filters.NumberFilter(field_name="price_per_night", lookup_expr="gte")
    price_max = django_filters.NumberFilter(field_name="price_per_night", lookup_expr="lte")
    bedrooms_min = django_filters.NumberFilter(field_name="bedrooms", lookup_expr="gte")
    guests = django_filters.NumberFilter(field_name="max_guests", lookup_expr="gte")

    check_in = django_filters.DateFilter(method="filter_availability")
    check_out = django_filters.DateFilter(method="filter_availability")

    class Meta:
        model = Property
        fields = ["city", "state", "property_type"]

    def filter_location(self, queryset, name, value):  # type: ignore
        if not value:
            return queryset
        return queryset.filter(Q(city__icontains=value) | Q(state__icontains=value))

    def filter_availability(self, queryset, name, value):  # type: ignore
        # Both bounds are applied once, when the check_in filter runs
        if name != "check_in":
            return queryset
        check_in = self.form.cleaned_data.get("check_in")
        check_out = self.form.cleaned_data.get("check_out")
        if not check_in or not check_out or check_out <= check_in:
            return queryset
        return exclude_unavailable(queryset, check_in, check_out)


def exclude_unavailable(queryset, check_in, check_out):
    """Drop properties with a blocking period or live booking overlapping the window."""
    from apps.bookings.models import Booking

    blocked_ids = PropertyAvailability.objects.filter(
        start_date__lt=check_out,
        end_date__gt=check_in,
    ).values_list("property_id", flat=True)

    booked_ids = Booking.objects.filter(
        check_in__lt=check_out,
        check_out__gt=check_in,
        status__in=Booking.LIVE_STATUSES,
    ).values_list("property_id", flat=True)

    return queryset.exclude(id__in=blocked_ids).exclude(id__in=booked_ids)
