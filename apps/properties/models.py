"""Property domain models for Stayza.

A ``Property`` is a listing owned by a realtor and priced per night, with
an optional cleaning fee and a refundable security deposit. Check-in and
check-out times are used by the booking lifecycle to compute when a stay
starts and ends. ``PropertyAvailability`` records booked and manually
blocked date ranges.
"""

from __future__ import annotations

from datetime import time
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.text import slugify  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


def _configured_time(key: str, fallback: str) -> time:
    raw = getattr(settings, "BOOKING_LIFECYCLE", {}).get(key, fallback)
    return timezone.datetime.strptime(raw, "%H:%M").time()


def default_check_in_time() -> time:
    return _configured_time("DEFAULT_CHECK_IN_TIME", "14:00")


def default_check_out_time() -> time:
    return _configured_time("DEFAULT_CHECK_OUT_TIME", "11:00")


class Property(models.Model):
    """A listing available for short-term rental."""

    class Status(models.TextChoices):
        DRAFT = "draft", _("Draft")
        PENDING = "pending", _("Pending review")
        ACTIVE = "active", _("Active")
        INACTIVE = "inactive", _("Inactive")
        BLOCKED = "blocked", _("Blocked")

    class PropertyType(models.TextChoices):
        APARTMENT = "apartment", _("Apartment")
        HOUSE = "house", _("House")
        VILLA = "villa", _("Villa")
        STUDIO = "studio", _("Studio")
        DUPLEX = "duplex", _("Duplex")
        PENTHOUSE = "penthouse", _("Penthouse")

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="properties",
    )
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    property_type = models.CharField(
        max_length=20,
        choices=PropertyType.choices,
        default=PropertyType.APARTMENT,
    )
    address = models.CharField(max_length=255)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100, blank=True)
    country = models.CharField(max_length=100, default="Nigeria")
    max_guests = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    bedrooms = models.PositiveSmallIntegerField(default=1)
    bathrooms = models.PositiveSmallIntegerField(default=1)
    price_per_night = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    cleaning_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    security_deposit = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    currency = models.CharField(max_length=3, default="NGN")
    min_nights = models.PositiveSmallIntegerField(default=1)
    max_nights = models.PositiveSmallIntegerField(default=30)
    check_in_time = models.TimeField(default=default_check_in_time)
    check_out_time = models.TimeField(default=default_check_out_time)
    amenities = models.JSONField(default=list, blank=True)
    house_rules = models.TextField(blank=True)
    average_rating = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("5"))],
    )
    review_count = models.PositiveIntegerField(default=0)
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Property")
        verbose_name_plural = _("Properties")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["owner", "status"]),
            models.Index(fields=["city", "status"]),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(max_nights__gte=models.F("min_nights")),
                name="property_valid_night_limits",
            ),
        ]

    def __str__(self) -> str:
        return self.title

    def activate(self) -> None:
        if self.status != self.Status.ACTIVE:
            self.status = self.Status.ACTIVE
            self.published_at = timezone.now()
            self.save(update_fields=["status", "published_at", "updated_at"])

    def deactivate(self) -> None:
        if self.status == self.Status.ACTIVE:
            self.status = self.Status.INACTIVE
            self.save(update_fields=["status", "updated_at"])

    def save(self, *args, **kwargs):  # type: ignore
        if not self.slug:
            base_slug = slugify(self.title)[:200] or "property"
            candidate = base_slug
            counter = 1
            while self.__class__.objects.filter(slug=candidate).exclude(pk=self.pk).exists():
                counter += 1
                candidate = f"{base_slug}-{counter}"
            self.slug = candidate
        super().save(*args, **kwargs)


class PropertyAvailability(models.Model):
    """Unavailable date range on a property's calendar (end date exclusive)."""

    class AvailabilityStatus(models.TextChoices):
        BOOKED = "booked", _("Booked")
        BLOCKED = "blocked", _("Blocked by owner")
        MAINTENANCE = "maintenance", _("Maintenance")

    class Source(models.TextChoices):
        BOOKING = "booking", _("Booking")
        MANUAL = "manual", _("Manual")

    property = models.ForeignKey(
        Property,
        on_delete=models.CASCADE,
        related_name="availability_periods",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="availability_periods",
    )
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=20, choices=AvailabilityStatus.choices)
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.MANUAL)
    reason = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_availability_periods",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Availability period")
        verbose_name_plural = _("Availability periods")
        ordering = ["start_date"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(end_date__gt=models.F("start_date")),
                name="availability_valid_date_range",
            ),
        ]
        indexes = [
            models.Index(fields=["property", "start_date", "end_date"]),
        ]

    def __str__(self) -> str:
        return f"{self.property.title}: {self.start_date} - {self.end_date} ({self.status})"
