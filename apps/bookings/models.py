"""Booking domain models for Stayza.

The booking ``status`` follows the lifecycle in ``apps.bookings.domain.lifecycle``;
it is never assigned directly outside that module. ``stay_status`` tracks the
physical stay (checked in, checked out) and drives the escrow timers.
"""

from __future__ import annotations

import builtins
import secrets
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.exceptions import ValidationError  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Booking(models.Model):
    """Reservation of a property for a date range."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending payment")
        ACTIVE = "active", _("Active")
        DISPUTED = "disputed", _("Disputed")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    class StayStatus(models.TextChoices):
        NOT_CHECKED_IN = "not_checked_in", _("Not checked in")
        CHECKED_IN = "checked_in", _("Checked in")
        CHECKED_OUT = "checked_out", _("Checked out")

    class CheckInConfirmation(models.TextChoices):
        GUEST_CONFIRMED = "guest_confirmed", _("Confirmed by guest")
        REALTOR_CONFIRMED = "realtor_confirmed", _("Confirmed by realtor")
        AUTO_FALLBACK = "auto_fallback", _("Confirmed automatically")

    class CancellationSource(models.TextChoices):
        GUEST = "guest", _("Guest")
        REALTOR = "realtor", _("Realtor")
        ADMIN = "admin", _("Admin")
        SYSTEM = "system", _("System")

    # Statuses that occupy the property's calendar
    LIVE_STATUSES = (Status.PENDING, Status.ACTIVE, Status.DISPUTED)

    guest = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    property = models.ForeignKey(
        "properties.Property",
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    booking_code = models.CharField(max_length=12, unique=True, editable=False)
    check_in = models.DateField()
    check_out = models.DateField()
    guests_count = models.PositiveSmallIntegerField(default=1)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    stay_status = models.CharField(
        max_length=20,
        choices=StayStatus.choices,
        default=StayStatus.NOT_CHECKED_IN,
    )
    special_requests = models.TextField(blank=True)

    # Fee snapshot at creation
    nightly_rate = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_nights = models.PositiveSmallIntegerField(default=1)
    room_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    cleaning_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    security_deposit = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="NGN")

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Payment hold deadline; unpaid bookings are cancelled after it."),
    )

    # Check-in / check-out and escrow timers
    checked_in_at = models.DateTimeField(null=True, blank=True)
    checkin_confirmation_type = models.CharField(
        max_length=20,
        choices=CheckInConfirmation.choices,
        blank=True,
    )
    dispute_window_closes_at = models.DateTimeField(null=True, blank=True)
    room_fee_release_eligible_at = models.DateTimeField(null=True, blank=True)
    checked_out_at = models.DateTimeField(null=True, blank=True)
    deposit_refund_eligible_at = models.DateTimeField(null=True, blank=True)
    realtor_dispute_closes_at = models.DateTimeField(null=True, blank=True)
    user_dispute_opened = models.BooleanField(default=False)
    realtor_dispute_opened = models.BooleanField(default=False)
    reminder_sent_at = models.DateTimeField(null=True, blank=True)

    refund_tier = models.CharField(max_length=10, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_source = models.CharField(
        max_length=20,
        choices=CancellationSource.choices,
        blank=True,
    )
    cancellation_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(check_out__gt=models.F("check_in")),
                name="booking_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["property", "check_in", "check_out"]),
            models.Index(fields=["status", "stay_status"]),
            models.Index(fields=["status", "expires_at"]),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} for {self.property_id}"

    def clean(self) -> None:
        if self.check_in and self.check_out and self.check_in >= self.check_out:
            raise ValidationError(_("Check-out must be after check-in."))

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding and not self.booking_code:
            self.booking_code = self.generate_booking_code()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_booking_code() -> str:
        return secrets.token_hex(4).upper()

    # The ``property`` field above shadows the builtin in this class body
    @builtins.property
    def check_in_at(self) -> datetime:
        """Moment the stay starts: check-in date at the property's check-in time."""
        return timezone.make_aware(datetime.combine(self.check_in, self.property.check_in_time))

    @builtins.property
    def check_out_at(self) -> datetime:
        return timezone.make_aware(datetime.combine(self.check_out, self.property.check_out_time))

    @builtins.property
    def realtor(self):  # type: ignore
        return self.property.owner

    def is_hold_expired(self, now: datetime | None = None) -> bool:
        now = now or timezone.now()
        return bool(self.status == self.Status.PENDING and self.expires_at and now >= self.expires_at)

    def auto_check_in_due_at(self) -> datetime:
        grace = settings.BOOKING_LIFECYCLE.get("AUTO_CHECK_IN_GRACE_MINUTES", 30)
        return self.check_in_at + timedelta(minutes=grace)

    def guest_dispute_window_open(self, now: datetime | None = None) -> bool:
        now = now or timezone.now()
        return bool(
            self.stay_status != self.StayStatus.NOT_CHECKED_IN
            and self.dispute_window_closes_at
            and now < self.dispute_window_closes_at
        )

    def realtor_dispute_window_open(self, now: datetime | None = None) -> bool:
        now = now or timezone.now()
        return bool(
            self.stay_status == self.StayStatus.CHECKED_OUT
            and self.realtor_dispute_closes_at
            and now < self.realtor_dispute_closes_at
        )
