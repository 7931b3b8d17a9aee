"""Dispute model for Stayza."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Dispute(models.Model):
    """A guest claim on the room fee or a realtor claim on the security deposit."""

    class Subject(models.TextChoices):
        ROOM_FEE = "room_fee", _("Room fee")
        SECURITY_DEPOSIT = "security_deposit", _("Security deposit")

    class Category(models.TextChoices):
        # Room fee
        SAFETY_UNINHABITABLE = "safety_uninhabitable", _("Unsafe or uninhabitable")
        MAJOR_MISREPRESENTATION = "major_misrepresentation", _("Major misrepresentation")
        MISSING_AMENITIES_CLEANLINESS = "missing_amenities_cleanliness", _("Missing amenities or cleanliness")
        MINOR_INCONVENIENCE = "minor_inconvenience", _("Minor inconvenience")
        # Security deposit
        PROPERTY_DAMAGE = "property_damage", _("Property damage")
        MISSING_ITEMS = "missing_items", _("Missing items")
        CLEANING_REQUIRED = "cleaning_required", _("Cleaning required")
        OTHER_DEPOSIT_CLAIM = "other_deposit_claim", _("Other deposit claim")

    class Status(models.TextChoices):
        OPEN = "open", _("Open")
        AWAITING_RESPONSE = "awaiting_response", _("Awaiting response")
        ESCALATED = "escalated", _("Escalated")
        RESOLVED = "resolved", _("Resolved")
        CANCELLED = "cancelled", _("Cancelled")

    class ResponseAction(models.TextChoices):
        ACCEPT = "accept", _("Accept")
        REJECT_ESCALATE = "reject_escalate", _("Reject and escalate")

    class AdminDecision(models.TextChoices):
        FULL_REFUND = "full_refund", _("Full refund")
        PARTIAL_REFUND = "partial_refund", _("Partial refund")
        NO_REFUND = "no_refund", _("No refund")
        DEPOSIT_AWARD = "deposit_award", _("Deposit award")

    class Outcome(models.TextChoices):
        FULL_REFUND_EXECUTED = "full_refund_executed", _("Full refund executed")
        PARTIAL_REFUND_EXECUTED = "partial_refund_executed", _("Partial refund executed")
        NO_REFUND_EXECUTED = "no_refund_executed", _("No refund executed")
        DEPOSIT_FORFEITED = "deposit_forfeited", _("Deposit forfeited")
        DEPOSIT_PARTIAL = "deposit_partial", _("Deposit partially forfeited")
        DEPOSIT_RETURNED = "deposit_returned", _("Deposit returned")

    ACTIVE_STATUSES = (Status.OPEN, Status.AWAITING_RESPONSE, Status.ESCALATED)

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="disputes",
    )
    subject = models.CharField(max_length=20, choices=Subject.choices)
    category = models.CharField(max_length=40, choices=Category.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.OPEN)
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="opened_disputes",
    )
    description = models.TextField()
    evidence_urls = models.JSONField(default=list, blank=True)
    claimed_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_("Deposit claims only."),
    )
    max_refund_percent = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text=_("Room fee disputes only; set from the category."),
    )

    response_action = models.CharField(max_length=20, choices=ResponseAction.choices, blank=True)
    response_note = models.TextField(blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)
    escalated_at = models.DateTimeField(null=True, blank=True)
    admin_deadline = models.DateTimeField(null=True, blank=True)
    overdue_notified_at = models.DateTimeField(null=True, blank=True)

    admin_decision = models.CharField(max_length=20, choices=AdminDecision.choices, blank=True)
    awarded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    admin_notes = models.TextField(blank=True)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_disputes",
    )
    outcome = models.CharField(max_length=30, choices=Outcome.choices, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    execution_started_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Set while a resolution is moving money; cleared again if it fails."),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Dispute")
        verbose_name_plural = _("Disputes")
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "subject"],
                condition=models.Q(status__in=["open", "awaiting_response", "escalated"]),
                name="dispute_one_active_per_subject",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "admin_deadline"]),
        ]

    def __str__(self) -> str:
        return f"Dispute #{self.pk} ({self.subject}) on booking {self.booking_id}"

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES

    @property
    def counterparty_id(self) -> int:
        if self.subject == self.Subject.ROOM_FEE:
            return self.booking.property.owner_id
        return self.booking.guest_id
