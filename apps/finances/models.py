"""Financial domain models for Stayza.

``Payment`` carries the money status of a booking (escrow held, partially
released, settled, refunded, disputed) together with the fee snapshot taken
when the payment cleared. ``EscrowEvent`` is the append-only ledger of every
movement between customer, escrow, realtor and platform. Wallets hold the
realtor and platform balances; realtors move money out through
``WithdrawalRequest``.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db import models, transaction  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Payment(models.Model):
    """Guest payment for a booking."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        ESCROW_HELD = "escrow_held", _("Held in escrow")
        PARTIALLY_RELEASED = "partially_released", _("Partially released")
        SETTLED = "settled", _("Settled")
        REFUNDED = "refunded", _("Refunded")
        DISPUTED = "disputed", _("Disputed")
        FAILED = "failed", _("Failed")

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="payment",
    )
    reference = models.CharField(max_length=100, unique=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="NGN")
    authorization_url = models.URLField(max_length=500, blank=True)
    access_code = models.CharField(max_length=100, blank=True)

    # Fee snapshot taken at finalization
    room_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    cleaning_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    security_deposit = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    commission_rate = models.DecimalField(max_digits=5, decimal_places=4, default=Decimal("0.1000"))

    room_fee_in_escrow = models.BooleanField(default=False)
    deposit_in_escrow = models.BooleanField(default=False)
    cleaning_fee_released = models.BooleanField(default=False)
    service_fee_collected = models.BooleanField(default=False)
    room_fee_released_at = models.DateTimeField(null=True, blank=True)
    deposit_released_at = models.DateTimeField(null=True, blank=True)

    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    refunded_at = models.DateTimeField(null=True, blank=True)
    pre_dispute_status = models.CharField(max_length=20, choices=Status.choices, blank=True)

    metadata = models.JSONField(default=dict, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"]),
        ]

    def __str__(self) -> str:
        return f"Payment {self.reference} for booking {self.booking_id} ({self.status})"

    @property
    def reference_suffix(self) -> str:
        return self.reference[-8:]

    @property
    def amount_paid(self) -> Decimal:
        return self.room_fee + self.cleaning_fee + self.service_fee + self.security_deposit

    @property
    def refundable_balance(self) -> Decimal:
        """What is still held for the guest: room fee and deposit not yet released."""
        held = Decimal("0.00")
        if self.room_fee_in_escrow:
            held += self.room_fee
        if self.deposit_in_escrow:
            held += self.security_deposit
        return held

    def record_metadata(self, **values) -> None:
        """Merge ``values`` into the stored metadata under a row lock."""
        with transaction.atomic():
            rows = type(self).objects.select_for_update().filter(pk=self.pk)
            metadata = dict(rows.values_list("metadata", flat=True).first() or {})
            metadata.update(values)
            rows.update(metadata=metadata)
        self.metadata = metadata


class PaymentTransaction(models.Model):
    """Raw gateway interaction (webhook, verification) kept for audit."""

    payment = models.ForeignKey(
        Payment,
        on_delete=models.CASCADE,
        related_name="transactions",
        null=True,
        blank=True,
    )
    event = models.CharField(max_length=50)
    reference = models.CharField(max_length=100, blank=True)
    payload = models.JSONField()
    status = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Payment transaction")
        verbose_name_plural = _("Payment transactions")
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.event} {self.reference}"


class EscrowEvent(models.Model):
    """Ledger entry. Only ``apps.finances.escrow.record_escrow_event`` writes these."""

    class EventType(models.TextChoices):
        HOLD_ROOM_FEE = "hold_room_fee", _("Hold room fee")
        HOLD_SECURITY_DEPOSIT = "hold_security_deposit", _("Hold security deposit")
        RELEASE_CLEANING_FEE = "release_cleaning_fee", _("Release cleaning fee")
        COLLECT_SERVICE_FEE = "collect_service_fee", _("Collect service fee")
        RELEASE_ROOM_FEE_SPLIT = "release_room_fee_split", _("Release room fee to realtor")
        COLLECT_ROOM_FEE_COMMISSION = "collect_room_fee_commission", _("Collect room fee commission")
        RELEASE_DEPOSIT_TO_CUSTOMER = "release_deposit_to_customer", _("Return deposit to customer")
        PAY_REALTOR_FROM_DEPOSIT = "pay_realtor_from_deposit", _("Pay realtor from deposit")
        REFUND_ROOM_FEE_TO_CUSTOMER = "refund_room_fee_to_customer", _("Refund room fee to customer")
        REFUND_PARTIAL_TO_CUSTOMER = "refund_partial_to_customer", _("Partial refund to customer")
        REFUND_PARTIAL_TO_REALTOR = "refund_partial_to_realtor", _("Partial payout to realtor")

    class Party(models.TextChoices):
        CUSTOMER = "customer", _("Customer")
        ESCROW = "escrow", _("Escrow")
        REALTOR = "realtor", _("Realtor")
        PLATFORM = "platform", _("Platform")

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="escrow_events",
    )
    payment = models.ForeignKey(
        Payment,
        on_delete=models.SET_NULL,
        related_name="escrow_events",
        null=True,
        blank=True,
    )
    event_type = models.CharField(max_length=40, choices=EventType.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="NGN")
    from_party = models.CharField(max_length=20, choices=Party.choices)
    to_party = models.CharField(max_length=20, choices=Party.choices)
    transaction_reference = models.CharField(max_length=120, blank=True, default="")
    triggered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="triggered_escrow_events",
    )
    notes = models.TextField(blank=True)
    provider_response = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Escrow event")
        verbose_name_plural = _("Escrow events")
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["transaction_reference"],
                condition=~models.Q(transaction_reference=""),
                name="escrow_event_unique_reference",
            ),
        ]
        indexes = [
            models.Index(fields=["booking", "event_type"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} {self.amount} {self.currency} ({self.from_party} -> {self.to_party})"


class Wallet(models.Model):
    """Balance of a realtor, or the single platform wallet (``user`` is null)."""

    class OwnerType(models.TextChoices):
        REALTOR = "realtor", _("Realtor")
        PLATFORM = "platform", _("Platform")

    owner_type = models.CharField(max_length=20, choices=OwnerType.choices)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
        null=True,
        blank=True,
    )
    balance_available = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    balance_pending = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="NGN")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Wallet")
        verbose_name_plural = _("Wallets")
        constraints = [
            models.UniqueConstraint(
                fields=["owner_type"],
                condition=models.Q(owner_type="platform"),
                name="wallet_single_platform",
            ),
        ]

    def __str__(self) -> str:
        owner = self.user.email if self.user_id else "platform"
        return f"Wallet {owner}: {self.balance_available} {self.currency}"


class WalletTransaction(models.Model):
    class Type(models.TextChoices):
        CREDIT = "credit", _("Credit")
        DEBIT = "debit", _("Debit")

    class Source(models.TextChoices):
        CLEANING_FEE = "cleaning_fee", _("Cleaning fee")
        ROOM_FEE = "room_fee", _("Room fee")
        SERVICE_FEE = "service_fee", _("Service fee")
        WITHDRAWAL = "withdrawal", _("Withdrawal")
        REFUND = "refund", _("Refund")
        ADJUSTMENT = "adjustment", _("Adjustment")
        CANCELLATION = "cancellation", _("Cancellation")
        SECURITY_DEPOSIT = "security_deposit", _("Security deposit")

    class Status(models.TextChoices):
        COMPLETED = "completed", _("Completed")
        PENDING = "pending", _("Pending")
        FAILED = "failed", _("Failed")

    wallet = models.ForeignKey(Wallet, on_delete=models.CASCADE, related_name="transactions")
    type = models.CharField(max_length=10, choices=Type.choices)
    source = models.CharField(max_length=20, choices=Source.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.COMPLETED)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    reference = models.CharField(max_length=120, blank=True)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="wallet_transactions",
    )
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Wallet transaction")
        verbose_name_plural = _("Wallet transactions")
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.type} {self.amount} ({self.source})"


class WithdrawalRequest(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        PROCESSING = "processing", _("Processing")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")
        CANCELLED = "cancelled", _("Cancelled")

    realtor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="withdrawal_requests",
    )
    wallet = models.ForeignKey(Wallet, on_delete=models.CASCADE, related_name="withdrawals")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    reference = models.CharField(max_length=50, blank=True)
    transfer_code = models.CharField(max_length=100, blank=True)
    failure_reason = models.TextField(blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0)
    needs_reconciliation = models.BooleanField(
        default=False,
        help_text=_("The gateway reported a payout for a request that was already cancelled."),
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Withdrawal request")
        verbose_name_plural = _("Withdrawal requests")
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Withdrawal {self.reference or self.pk} {self.amount} ({self.status})"


class RefundRequest(models.Model):
    """
    A guest asking for money back after the room fee was paid out.

    The realtor approves or rejects first; an admin then sends the refund
    through the gateway, funded from the realtor's wallet.
    """

    class Status(models.TextChoices):
        PENDING_REALTOR_APPROVAL = "pending_realtor_approval", _("Pending realtor approval")
        REALTOR_APPROVED = "realtor_approved", _("Approved by realtor")
        REALTOR_REJECTED = "realtor_rejected", _("Rejected by realtor")
        ADMIN_PROCESSING = "admin_processing", _("Being processed")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    class Reason(models.TextChoices):
        SERVICE_ISSUE = "service_issue", _("Service issue")
        PROPERTY_UNAVAILABLE = "property_unavailable", _("Property unavailable")
        OVERCHARGE = "overcharge", _("Overcharge")
        OTHER = "other", _("Other")

    OPEN_STATUSES = (Status.PENDING_REALTOR_APPROVAL, Status.REALTOR_APPROVED, Status.ADMIN_PROCESSING)

    booking = models.ForeignKey("bookings.Booking", on_delete=models.CASCADE, related_name="refund_requests")
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name="refund_requests")
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="refund_requests",
    )
    realtor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="refund_requests_to_review",
    )
    requested_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="NGN")
    reason = models.CharField(max_length=30, choices=Reason.choices)
    customer_notes = models.TextField(blank=True)
    status = models.CharField(max_length=30, choices=Status.choices, default=Status.PENDING_REALTOR_APPROVAL)

    realtor_reason = models.TextField(blank=True)
    realtor_notes = models.TextField(blank=True)
    realtor_decided_at = models.DateTimeField(null=True, blank=True)

    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="processed_refund_requests",
    )
    admin_notes = models.TextField(blank=True)
    actual_refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    failure_reason = models.TextField(blank=True)
    provider_response = models.JSONField(default=dict, blank=True)
    admin_processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Refund request")
        verbose_name_plural = _("Refund requests")
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=models.Q(status__in=["pending_realtor_approval", "realtor_approved", "admin_processing"]),
                name="refund_request_one_open_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund request #{self.pk} {self.requested_amount} for booking {self.booking_id} ({self.status})"

    @property
    def gateway_leg(self) -> str:
        return f"refund_request_{self.pk}"
