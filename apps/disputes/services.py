"""Dispute workflow and its execution against escrow.

Opening a dispute freezes the disputed funds: the booking and the payment
both move to DISPUTED and the scheduled release for that money is skipped.
A dispute ends in one of three ways: the counterparty accepts the claim,
an admin decides the escalated case, or the opener withdraws it.

Execution follows the same order as the other escrow movements: gateway
refund first, then the ledger and status changes in one transaction. Before
any money moves the dispute is claimed by setting ``execution_started_at``
with a compare-and-set; a failed execution clears it again. Every leg uses
the reference ``dispute_<id>_<leg>``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from django.db.models import Count  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.lifecycle import (
    lifecycle_settings,
    transition_booking_status,
    transition_payment_status,
)
from apps.bookings.models import Booking
from apps.finances import gateway
from apps.finances.domain.fees import quantize_money
from apps.finances.escrow import (
    pay_room_fee_split,
    record_escrow_event,
    refund_to_customer,
)
from apps.finances.models import EscrowEvent, Payment, WalletTransaction
from apps.finances.wallets import credit_wallet, get_realtor_wallet
from apps.properties.services import release_booking_dates
from shared.application.uow import DjangoUnitOfWork

from .domain.events import DisputeEscalated, DisputeOpened, DisputeResolved
from .models import Dispute

logger = logging.getLogger(__name__)

Party = EscrowEvent.Party
EventType = EscrowEvent.EventType
Category = Dispute.Category

ROOM_FEE_CATEGORY_LIMITS = {
    Category.SAFETY_UNINHABITABLE: 100,
    Category.MAJOR_MISREPRESENTATION: 100,
    Category.MISSING_AMENITIES_CLEANLINESS: 30,
    Category.MINOR_INCONVENIENCE: 30,
}

DEPOSIT_CATEGORIES = frozenset(
    {
        Category.PROPERTY_DAMAGE,
        Category.MISSING_ITEMS,
        Category.CLEANING_REQUIRED,
        Category.OTHER_DEPOSIT_CLAIM,
    }
)

DECISION_PERCENT = {
    Dispute.AdminDecision.FULL_REFUND: 100,
    Dispute.AdminDecision.PARTIAL_REFUND: 30,
    Dispute.AdminDecision.NO_REFUND: 0,
}


class DisputeError(Exception):
    pass


class DisputeConflictError(DisputeError):
    """Someone else changed or started executing the dispute first."""


def dispute_reference(dispute: Dispute, leg: str) -> str:
    return f"dispute_{dispute.pk}_{leg}"


def _payment_for(booking: Booking) -> Payment:
    payment = Payment.objects.filter(booking=booking).first()
    if payment is None:
        raise DisputeError("This booking has no payment.")
    return payment


def _has_active_dispute(booking: Booking) -> bool:
    return Dispute.objects.filter(booking=booking, status__in=Dispute.ACTIVE_STATUSES).exists()


def _freeze(booking: Booking, payment: Payment, flag: str, now: datetime) -> None:
    transition_booking_status(
        booking,
        Booking.Status.DISPUTED,
        reason="dispute opened",
        now=now,
        extra_fields={flag: True},
    )
    transition_payment_status(payment, Payment.Status.DISPUTED, pre_dispute_status=payment.status)


def _open(
    booking: Booking,
    payment: Payment,
    *,
    user,
    subject: str,
    category: str,
    description: str,
    evidence_urls: list | None,
    flag: str,
    now: datetime,
    **fields,
) -> Dispute:
    with DjangoUnitOfWork() as uow:
        _freeze(booking, payment, flag, now)
        dispute = Dispute.objects.create(
            booking=booking,
            subject=subject,
            category=category,
            status=Dispute.Status.AWAITING_RESPONSE,
            opened_by=user,
            description=description,
            evidence_urls=evidence_urls or [],
            **fields,
        )
        uow.add_event(
            DisputeOpened(
                aggregate_id=dispute.pk,
                dispute_id=dispute.pk,
                booking_id=booking.pk,
                subject=subject,
                opened_by_id=user.pk,
                counterparty_id=dispute.counterparty_id,
            )
        )
    logger.info(f"Dispute {dispute.pk} ({subject}/{category}) opened on booking {booking.pk} by user {user.pk}")
    return dispute


def open_room_fee_dispute(
    booking: Booking,
    user,
    *,
    category: str,
    description: str,
    evidence_urls: list | None = None,
    now: datetime | None = None,
) -> Dispute:
    """Guest contests the room fee while the guest dispute window is open."""
    now = now or timezone.now()
    if booking.guest_id != user.pk:
        raise DisputeError("Only the guest can dispute the room fee.")
    if category not in ROOM_FEE_CATEGORY_LIMITS:
        raise DisputeError(f"'{category}' is not a room fee dispute category.")
    if booking.status != Booking.Status.ACTIVE:
        raise DisputeError(f"Bookings in status '{booking.status}' cannot be disputed.")
    if booking.user_dispute_opened or _has_active_dispute(booking):
        raise DisputeError("This booking already has an open dispute.")
    if not booking.guest_dispute_window_open(now):
        raise DisputeError("The guest dispute window is closed.")

    payment = _payment_for(booking)
    if payment.status != Payment.Status.ESCROW_HELD or not payment.room_fee_in_escrow:
        raise DisputeError("The room fee is no longer held in escrow.")

    return _open(
        booking,
        payment,
        user=user,
        subject=Dispute.Subject.ROOM_FEE,
        category=category,
        description=description,
        evidence_urls=evidence_urls,
        flag="user_dispute_opened",
        now=now,
        max_refund_percent=ROOM_FEE_CATEGORY_LIMITS[category],
    )


def open_deposit_dispute(
    booking: Booking,
    user,
    *,
    category: str,
    claimed_amount,
    description: str,
    evidence_urls: list | None = None,
    now: datetime | None = None,
) -> Dispute:
    """Realtor claims against the security deposit after check-out."""
    now = now or timezone.now()
    if booking.property.owner_id != user.pk:
        raise DisputeError("Only the property owner can claim against the deposit.")
    if category not in DEPOSIT_CATEGORIES:
        raise DisputeError(f"'{category}' is not a deposit dispute category.")
    if booking.status != Booking.Status.ACTIVE:
        raise DisputeError(f"Bookings in status '{booking.status}' cannot be disputed.")
    if booking.realtor_dispute_opened or _has_active_dispute(booking):
        raise DisputeError("This booking already has an open dispute.")
    if not booking.realtor_dispute_window_open(now):
        raise DisputeError("The realtor dispute window is closed.")

    payment = _payment_for(booking)
    if payment.status != Payment.Status.PARTIALLY_RELEASED or not payment.deposit_in_escrow:
        raise DisputeError("The security deposit is not held in escrow.")
    claimed_amount = quantize_money(claimed_amount)
    if claimed_amount <= 0 or claimed_amount > payment.security_deposit:
        raise DisputeError(f"The claimed amount must be between 0 and {payment.security_deposit}.")

    return _open(
        booking,
        payment,
        user=user,
        subject=Dispute.Subject.SECURITY_DEPOSIT,
        category=category,
        description=description,
        evidence_urls=evidence_urls,
        flag="realtor_dispute_opened",
        now=now,
        claimed_amount=claimed_amount,
    )


def respond_to_dispute(
    dispute: Dispute,
    user,
    *,
    action: str,
    note: str = "",
    now: datetime | None = None,
) -> Dispute:
    """
    Counterparty answers the claim.

    ACCEPT executes the claim as filed. REJECT_ESCALATE hands the case to
    platform admins with a decision deadline.
    """
    now = now or timezone.now()
    if dispute.status != Dispute.Status.AWAITING_RESPONSE:
        raise DisputeError(f"Dispute is {dispute.status}; it is not awaiting a response.")
    if dispute.counterparty_id != user.pk:
        raise DisputeError("Only the other party can respond to this dispute.")

    if action == Dispute.ResponseAction.ACCEPT:
        accepted = {
            "expected_statuses": (Dispute.Status.AWAITING_RESPONSE,),
            "response_action": action,
            "response_note": note,
            "responded_at": now,
        }
        if dispute.subject == Dispute.Subject.ROOM_FEE:
            return execute_room_fee_resolution(dispute, dispute.max_refund_percent or 0, now=now, **accepted)
        return execute_deposit_resolution(dispute, dispute.claimed_amount or Decimal("0.00"), now=now, **accepted)

    if action != Dispute.ResponseAction.REJECT_ESCALATE:
        raise DisputeError(f"Unknown response '{action}'.")

    deadline = now + timedelta(hours=lifecycle_settings()["ADMIN_REVIEW_HOURS"])
    with DjangoUnitOfWork() as uow:
        updated = Dispute.objects.filter(
            pk=dispute.pk,
            status=Dispute.Status.AWAITING_RESPONSE,
            execution_started_at__isnull=True,
        ).update(
            status=Dispute.Status.ESCALATED,
            response_action=action,
            response_note=note,
            responded_at=now,
            escalated_at=now,
            admin_deadline=deadline,
            updated_at=now,
        )
        if not updated:
            raise DisputeConflictError("The dispute changed while responding.")
        uow.add_event(
            DisputeEscalated(
                aggregate_id=dispute.pk,
                dispute_id=dispute.pk,
                booking_id=dispute.booking_id,
                admin_deadline=deadline,
            )
        )
    dispute.refresh_from_db()
    logger.info(f"Dispute {dispute.pk} escalated; admin deadline {deadline.isoformat()}")
    return dispute


def withdraw_dispute(dispute: Dispute, user, *, now: datetime | None = None) -> Dispute:
    """
    Opener drops the claim; frozen funds return to their previous state.

    Once an admin has decided the case, or a resolution has started moving
    money, the dispute can only end through that resolution.
    """
    now = now or timezone.now()
    if dispute.opened_by_id != user.pk:
        raise DisputeError("Only the party who opened the dispute can withdraw it.")
    if not dispute.is_active:
        raise DisputeError(f"Dispute is {dispute.status} and can no longer be withdrawn.")
    if dispute.admin_decision or dispute.execution_started_at:
        raise DisputeError(f"Dispute {dispute.pk} is being resolved and can no longer be withdrawn.")

    booking = Booking.objects.select_related("property").get(pk=dispute.booking_id)
    flag = "user_dispute_opened" if dispute.subject == Dispute.Subject.ROOM_FEE else "realtor_dispute_opened"
    with DjangoUnitOfWork():
        payment = Payment.objects.select_for_update().get(booking=booking)
        prefix = dispute_reference(dispute, "")
        if any(leg.startswith(prefix) for leg in (payment.metadata or {}).get("gateway_refunds", {})):
            raise DisputeError(f"Dispute {dispute.pk} already has a gateway refund and can no longer be withdrawn.")
        withdrawn = Dispute.objects.filter(
            pk=dispute.pk,
            status__in=Dispute.ACTIVE_STATUSES,
            execution_started_at__isnull=True,
            admin_decision="",
        ).update(status=Dispute.Status.CANCELLED, updated_at=now)
        if not withdrawn:
            raise DisputeConflictError(f"Dispute {dispute.pk} changed and can no longer be withdrawn.")
        transition_payment_status(
            payment,
            payment.pre_dispute_status or Payment.Status.ESCROW_HELD,
            pre_dispute_status="",
        )
        transition_booking_status(
            booking,
            Booking.Status.ACTIVE,
            reason="dispute withdrawn",
            now=now,
            extra_fields={flag: False},
        )
    dispute.refresh_from_db()
    logger.info(f"Dispute {dispute.pk} withdrawn by user {user.pk}")
    return dispute


def admin_resolve_dispute(
    dispute: Dispute,
    admin,
    *,
    decision: str,
    awarded_amount=None,
    notes: str = "",
    now: datetime | None = None,
) -> Dispute:
    """Decide an escalated dispute and execute the decision."""
    now = now or timezone.now()
    if dispute.status != Dispute.Status.ESCALATED:
        raise DisputeError("Only escalated disputes can be resolved by an admin.")

    if dispute.subject == Dispute.Subject.ROOM_FEE:
        if decision not in DECISION_PERCENT:
            raise DisputeError(f"'{decision}' is not a room fee decision.")
        percent = DECISION_PERCENT[decision]
        if percent > (dispute.max_refund_percent or 0):
            raise DisputeError(
                f"Category '{dispute.category}' allows at most a {dispute.max_refund_percent}% refund."
            )
        return execute_room_fee_resolution(
            dispute, percent, triggered_by=admin, now=now, **_decision_fields(admin, decision, Decimal("0.00"), notes)
        )

    if decision != Dispute.AdminDecision.DEPOSIT_AWARD:
        raise DisputeError(f"'{decision}' is not a deposit decision.")
    if awarded_amount is None:
        raise DisputeError("An awarded amount is required for deposit disputes.")
    awarded_amount = quantize_money(awarded_amount)
    if awarded_amount < 0 or awarded_amount > (dispute.claimed_amount or Decimal("0.00")):
        raise DisputeError(f"The award must be between 0 and the claimed {dispute.claimed_amount}.")
    return execute_deposit_resolution(
        dispute, awarded_amount, triggered_by=admin, now=now, **_decision_fields(admin, decision, awarded_amount, notes)
    )


def _decision_fields(admin, decision: str, awarded_amount: Decimal, notes: str) -> dict:
    return {
        "expected_statuses": (Dispute.Status.ESCALATED,),
        "admin_decision": decision,
        "awarded_amount": awarded_amount,
        "admin_notes": notes,
        "resolved_by": admin,
    }


def _claim_for_execution(
    dispute: Dispute,
    subject: str,
    now: datetime,
    expected_statuses,
    fields: dict,
) -> tuple[Booking, Payment]:
    """
    Mark the dispute as executing and return its booking and payment.

    The claim is a compare-and-set on status and ``execution_started_at``,
    so ACCEPT, an admin decision and a withdrawal racing on the same dispute
    cannot both go ahead. ``fields`` are written in the same update.
    """
    if dispute.subject != subject:
        raise DisputeError(f"Dispute {dispute.pk} is not a {subject} dispute.")
    claimed = Dispute.objects.filter(
        pk=dispute.pk,
        status__in=expected_statuses,
        execution_started_at__isnull=True,
    ).update(execution_started_at=now, updated_at=now, **fields)
    dispute.refresh_from_db()
    if not claimed:
        if dispute.is_active and dispute.execution_started_at is not None:
            raise DisputeConflictError(f"Dispute {dispute.pk} is already being executed.")
        raise DisputeError(f"Dispute {dispute.pk} is {dispute.status}.")

    try:
        if EscrowEvent.objects.filter(transaction_reference__startswith=dispute_reference(dispute, "")).exists():
            raise DisputeError(f"Dispute {dispute.pk} was already executed.")
        booking = Booking.objects.select_related("property", "guest").get(pk=dispute.booking_id)
        payment = _payment_for(booking)
        if payment.status != Payment.Status.DISPUTED:
            raise DisputeError(f"Payment {payment.reference} is {payment.status}, not disputed.")
    except Exception:
        _release_claim(dispute)
        raise
    return booking, payment


def _release_claim(dispute: Dispute) -> None:
    Dispute.objects.filter(pk=dispute.pk, status__in=Dispute.ACTIVE_STATUSES).update(execution_started_at=None)
    dispute.execution_started_at = None


def _close(dispute: Dispute, outcome: str, now: datetime) -> None:
    updated = Dispute.objects.filter(pk=dispute.pk, status__in=Dispute.ACTIVE_STATUSES).update(
        status=Dispute.Status.RESOLVED,
        outcome=outcome,
        resolved_at=now,
        updated_at=now,
    )
    if not updated:
        raise DisputeError(f"Dispute {dispute.pk} changed during execution.")


def execute_room_fee_resolution(
    dispute: Dispute,
    percent: int,
    *,
    triggered_by=None,
    now: datetime | None = None,
    expected_statuses=Dispute.ACTIVE_STATUSES,
    **fields,
) -> Dispute:
    """
    Refund ``percent`` of the room fee and pay the rest out.

    100 % also returns the deposit and cancels the booking. Otherwise the
    remainder is split by the payment's commission rate and the booking
    goes back to ACTIVE.
    """
    now = now or timezone.now()
    booking, payment = _claim_for_execution(dispute, Dispute.Subject.ROOM_FEE, now, expected_statuses, fields)
    try:
        return _settle_room_fee(dispute, booking, payment, percent, triggered_by, now)
    except Exception:
        _release_claim(dispute)
        raise


def _settle_room_fee(dispute: Dispute, booking: Booking, payment: Payment, percent: int, triggered_by, now) -> Dispute:
    if not payment.room_fee_in_escrow:
        raise DisputeError("The room fee is no longer held in escrow.")

    room_fee = payment.room_fee
    deposit = payment.security_deposit if payment.deposit_in_escrow else Decimal("0.00")
    if percent >= 100:
        refund = room_fee + deposit
        outcome = Dispute.Outcome.FULL_REFUND_EXECUTED
    else:
        refund = quantize_money(room_fee * Decimal(percent) / Decimal(100))
        outcome = (
            Dispute.Outcome.PARTIAL_REFUND_EXECUTED if percent > 0 else Dispute.Outcome.NO_REFUND_EXECUTED
        )

    customer_leg = dispute_reference(dispute, "customer")
    provider_response: dict = {}
    if refund > 0:
        try:
            provider_response = refund_to_customer(
                payment,
                leg=customer_leg,
                amount=refund,
                note=f"Dispute {dispute.pk} on booking {booking.booking_code}",
            )
        except gateway.PaymentGatewayError as exc:
            payment.record_metadata(dispute_refund_failed=dispute.pk, dispute_refund_error=str(exc))
            raise

    realtor_amount = Decimal("0.00")
    with DjangoUnitOfWork() as uow:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if percent >= 100:
            record_escrow_event(
                booking=booking,
                payment=payment,
                event_type=EventType.REFUND_ROOM_FEE_TO_CUSTOMER,
                amount=room_fee,
                from_party=Party.ESCROW,
                to_party=Party.CUSTOMER,
                transaction_reference=customer_leg,
                triggered_by=triggered_by,
                notes=f"Dispute {dispute.pk}: {dispute.category}",
                provider_response=provider_response,
            )
            if deposit > 0:
                record_escrow_event(
                    booking=booking,
                    payment=payment,
                    event_type=EventType.RELEASE_DEPOSIT_TO_CUSTOMER,
                    amount=deposit,
                    from_party=Party.ESCROW,
                    to_party=Party.CUSTOMER,
                    transaction_reference=dispute_reference(dispute, "deposit"),
                    triggered_by=triggered_by,
                )
            transition_payment_status(
                payment,
                Payment.Status.REFUNDED,
                refund_amount=refund,
                refunded_at=now,
                room_fee_in_escrow=False,
                deposit_in_escrow=False,
            )
            transition_booking_status(
                booking,
                Booking.Status.CANCELLED,
                reason=f"dispute {dispute.pk} full refund",
                now=now,
                extra_fields={
                    "cancelled_at": now,
                    "cancellation_source": Booking.CancellationSource.ADMIN
                    if triggered_by is not None
                    else Booking.CancellationSource.REALTOR,
                    "cancellation_reason": f"Dispute {dispute.pk}: {dispute.category}"[:255],
                },
            )
            release_booking_dates(booking)
        else:
            if refund > 0:
                record_escrow_event(
                    booking=booking,
                    payment=payment,
                    event_type=EventType.REFUND_PARTIAL_TO_CUSTOMER,
                    amount=refund,
                    from_party=Party.ESCROW,
                    to_party=Party.CUSTOMER,
                    transaction_reference=customer_leg,
                    triggered_by=triggered_by,
                    notes=f"Dispute {dispute.pk}: {percent}% of room fee",
                    provider_response=provider_response,
                )
            realtor_amount, _ = pay_room_fee_split(
                booking=booking,
                payment=payment,
                amount=room_fee - refund,
                reference=dispute_reference(dispute, "realtor"),
                realtor_event=EventType.REFUND_PARTIAL_TO_REALTOR if refund > 0 else EventType.RELEASE_ROOM_FEE_SPLIT,
                triggered_by=triggered_by,
                notes=f"Dispute {dispute.pk}",
            )
            transition_payment_status(
                payment,
                Payment.Status.PARTIALLY_RELEASED,
                refund_amount=refund,
                room_fee_in_escrow=False,
                room_fee_released_at=now,
                pre_dispute_status="",
            )
            transition_booking_status(booking, Booking.Status.ACTIVE, reason=f"dispute {dispute.pk} resolved", now=now)

        _close(dispute, outcome, now)
        uow.add_event(
            DisputeResolved(
                aggregate_id=dispute.pk,
                dispute_id=dispute.pk,
                booking_id=booking.pk,
                guest_id=booking.guest_id,
                realtor_id=booking.property.owner_id,
                outcome=outcome,
                refund_amount=refund,
                realtor_amount=realtor_amount,
            )
        )

    dispute.refresh_from_db()
    logger.info(f"Dispute {dispute.pk} executed: {outcome}, guest refund {refund}")
    return dispute


def execute_deposit_resolution(
    dispute: Dispute,
    awarded_amount,
    *,
    triggered_by=None,
    now: datetime | None = None,
    expected_statuses=Dispute.ACTIVE_STATUSES,
    **fields,
) -> Dispute:
    """Pay ``awarded_amount`` of the deposit to the realtor and refund the rest; the booking completes."""
    now = now or timezone.now()
    booking, payment = _claim_for_execution(dispute, Dispute.Subject.SECURITY_DEPOSIT, now, expected_statuses, fields)
    try:
        return _settle_deposit(dispute, booking, payment, awarded_amount, triggered_by, now)
    except Exception:
        _release_claim(dispute)
        raise


def _settle_deposit(dispute: Dispute, booking: Booking, payment: Payment, awarded_amount, triggered_by, now) -> Dispute:
    if not payment.deposit_in_escrow:
        raise DisputeError("The security deposit is not held in escrow.")

    deposit = payment.security_deposit
    awarded_amount = quantize_money(awarded_amount)
    if awarded_amount < 0 or awarded_amount > deposit:
        raise DisputeError(f"The award cannot exceed the {deposit} deposit.")
    remainder = deposit - awarded_amount

    if awarded_amount == deposit:
        outcome = Dispute.Outcome.DEPOSIT_FORFEITED
    elif awarded_amount == 0:
        outcome = Dispute.Outcome.DEPOSIT_RETURNED
    else:
        outcome = Dispute.Outcome.DEPOSIT_PARTIAL

    customer_leg = dispute_reference(dispute, "customer")
    provider_response: dict = {}
    if remainder > 0:
        try:
            provider_response = refund_to_customer(
                payment,
                leg=customer_leg,
                amount=remainder,
                note=f"Deposit dispute {dispute.pk} on booking {booking.booking_code}",
            )
        except gateway.PaymentGatewayError as exc:
            payment.record_metadata(dispute_refund_failed=dispute.pk, dispute_refund_error=str(exc))
            raise

    with DjangoUnitOfWork() as uow:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if awarded_amount > 0:
            realtor_leg = dispute_reference(dispute, "realtor")
            record_escrow_event(
                booking=booking,
                payment=payment,
                event_type=EventType.PAY_REALTOR_FROM_DEPOSIT,
                amount=awarded_amount,
                from_party=Party.ESCROW,
                to_party=Party.REALTOR,
                transaction_reference=realtor_leg,
                triggered_by=triggered_by,
                notes=f"Dispute {dispute.pk}: {dispute.category}",
            )
            credit_wallet(
                get_realtor_wallet(booking.property.owner),
                awarded_amount,
                source=WalletTransaction.Source.SECURITY_DEPOSIT,
                reference=realtor_leg,
                booking=booking,
            )
        if remainder > 0:
            record_escrow_event(
                booking=booking,
                payment=payment,
                event_type=EventType.RELEASE_DEPOSIT_TO_CUSTOMER,
                amount=remainder,
                from_party=Party.ESCROW,
                to_party=Party.CUSTOMER,
                transaction_reference=customer_leg,
                triggered_by=triggered_by,
                provider_response=provider_response,
            )
        transition_payment_status(
            payment,
            Payment.Status.SETTLED,
            deposit_in_escrow=False,
            deposit_released_at=now,
            pre_dispute_status="",
        )
        transition_booking_status(booking, Booking.Status.COMPLETED, reason=f"dispute {dispute.pk} resolved", now=now)
        _close(dispute, outcome, now)
        uow.add_event(
            DisputeResolved(
                aggregate_id=dispute.pk,
                dispute_id=dispute.pk,
                booking_id=booking.pk,
                guest_id=booking.guest_id,
                realtor_id=booking.property.owner_id,
                outcome=outcome,
                refund_amount=remainder,
                realtor_amount=awarded_amount,
            )
        )

    dispute.refresh_from_db()
    logger.info(f"Deposit dispute {dispute.pk} executed: {outcome}, realtor {awarded_amount}, guest {remainder}")
    return dispute


def dispute_stats() -> dict:
    by_status = {row["status"]: row["n"] for row in Dispute.objects.values("status").annotate(n=Count("id"))}
    by_outcome = {
        row["outcome"]: row["n"]
        for row in Dispute.objects.exclude(outcome="").values("outcome").annotate(n=Count("id"))
    }
    overdue = Dispute.objects.filter(
        status=Dispute.Status.ESCALATED,
        admin_deadline__lt=timezone.now(),
    ).count()
    return {"by_status": by_status, "by_outcome": by_outcome, "overdue_escalations": overdue}


def overdue_escalations(now: datetime | None = None):
    now = now or timezone.now()
    return Dispute.objects.filter(
        status=Dispute.Status.ESCALATED,
        admin_deadline__lt=now,
        overdue_notified_at__isnull=True,
    ).select_related("booking")
