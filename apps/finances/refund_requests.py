"""Guest refund requests on bookings whose room fee was already paid out.

The realtor reviews the request first. An approved request is sent to the
guest by an admin through ``refund_to_customer`` under its own
``refund_request_<id>`` leg, and the realtor's wallet is debited for it.
Money still held in escrow is refunded by the escrow flows, not here, so a
request is capped at what was paid minus everything refunded or still held.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import IntegrityError  # type: ignore
from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from shared.application.uow import DjangoUnitOfWork

from . import gateway
from .domain.events import RefundRequestCompleted, RefundRequestDecided, RefundRequested
from .domain.fees import quantize_money
from .escrow import EscrowReleaseError, gateway_refunded_total, record_escrow_event, refund_to_customer
from .models import EscrowEvent, Payment, RefundRequest, WalletTransaction
from .wallets import debit_wallet, get_realtor_wallet

logger = logging.getLogger(__name__)

REFUNDABLE_PAYMENT_STATUSES = (Payment.Status.PARTIALLY_RELEASED, Payment.Status.SETTLED)


class RefundRequestError(Exception):
    pass


class RefundRequestConflictError(RefundRequestError):
    """Somebody else changed the request first."""


def refundable_amount(payment: Payment) -> Decimal:
    """What a refund request may still ask for on ``payment``."""
    remaining = payment.amount - gateway_refunded_total(payment) - payment.refundable_balance
    return max(quantize_money(remaining), Decimal("0.00"))


def request_refund(booking, user, *, amount, reason: str, notes: str = "") -> RefundRequest:
    if booking.guest_id != user.pk:
        raise RefundRequestError("Only the guest of this booking can request a refund.")
    payment = Payment.objects.filter(booking=booking).first()
    if payment is None or payment.status not in REFUNDABLE_PAYMENT_STATUSES:
        raise RefundRequestError("Refunds can only be requested once the room fee was paid out.")
    if reason not in RefundRequest.Reason.values:
        raise RefundRequestError(f"Unknown refund reason {reason!r}.")

    amount = quantize_money(amount)
    if amount <= 0:
        raise RefundRequestError("The refund amount must be positive.")
    available = refundable_amount(payment)
    if amount > available:
        raise RefundRequestError(f"At most {available} can be refunded on this booking.")
    if RefundRequest.objects.filter(booking=booking, status__in=RefundRequest.OPEN_STATUSES).exists():
        raise RefundRequestError("This booking already has an open refund request.")

    try:
        with DjangoUnitOfWork() as uow:
            refund_request = RefundRequest.objects.create(
                booking=booking,
                payment=payment,
                requested_by=user,
                realtor=booking.realtor,
                requested_amount=amount,
                currency=payment.currency,
                reason=reason,
                customer_notes=notes,
            )
            uow.add_event(
                RefundRequested(
                    refund_request_id=refund_request.pk,
                    booking_id=booking.pk,
                    realtor_id=booking.realtor.pk,
                    amount=amount,
                )
            )
    except IntegrityError as exc:
        raise RefundRequestError("This booking already has an open refund request.") from exc

    logger.info(f"Refund request {refund_request.pk} for booking {booking.pk}: {amount} ({reason})")
    return refund_request


def _conflict_or_error(refund_request: RefundRequest, action: str) -> RefundRequestError:
    refund_request.refresh_from_db()
    if refund_request.status == RefundRequest.Status.ADMIN_PROCESSING:
        return RefundRequestConflictError(f"Refund request {refund_request.pk} is being processed.")
    return RefundRequestError(f"Cannot {action} a refund request that is {refund_request.status}.")


def realtor_decide(refund_request: RefundRequest, realtor, *, approved: bool, reason: str = "", notes: str = "") -> RefundRequest:
    if refund_request.realtor_id != realtor.pk:
        raise RefundRequestError("Only the realtor of this booking can review the request.")
    if not approved and not reason.strip():
        raise RefundRequestError("A reason is required to reject a refund request.")

    status = RefundRequest.Status.REALTOR_APPROVED if approved else RefundRequest.Status.REALTOR_REJECTED
    with DjangoUnitOfWork() as uow:
        updated = RefundRequest.objects.filter(
            pk=refund_request.pk,
            status=RefundRequest.Status.PENDING_REALTOR_APPROVAL,
        ).update(
            status=status,
            realtor_reason=reason,
            realtor_notes=notes,
            realtor_decided_at=timezone.now(),
            updated_at=timezone.now(),
        )
        if not updated:
            raise _conflict_or_error(refund_request, "review")
        uow.add_event(
            RefundRequestDecided(
                refund_request_id=refund_request.pk,
                booking_id=refund_request.booking_id,
                guest_id=refund_request.requested_by_id,
                approved=approved,
                reason=reason,
            )
        )

    refund_request.refresh_from_db()
    logger.info(f"Refund request {refund_request.pk} {status} by realtor {realtor.pk}")
    return refund_request


def cancel_refund_request(refund_request: RefundRequest, user) -> RefundRequest:
    is_admin = hasattr(user, "is_platform_admin") and user.is_platform_admin()
    if not is_admin and refund_request.requested_by_id != user.pk:
        raise RefundRequestError("Only the guest who asked can cancel this refund request.")

    updated = RefundRequest.objects.filter(
        pk=refund_request.pk,
        status__in=(RefundRequest.Status.PENDING_REALTOR_APPROVAL, RefundRequest.Status.REALTOR_APPROVED),
    ).update(status=RefundRequest.Status.CANCELLED, updated_at=timezone.now())
    if not updated:
        raise _conflict_or_error(refund_request, "cancel")

    refund_request.refresh_from_db()
    logger.info(f"Refund request {refund_request.pk} cancelled by user {user.pk}")
    return refund_request


def _back_to_approved(refund_request: RefundRequest, failure: str) -> None:
    RefundRequest.objects.filter(pk=refund_request.pk, status=RefundRequest.Status.ADMIN_PROCESSING).update(
        status=RefundRequest.Status.REALTOR_APPROVED,
        failure_reason=failure,
        updated_at=timezone.now(),
    )
    refund_request.refresh_from_db()


def process_refund_request(refund_request: RefundRequest, admin, *, amount=None, notes: str = "") -> RefundRequest:
    """
    Send an approved request to the guest.

    ``amount`` defaults to what was requested and may only lower it. A
    failed gateway call puts the request back to approved so it can be
    processed again.
    """
    now = timezone.now()
    claimed = RefundRequest.objects.filter(
        pk=refund_request.pk,
        status=RefundRequest.Status.REALTOR_APPROVED,
    ).update(
        status=RefundRequest.Status.ADMIN_PROCESSING,
        admin=admin,
        admin_notes=notes,
        admin_processed_at=now,
        failure_reason="",
        updated_at=now,
    )
    if not claimed:
        raise _conflict_or_error(refund_request, "process")
    refund_request.refresh_from_db()

    amount = quantize_money(refund_request.requested_amount if amount is None else amount)
    if amount <= 0 or amount > refund_request.requested_amount:
        _back_to_approved(refund_request, "")
        raise RefundRequestError(f"The refund must be between 0 and {refund_request.requested_amount}.")

    payment = refund_request.payment
    payment.refresh_from_db()
    if payment.status not in REFUNDABLE_PAYMENT_STATUSES:
        _back_to_approved(refund_request, f"Payment is {payment.status}.")
        raise RefundRequestError(f"Cannot refund while the payment is {payment.status}.")

    leg = refund_request.gateway_leg
    try:
        response = refund_to_customer(
            payment,
            leg=leg,
            amount=amount,
            note=f"Refund request {refund_request.pk}: {refund_request.reason}",
        )
    except (gateway.PaymentGatewayError, EscrowReleaseError) as exc:
        _back_to_approved(refund_request, str(exc))
        logger.error(f"Refund request {refund_request.pk} failed: {exc}")
        raise

    booking = refund_request.booking
    with DjangoUnitOfWork() as uow:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        record_escrow_event(
            booking=booking,
            payment=payment,
            event_type=EscrowEvent.EventType.REFUND_PARTIAL_TO_CUSTOMER,
            amount=amount,
            from_party=EscrowEvent.Party.REALTOR,
            to_party=EscrowEvent.Party.CUSTOMER,
            transaction_reference=f"{leg}_{payment.reference_suffix}",
            triggered_by=admin,
            notes=f"Refund request {refund_request.pk}",
            provider_response=response,
        )
        debit_wallet(
            get_realtor_wallet(refund_request.realtor),
            amount,
            source=WalletTransaction.Source.REFUND,
            reference=leg,
            booking=booking,
            metadata={"refund_request_id": refund_request.pk},
            allow_negative=True,
        )
        Payment.objects.filter(pk=payment.pk).update(refund_amount=F("refund_amount") + amount, refunded_at=now)
        RefundRequest.objects.filter(pk=refund_request.pk).update(
            status=RefundRequest.Status.COMPLETED,
            actual_refund_amount=amount,
            provider_response=response,
            completed_at=timezone.now(),
            updated_at=timezone.now(),
        )
        uow.add_event(
            RefundRequestCompleted(
                refund_request_id=refund_request.pk,
                booking_id=booking.pk,
                guest_id=refund_request.requested_by_id,
                realtor_id=refund_request.realtor_id,
                amount=amount,
            )
        )

    refund_request.refresh_from_db()
    logger.info(f"Refund request {refund_request.pk} completed: {amount} sent to guest")
    return refund_request
