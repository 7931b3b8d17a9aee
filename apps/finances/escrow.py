"""Escrow ledger and scheduled releases.

``record_escrow_event`` is the only writer of ``EscrowEvent``. Each money
movement carries a deterministic ``transaction_reference``; the unique
constraint on that column, together with a row lock on the payment, makes a
second release of the same funds impossible.

Gateway refunds happen before the database work. Each refund leg is claimed
in ``payment.metadata["gateway_refunds"]`` under a row lock before the
gateway is called and marked sent afterwards, so neither a concurrent caller
nor a retry after a failed database update refunds the guest twice.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from django.db import IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.lifecycle import transition_booking_status, transition_payment_status
from apps.bookings.models import Booking
from shared.application.uow import DjangoUnitOfWork

from . import gateway
from .domain.events import RoomFeeReleased, SecurityDepositReturned
from .domain.fees import quantize_money, split_room_fee
from .models import EscrowEvent, Payment, Wallet, WalletTransaction
from .wallets import credit_wallet, get_platform_wallet, get_realtor_wallet

logger = logging.getLogger(__name__)

Party = EscrowEvent.Party
EventType = EscrowEvent.EventType


class EscrowReleaseError(Exception):
    """Funds cannot be released or refunded in the booking's current state."""


class RefundInProgressError(EscrowReleaseError):
    """Another caller has claimed this refund leg and not finished yet."""


REFUND_PENDING = "pending"
REFUND_SENT = "sent"


def get_or_none_by_reference(reference: str) -> EscrowEvent | None:
    if not reference:
        return None
    return EscrowEvent.objects.filter(transaction_reference=reference).first()


def record_escrow_event(
    *,
    booking: Booking,
    event_type: str,
    amount,
    from_party: str,
    to_party: str,
    payment: Payment | None = None,
    transaction_reference: str = "",
    triggered_by=None,
    notes: str = "",
    provider_response: dict | None = None,
) -> EscrowEvent:
    amount = quantize_money(amount)
    if amount < 0:
        raise ValueError("Escrow amounts cannot be negative.")
    try:
        with transaction.atomic():
            event = EscrowEvent.objects.create(
                booking=booking,
                payment=payment,
                event_type=event_type,
                amount=amount,
                currency=payment.currency if payment else booking.currency,
                from_party=from_party,
                to_party=to_party,
                transaction_reference=transaction_reference,
                triggered_by=triggered_by,
                notes=notes,
                provider_response=provider_response or {},
            )
    except IntegrityError as exc:
        raise EscrowReleaseError(f"Ledger entry {transaction_reference} already exists.") from exc
    logger.info(
        f"Escrow {event_type} {amount} {from_party}->{to_party} booking={booking.pk} ref={transaction_reference}"
    )
    return event


def escrow_reference(kind: str, booking: Booking, payment: Payment) -> str:
    return f"{kind}_{booking.pk}_{payment.reference_suffix}"


def gateway_refunded_total(payment: Payment) -> Decimal:
    """Everything sent to the gateway or claimed for sending on this payment."""
    refunds = (payment.metadata or {}).get("gateway_refunds", {})
    return sum((Decimal(entry["amount"]) for entry in refunds.values()), Decimal("0.00"))


def _claim_refund_leg(payment: Payment, leg: str, amount: Decimal) -> dict | None:
    """
    Reserve ``leg`` on the locked payment before the gateway is called.

    Returns the stored entry when the leg was already sent. The claim is
    committed with the surrounding transaction, so a second caller sees it
    and stops instead of refunding again.
    """
    with transaction.atomic():
        locked = Payment.objects.select_for_update().get(pk=payment.pk)
        refunds = dict((locked.metadata or {}).get("gateway_refunds", {}))
        entry = refunds.get(leg)
        if entry is not None:
            if entry.get("status", REFUND_SENT) == REFUND_SENT:
                if Decimal(entry["amount"]) != amount:
                    raise EscrowReleaseError(
                        f"Refund {leg} on {locked.reference} was already sent for {entry['amount']}, not {amount}."
                    )
                return entry
            raise RefundInProgressError(
                f"Refund {leg} on {locked.reference} is already in progress (claimed {entry.get('claimed_at')})."
            )
        if gateway_refunded_total(locked) + amount > locked.amount:
            raise EscrowReleaseError(
                f"Refund of {amount} would exceed the {locked.amount} paid on {locked.reference}."
            )
        refunds[leg] = {"amount": str(amount), "status": REFUND_PENDING, "claimed_at": timezone.now().isoformat()}
        locked.record_metadata(gateway_refunds=refunds)
    payment.metadata = locked.metadata
    return None


def _finish_refund_leg(payment: Payment, leg: str, entry: dict | None, **metadata) -> None:
    """Mark a claimed leg sent, or drop the claim when ``entry`` is None."""
    with transaction.atomic():
        locked = Payment.objects.select_for_update().get(pk=payment.pk)
        refunds = dict((locked.metadata or {}).get("gateway_refunds", {}))
        if entry is None:
            refunds.pop(leg, None)
        else:
            refunds[leg] = entry
        locked.record_metadata(gateway_refunds=refunds, **metadata)
    payment.metadata = locked.metadata


def refund_to_customer(payment: Payment, *, leg: str, amount, note: str = "") -> dict:
    """
    Refund ``amount`` through the gateway once per ``leg``.

    Raises ``EscrowReleaseError`` when the refund would take the total
    refunded above what the guest paid, and ``RefundInProgressError`` while
    another caller holds the leg. Gateway failures release the claim, are
    recorded in the payment metadata and re-raised.
    """
    amount = quantize_money(amount)
    if amount <= 0:
        return {}

    sent = _claim_refund_leg(payment, leg, amount)
    if sent is not None:
        logger.warning(f"Refund leg {leg} for payment {payment.reference} already sent, skipping")
        return sent.get("response", {})

    try:
        response = gateway.refund_transaction(
            transaction_reference=payment.reference,
            amount=amount,
            currency=payment.currency,
            merchant_note=note,
        )
    except gateway.PaymentGatewayError as exc:
        _finish_refund_leg(
            payment,
            leg,
            None,
            last_refund_error={"leg": leg, "error": str(exc), "at": timezone.now().isoformat()},
        )
        logger.error(f"Gateway refund {leg} for payment {payment.reference} failed: {exc}")
        raise

    _finish_refund_leg(
        payment,
        leg,
        {"amount": str(amount), "status": REFUND_SENT, "at": timezone.now().isoformat(), "response": response},
    )
    return response


def _pay_out(
    *,
    booking: Booking,
    payment: Payment,
    wallet: Wallet,
    amount: Decimal,
    event_type: str,
    to_party: str,
    reference: str,
    source: str,
    triggered_by=None,
    notes: str = "",
) -> None:
    """Ledger entry plus wallet credit for one leg leaving escrow; zero legs are skipped."""
    if amount <= 0:
        return
    record_escrow_event(
        booking=booking,
        payment=payment,
        event_type=event_type,
        amount=amount,
        from_party=Party.ESCROW,
        to_party=to_party,
        transaction_reference=reference,
        triggered_by=triggered_by,
        notes=notes,
    )
    credit_wallet(wallet, amount, source=source, reference=reference, booking=booking)


def pay_room_fee_split(
    *,
    booking: Booking,
    payment: Payment,
    amount: Decimal,
    reference: str,
    realtor_event: str = EventType.RELEASE_ROOM_FEE_SPLIT,
    source: str = WalletTransaction.Source.ROOM_FEE,
    triggered_by=None,
    notes: str = "",
) -> tuple[Decimal, Decimal]:
    """Split ``amount`` of room fee by the payment's commission rate and pay both parties."""
    realtor_amount, platform_amount = split_room_fee(amount, payment.commission_rate)
    _pay_out(
        booking=booking,
        payment=payment,
        wallet=get_realtor_wallet(booking.property.owner),
        amount=realtor_amount,
        event_type=realtor_event,
        to_party=Party.REALTOR,
        reference=reference,
        source=source,
        triggered_by=triggered_by,
        notes=notes,
    )
    _pay_out(
        booking=booking,
        payment=payment,
        wallet=get_platform_wallet(),
        amount=platform_amount,
        event_type=EventType.COLLECT_ROOM_FEE_COMMISSION,
        to_party=Party.PLATFORM,
        reference=f"{reference}:platform",
        source=source,
        triggered_by=triggered_by,
        notes=notes,
    )
    return realtor_amount, platform_amount


def release_room_fee(booking: Booking, *, now: datetime | None = None, triggered_by=None) -> dict:
    """Pay out the room fee once the guest dispute window has closed."""
    now = now or timezone.now()
    try:
        payment = Payment.objects.get(booking=booking)
    except Payment.DoesNotExist as exc:
        raise EscrowReleaseError(f"Booking {booking.pk} has no payment.") from exc

    reference = escrow_reference("room_fee", booking, payment)
    if get_or_none_by_reference(reference):
        logger.warning(f"Room fee for booking {booking.pk} already released ({reference})")
        return {"already_released": True, "reference": reference}

    if booking.status != Booking.Status.ACTIVE:
        raise EscrowReleaseError(f"Booking {booking.pk} is {booking.status}, not active.")
    if booking.stay_status not in (Booking.StayStatus.CHECKED_IN, Booking.StayStatus.CHECKED_OUT):
        raise EscrowReleaseError(f"Booking {booking.pk} has not checked in.")
    if not booking.room_fee_release_eligible_at or booking.room_fee_release_eligible_at > now:
        raise EscrowReleaseError(f"Guest dispute window for booking {booking.pk} is still open.")
    if booking.user_dispute_opened:
        raise EscrowReleaseError(f"Booking {booking.pk} has a guest dispute.")

    with DjangoUnitOfWork() as uow:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status != Payment.Status.ESCROW_HELD or not payment.room_fee_in_escrow:
            raise EscrowReleaseError(
                f"Payment {payment.reference} is {payment.status}; room fee not in escrow."
            )
        realtor_amount, platform_amount = pay_room_fee_split(
            booking=booking,
            payment=payment,
            amount=payment.room_fee,
            reference=reference,
            triggered_by=triggered_by,
        )
        transition_payment_status(
            payment,
            Payment.Status.PARTIALLY_RELEASED,
            room_fee_in_escrow=False,
            room_fee_released_at=now,
        )
        uow.add_event(
            RoomFeeReleased(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                realtor_id=booking.property.owner_id,
                realtor_amount=realtor_amount,
                platform_amount=platform_amount,
            )
        )

    logger.info(
        f"Room fee released for booking {booking.pk}: realtor {realtor_amount}, platform {platform_amount}"
    )
    return {
        "already_released": False,
        "reference": reference,
        "realtor_amount": realtor_amount,
        "platform_amount": platform_amount,
    }


def return_security_deposit(booking: Booking, *, now: datetime | None = None, triggered_by=None) -> dict:
    """Refund the deposit after the realtor dispute window and complete the booking."""
    now = now or timezone.now()
    try:
        payment = Payment.objects.get(booking=booking)
    except Payment.DoesNotExist as exc:
        raise EscrowReleaseError(f"Booking {booking.pk} has no payment.") from exc

    reference = escrow_reference("deposit", booking, payment)
    if get_or_none_by_reference(reference):
        logger.warning(f"Deposit for booking {booking.pk} already returned ({reference})")
        return {"already_released": True, "reference": reference}

    if booking.status != Booking.Status.ACTIVE:
        raise EscrowReleaseError(f"Booking {booking.pk} is {booking.status}, not active.")
    if booking.stay_status != Booking.StayStatus.CHECKED_OUT:
        raise EscrowReleaseError(f"Booking {booking.pk} has not checked out.")
    if not booking.deposit_refund_eligible_at or booking.deposit_refund_eligible_at > now:
        raise EscrowReleaseError(f"Realtor dispute window for booking {booking.pk} is still open.")
    if booking.realtor_dispute_opened:
        raise EscrowReleaseError(f"Booking {booking.pk} has a realtor dispute.")
    if payment.status != Payment.Status.PARTIALLY_RELEASED:
        raise EscrowReleaseError(f"Payment {payment.reference} is {payment.status}, expected partially released.")

    deposit = payment.security_deposit if payment.deposit_in_escrow else Decimal("0.00")
    provider_response: dict = {}
    if deposit > 0:
        try:
            provider_response = refund_to_customer(
                payment, leg=reference, amount=deposit, note=f"Security deposit for booking {booking.booking_code}"
            )
        except gateway.PaymentGatewayError as exc:
            payment.record_metadata(deposit_refund_failed=True, deposit_refund_error=str(exc))
            raise

    with DjangoUnitOfWork() as uow:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if deposit > 0:
            record_escrow_event(
                booking=booking,
                payment=payment,
                event_type=EventType.RELEASE_DEPOSIT_TO_CUSTOMER,
                amount=deposit,
                from_party=Party.ESCROW,
                to_party=Party.CUSTOMER,
                transaction_reference=reference,
                triggered_by=triggered_by,
                provider_response=provider_response,
            )
        transition_payment_status(
            payment,
            Payment.Status.SETTLED,
            deposit_in_escrow=False,
            deposit_released_at=now,
        )
        transition_booking_status(booking, Booking.Status.COMPLETED, reason="deposit returned", now=now)
        uow.add_event(
            SecurityDepositReturned(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                guest_id=booking.guest_id,
                amount=deposit,
            )
        )

    logger.info(f"Security deposit {deposit} returned for booking {booking.pk}; booking completed")
    return {"already_released": False, "reference": reference, "amount": deposit}
