"""Cancellation refunds for paid bookings."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from django.utils import timezone  # type: ignore

from apps.bookings.domain.events import BookingCancelled
from apps.bookings.domain.lifecycle import transition_booking_status, transition_payment_status
from apps.bookings.models import Booking
from apps.properties.services import release_booking_dates
from shared.application.uow import DjangoUnitOfWork

from . import gateway
from .domain.refund_policy import (
    CancellationRefund,
    RefundTier,
    calculate_cancellation_refund,
    determine_refund_tier,
)
from .escrow import (
    EscrowReleaseError,
    escrow_reference,
    record_escrow_event,
    refund_to_customer,
)
from .models import EscrowEvent, Payment, WalletTransaction
from .wallets import credit_wallet, debit_wallet, get_platform_wallet, get_realtor_wallet

logger = logging.getLogger(__name__)

Party = EscrowEvent.Party
EventType = EscrowEvent.EventType


def _paid_payment(booking: Booking) -> Payment | None:
    payment = Payment.objects.filter(booking=booking).first()
    if payment and payment.paid_at and payment.status == Payment.Status.ESCROW_HELD:
        return payment
    return None


def cancellation_tier_for(booking: Booking, source: str, now: datetime | None = None) -> str:
    now = now or timezone.now()
    payment = _paid_payment(booking)
    if payment is None:
        return RefundTier.NONE
    if source in (Booking.CancellationSource.REALTOR, Booking.CancellationSource.ADMIN):
        return RefundTier.FULL
    hours = Decimal((booking.check_in_at - now).total_seconds()) / Decimal(3600)
    return determine_refund_tier(hours, paid=True)


def preview_cancellation_refund(booking: Booking, source: str, now: datetime | None = None) -> CancellationRefund:
    tier = cancellation_tier_for(booking, source, now)
    payment = _paid_payment(booking)
    if payment is None:
        return calculate_cancellation_refund(RefundTier.NONE, 0, 0, 0, 0)
    return calculate_cancellation_refund(
        tier,
        payment.room_fee,
        payment.cleaning_fee,
        payment.service_fee,
        payment.security_deposit,
    )


def execute_cancellation_refund(
    booking: Booking,
    *,
    source: str,
    reason: str = "",
    triggered_by=None,
    now: datetime | None = None,
) -> CancellationRefund:
    """
    Cancel an ACTIVE, paid booking and settle the money.

    The guest is refunded through the gateway first. If that fails only the
    failure is recorded on the payment and the error propagates; the booking
    stays active.
    """
    now = now or timezone.now()
    payment = _paid_payment(booking)
    if payment is None:
        raise EscrowReleaseError(f"Booking {booking.pk} has no payment held in escrow.")

    reference = escrow_reference("refund", booking, payment)
    if EscrowEvent.objects.filter(transaction_reference__startswith=reference).exists():
        raise EscrowReleaseError(f"Cancellation refund {reference} was already processed.")

    tier = cancellation_tier_for(booking, source, now)
    refund = calculate_cancellation_refund(
        tier,
        payment.room_fee,
        payment.cleaning_fee,
        payment.service_fee,
        payment.security_deposit,
    )

    provider_response: dict = {}
    if refund.total_refund > 0:
        try:
            provider_response = refund_to_customer(
                payment,
                leg=reference,
                amount=refund.total_refund,
                note=f"Cancellation of booking {booking.booking_code}",
            )
        except gateway.PaymentGatewayError as exc:
            payment.record_metadata(cancellation_refund_failed=True, cancellation_refund_error=str(exc))
            raise

    with DjangoUnitOfWork() as uow:
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        if payment.status != Payment.Status.ESCROW_HELD:
            raise EscrowReleaseError(f"Payment {payment.reference} is {payment.status}, not held in escrow.")

        customer_room_total = refund.customer_room_refund + refund.cleaning_fee_refund + refund.service_fee_refund
        if customer_room_total > 0:
            record_escrow_event(
                booking=booking,
                payment=payment,
                event_type=EventType.REFUND_ROOM_FEE_TO_CUSTOMER,
                amount=customer_room_total,
                from_party=Party.ESCROW,
                to_party=Party.CUSTOMER,
                transaction_reference=reference,
                triggered_by=triggered_by,
                notes=f"Cancellation ({tier})",
                provider_response=provider_response,
            )
        if refund.deposit_refund > 0:
            record_escrow_event(
                booking=booking,
                payment=payment,
                event_type=EventType.RELEASE_DEPOSIT_TO_CUSTOMER,
                amount=refund.deposit_refund,
                from_party=Party.ESCROW,
                to_party=Party.CUSTOMER,
                transaction_reference=f"{reference}:deposit",
                triggered_by=triggered_by,
            )

        kept = refund.realtor_share + refund.platform_share
        if kept > 0:
            _pay_cancellation_shares(booking, payment, refund, reference, triggered_by)

        if tier == RefundTier.FULL:
            _reverse_released_fees(booking, payment, refund, reference)

        if refund.total_refund > 0:
            transition_payment_status(
                payment,
                Payment.Status.REFUNDED,
                refund_amount=refund.total_refund,
                refunded_at=now,
                room_fee_in_escrow=False,
                deposit_in_escrow=False,
            )
        else:
            # Held funds went to realtor and platform; ESCROW_HELD cannot settle directly
            transition_payment_status(
                payment,
                Payment.Status.PARTIALLY_RELEASED,
                room_fee_in_escrow=False,
                room_fee_released_at=now,
            )
            transition_payment_status(payment, Payment.Status.SETTLED, deposit_in_escrow=False)

        transition_booking_status(
            booking,
            Booking.Status.CANCELLED,
            reason=f"cancelled by {source}",
            now=now,
            extra_fields={
                "cancelled_at": now,
                "cancellation_source": source,
                "cancellation_reason": reason[:255],
                "refund_tier": tier,
            },
        )
        release_booking_dates(booking)
        uow.add_event(
            BookingCancelled(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                guest_id=booking.guest_id,
                realtor_id=booking.property.owner_id,
                source=source,
                refund_tier=tier,
                refund_amount=refund.total_refund,
            )
        )

    logger.info(
        f"Booking {booking.pk} cancelled by {source}: tier {tier}, refunded {refund.total_refund}"
    )
    return refund


def _pay_cancellation_shares(booking, payment, refund: CancellationRefund, reference: str, triggered_by) -> None:
    """Realtor and platform keep their tier shares of the room fee."""
    realtor_wallet = get_realtor_wallet(booking.property.owner)
    platform_wallet = get_platform_wallet()

    if refund.realtor_share > 0:
        record_escrow_event(
            booking=booking,
            payment=payment,
            event_type=EventType.RELEASE_ROOM_FEE_SPLIT,
            amount=refund.realtor_share,
            from_party=Party.ESCROW,
            to_party=Party.REALTOR,
            transaction_reference=f"{reference}:realtor",
            triggered_by=triggered_by,
            notes="Cancellation share",
        )
        credit_wallet(
            realtor_wallet,
            refund.realtor_share,
            source=WalletTransaction.Source.CANCELLATION,
            reference=f"{reference}:realtor",
            booking=booking,
        )
    if refund.platform_share > 0:
        record_escrow_event(
            booking=booking,
            payment=payment,
            event_type=EventType.COLLECT_ROOM_FEE_COMMISSION,
            amount=refund.platform_share,
            from_party=Party.ESCROW,
            to_party=Party.PLATFORM,
            transaction_reference=f"{reference}:platform",
            triggered_by=triggered_by,
            notes="Cancellation share",
        )
        credit_wallet(
            platform_wallet,
            refund.platform_share,
            source=WalletTransaction.Source.CANCELLATION,
            reference=f"{reference}:platform",
            booking=booking,
        )


def _reverse_released_fees(booking, payment, refund: CancellationRefund, reference: str) -> None:
    """Take back the cleaning and service fees paid out when the payment cleared."""
    if refund.cleaning_fee_refund > 0:
        debit_wallet(
            get_realtor_wallet(booking.property.owner),
            refund.cleaning_fee_refund,
            source=WalletTransaction.Source.REFUND,
            reference=f"{reference}:cleaning_fee",
            booking=booking,
            allow_negative=True,
        )
    if refund.service_fee_refund > 0:
        debit_wallet(
            get_platform_wallet(),
            refund.service_fee_refund,
            source=WalletTransaction.Source.REFUND,
            reference=f"{reference}:service_fee",
            booking=booking,
            allow_negative=True,
        )
