"""Payment processing services.

Flow: ``initialize_payment`` opens a checkout with the gateway, the guest
pays, and either ``verify_payment`` (client callback) or the gateway webhook
calls ``finalize_payment``. Finalization is idempotent: whichever path
arrives first moves the money into escrow and activates the booking, the
other one sees ``already_finalized``.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from decimal import Decimal

from django.db.models import Sum  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.domain.events import BookingActivated
from apps.bookings.domain.lifecycle import (
    BookingLifecycleError,
    transition_booking_status,
    transition_payment_status,
    validate_payment_transition,
)
from apps.bookings.models import Booking
from shared.application.uow import DjangoUnitOfWork

from . import gateway
from .config import get_effective_commission_rate
from .domain.fees import quantize_money, split_room_fee
from .escrow import record_escrow_event
from .models import EscrowEvent, Payment, PaymentTransaction, WalletTransaction
from .wallets import credit_wallet, get_platform_wallet, get_realtor_wallet

logger = logging.getLogger(__name__)


class PaymentInitializationError(Exception):
    pass


class PaymentFinalizationError(Exception):
    pass


def generate_payment_reference(booking: Booking) -> str:
    return f"STZ-{booking.booking_code}-{secrets.token_hex(4).upper()}"


def get_realtor_monthly_volume(realtor, now: datetime | None = None) -> Decimal:
    """Room fees paid to the realtor's listings since the start of the current month."""
    now = timezone.localtime(now or timezone.now())
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    total = Payment.objects.filter(
        booking__property__owner=realtor,
        paid_at__isnull=False,
        paid_at__gte=month_start,
    ).exclude(status=Payment.Status.REFUNDED).aggregate(total=Sum("room_fee"))["total"]
    return total or Decimal("0.00")


def initialize_payment(booking: Booking) -> Payment:
    """Create or reuse the booking's payment and obtain a gateway checkout URL."""
    if booking.status != Booking.Status.PENDING:
        raise PaymentInitializationError("Only pending bookings can be paid.")
    if booking.is_hold_expired():
        raise PaymentInitializationError("The booking hold has expired. Please book again.")

    payment = Payment.objects.filter(booking=booking).first()
    if payment is None:
        payment = Payment.objects.create(
            booking=booking,
            reference=generate_payment_reference(booking),
            amount=booking.total_price,
            currency=booking.currency,
        )
    elif payment.status == Payment.Status.PENDING and payment.authorization_url:
        logger.info(f"Reusing checkout for payment {payment.reference}")
        return payment
    elif payment.status == Payment.Status.FAILED:
        transition_payment_status(
            payment,
            Payment.Status.PENDING,
            reference=generate_payment_reference(booking),
            amount=booking.total_price,
            authorization_url="",
            access_code="",
        )
    elif payment.status != Payment.Status.PENDING:
        raise PaymentInitializationError("This booking has already been paid.")

    data = gateway.initialize_transaction(
        email=booking.guest.email,
        amount=payment.amount,
        reference=payment.reference,
        currency=payment.currency,
        metadata={"booking_id": booking.pk, "booking_code": booking.booking_code},
    )
    payment.authorization_url = data.get("authorization_url", "")
    payment.access_code = data.get("access_code", "")
    payment.save(update_fields=["authorization_url", "access_code", "updated_at"])
    logger.info(f"Payment {payment.reference} initialized for booking {booking.pk}")
    return payment


def mark_payment_failed(payment: Payment, reason: str, **metadata) -> Payment:
    if payment.status != Payment.Status.PENDING:
        logger.warning(f"Payment {payment.reference} is {payment.status}; not marking failed ({reason})")
        return payment
    payment.record_metadata(failure_reason=reason, **metadata)
    transition_payment_status(payment, Payment.Status.FAILED)
    logger.info(f"Payment {payment.reference} failed: {reason}")
    return payment


def log_gateway_transaction(payment: Payment | None, event: str, reference: str, payload: dict, status: str = ""):
    return PaymentTransaction.objects.create(
        payment=payment,
        event=event,
        reference=reference or "",
        payload=_json_safe(payload),
        status=status,
    )


def _json_safe(payload):
    if isinstance(payload, dict):
        return {key: _json_safe(value) for key, value in payload.items()}
    if isinstance(payload, list):
        return [_json_safe(item) for item in payload]
    if isinstance(payload, Decimal):
        return str(payload)
    return payload


def verify_payment(payment: Payment) -> dict:
    """Ask the gateway about the payment and finalize or fail it accordingly."""
    if payment.paid_at and payment.status != Payment.Status.PENDING:
        return {"already_finalized": True, "payment": payment}

    data = gateway.verify_transaction(payment.reference)
    gateway_status = data.get("status", "")
    log_gateway_transaction(payment, "verify", payment.reference, data, status=str(gateway_status))

    if gateway_status != "success":
        mark_payment_failed(payment, data.get("gateway_response") or f"gateway status {gateway_status}")
        return {"already_finalized": False, "payment": payment}

    paid_amount = data.get("amount")
    if paid_amount is not None and quantize_money(paid_amount) != payment.amount:
        mark_payment_failed(
            payment,
            "amount_mismatch",
            expected_amount=str(payment.amount),
            received_amount=str(paid_amount),
        )
        return {"already_finalized": False, "payment": payment}

    return finalize_payment(payment, data)


def finalize_payment(payment: Payment, gateway_payload: dict | None = None, *, now: datetime | None = None) -> dict:
    """
    Move a paid booking's money into escrow and activate the booking.

    Idempotent: a payment that already has ``paid_at`` returns
    ``already_finalized=True``. Raises ``PaymentFinalizationError`` when the
    booking can no longer be activated; the payment is then flagged
    ``needs_manual_refund``.
    """
    now = now or timezone.now()
    payment.refresh_from_db()
    if payment.paid_at and payment.status != Payment.Status.PENDING:
        logger.warning(f"Payment {payment.reference} already finalized")
        return {"already_finalized": True, "payment": payment}

    booking = Booking.objects.select_related("property", "property__owner", "guest").get(pk=payment.booking_id)

    if payment.status != Payment.Status.PENDING or booking.status != Booking.Status.PENDING:
        _flag_manual_refund(payment, booking, now)
        raise PaymentFinalizationError(
            f"Booking {booking.pk} is {booking.status} and payment is {payment.status}; cannot finalize."
        )
    validate_payment_transition(payment.status, Payment.Status.ESCROW_HELD)

    realtor = booking.property.owner
    commission_rate = get_effective_commission_rate(get_realtor_monthly_volume(realtor, now))
    _, platform_fee = split_room_fee(booking.room_fee, commission_rate)

    try:
        with DjangoUnitOfWork() as uow:
            updated = Payment.objects.filter(
                pk=payment.pk,
                paid_at__isnull=True,
                status=Payment.Status.PENDING,
            ).update(
                status=Payment.Status.ESCROW_HELD,
                paid_at=now,
                room_fee=booking.room_fee,
                cleaning_fee=booking.cleaning_fee,
                service_fee=booking.service_fee,
                security_deposit=booking.security_deposit,
                platform_fee=platform_fee,
                commission_rate=commission_rate,
                room_fee_in_escrow=True,
                deposit_in_escrow=booking.security_deposit > 0,
                cleaning_fee_released=True,
                service_fee_collected=True,
                updated_at=now,
            )
            if not updated:
                payment.refresh_from_db()
                logger.warning(f"Payment {payment.reference} finalized concurrently")
                return {"already_finalized": True, "payment": payment}
            payment.refresh_from_db()

            _record_payment_ledger(booking, payment)
            transition_booking_status(
                booking,
                Booking.Status.ACTIVE,
                reason="payment held in escrow",
                now=now,
                extra_fields={"expires_at": None},
            )
            uow.add_event(
                BookingActivated(
                    aggregate_id=booking.pk,
                    booking_id=booking.pk,
                    property_id=booking.property_id,
                    guest_id=booking.guest_id,
                    realtor_id=realtor.pk,
                    amount=payment.amount,
                )
            )
    except BookingLifecycleError as exc:
        payment.refresh_from_db()
        _flag_manual_refund(payment, booking, now)
        raise PaymentFinalizationError(str(exc)) from exc

    if gateway_payload:
        payment.record_metadata(gateway=_json_safe(gateway_payload))
    logger.info(f"Payment {payment.reference} finalized; booking {booking.pk} active")
    return {"already_finalized": False, "payment": payment}


def _record_payment_ledger(booking: Booking, payment: Payment) -> None:
    Party = EscrowEvent.Party
    EventType = EscrowEvent.EventType
    base = payment.reference

    record_escrow_event(
        booking=booking,
        payment=payment,
        event_type=EventType.HOLD_ROOM_FEE,
        amount=payment.room_fee,
        from_party=Party.CUSTOMER,
        to_party=Party.ESCROW,
        transaction_reference=f"{base}:room_fee",
    )
    if payment.security_deposit > 0:
        record_escrow_event(
            booking=booking,
            payment=payment,
            event_type=EventType.HOLD_SECURITY_DEPOSIT,
            amount=payment.security_deposit,
            from_party=Party.CUSTOMER,
            to_party=Party.ESCROW,
            transaction_reference=f"{base}:deposit",
        )
    if payment.cleaning_fee > 0:
        record_escrow_event(
            booking=booking,
            payment=payment,
            event_type=EventType.RELEASE_CLEANING_FEE,
            amount=payment.cleaning_fee,
            from_party=Party.CUSTOMER,
            to_party=Party.REALTOR,
            transaction_reference=f"{base}:cleaning_fee",
        )
        credit_wallet(
            get_realtor_wallet(booking.property.owner),
            payment.cleaning_fee,
            source=WalletTransaction.Source.CLEANING_FEE,
            reference=f"{base}:cleaning_fee",
            booking=booking,
        )
    if payment.service_fee > 0:
        record_escrow_event(
            booking=booking,
            payment=payment,
            event_type=EventType.COLLECT_SERVICE_FEE,
            amount=payment.service_fee,
            from_party=Party.CUSTOMER,
            to_party=Party.PLATFORM,
            transaction_reference=f"{base}:service_fee",
        )
        credit_wallet(
            get_platform_wallet(),
            payment.service_fee,
            source=WalletTransaction.Source.SERVICE_FEE,
            reference=f"{base}:service_fee",
            booking=booking,
        )


def _flag_manual_refund(payment: Payment, booking: Booking, now: datetime) -> None:
    payment.record_metadata(
        needs_manual_refund=True,
        late_payment_at=now.isoformat(),
        booking_status_at_payment=booking.status,
    )
    logger.error(
        f"Payment {payment.reference} received for booking {booking.pk} in status {booking.status}; "
        f"manual refund required"
    )


def handle_gateway_webhook(payload: dict) -> dict:
    """Dispatch a verified gateway webhook. Unknown references are acknowledged."""
    from .withdrawals import handle_transfer_event

    event = payload.get("event", "")
    data = payload.get("data") or {}
    reference = data.get("reference", "") or ""
    payment = Payment.objects.filter(reference=reference).first() if reference else None
    log_gateway_transaction(payment, event or "unknown", reference, payload, status=str(data.get("status", "")))

    if event == "charge.success":
        if payment is None:
            logger.warning(f"Webhook {event} for unknown payment reference {reference}")
            return {"handled": False}
        paid_amount = gateway.from_minor_units(data.get("amount"))
        if paid_amount is not None and paid_amount != payment.amount:
            mark_payment_failed(
                payment,
                "amount_mismatch",
                expected_amount=str(payment.amount),
                received_amount=str(paid_amount),
            )
            return {"handled": True, "status": payment.status}
        try:
            result = finalize_payment(payment, data)
        except PaymentFinalizationError as exc:
            logger.error(f"Webhook finalization failed for {reference}: {exc}")
            return {"handled": False, "error": str(exc)}
        return {"handled": True, "already_finalized": result["already_finalized"]}

    if event.startswith("transfer."):
        return {"handled": handle_transfer_event(event, reference, data)}

    logger.info(f"Ignoring gateway webhook event {event}")
    return {"handled": False}
