"""
Event handlers that turn domain events into notifications.

Handlers run after the publishing transaction committed, so they read
fresh rows by id. The message bus isolates failures: one broken handler
never stops the others.
"""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model  # type: ignore

from apps.bookings.domain.events import (
    BookingActivated,
    BookingCancelled,
    BookingExpired,
    CheckInConfirmed,
    GuestCheckedOut,
)
from apps.bookings.models import Booking
from apps.disputes.domain.events import DisputeEscalated, DisputeOpened, DisputeResolved
from apps.finances.domain.events import (
    RefundRequestCompleted,
    RefundRequestDecided,
    RefundRequested,
    RoomFeeReleased,
    SecurityDepositReturned,
    WithdrawalCompleted,
    WithdrawalFailed,
)
from apps.users.events import RealtorStatusChanged
from shared.application.message_bus import message_bus

from .models import Notification
from .services import notify_admins, notify_user

logger = logging.getLogger(__name__)

User = get_user_model()


def _booking(booking_id: int) -> Booking:
    return Booking.objects.select_related("property", "guest", "property__owner").get(pk=booking_id)


def _money(amount, booking: Booking) -> str:  # type: ignore
    return f"{amount} {booking.currency}"


# ===== Booking =====

def handle_booking_activated(event: BookingActivated) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.guest,
        notification_type=Notification.Type.PAYMENT,
        title=f"Booking {booking.booking_code} confirmed",
        message=(
            f"We received {_money(event.amount, booking)} for {booking.property.title}, "
            f"{booking.check_in:%d %b} to {booking.check_out:%d %b %Y}. "
            "The funds are held until your stay starts."
        ),
        booking=booking,
    )
    notify_user(
        booking.property.owner,
        notification_type=Notification.Type.BOOKING,
        title=f"New booking {booking.booking_code}",
        message=(
            f"{booking.property.title} is booked for {booking.total_nights} nights "
            f"from {booking.check_in:%d %b %Y}."
        ),
        booking=booking,
    )


def handle_booking_cancelled(event: BookingCancelled) -> None:
    booking = _booking(event.booking_id)
    refund = _money(event.refund_amount, booking)
    notify_user(
        booking.guest,
        notification_type=Notification.Type.REFUND if event.refund_amount else Notification.Type.BOOKING,
        title=f"Booking {booking.booking_code} cancelled",
        message=f"Your booking at {booking.property.title} was cancelled. Refund: {refund}.",
        booking=booking,
    )
    notify_user(
        booking.property.owner,
        notification_type=Notification.Type.BOOKING,
        title=f"Booking {booking.booking_code} cancelled",
        message=f"The booking from {booking.check_in:%d %b %Y} was cancelled by the {event.source}.",
        booking=booking,
    )


def handle_booking_expired(event: BookingExpired) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.guest,
        notification_type=Notification.Type.BOOKING,
        title=f"Booking {booking.booking_code} expired",
        message=(
            f"The payment time for {booking.property.title} ran out and the dates were released. "
            "You can book again at any time."
        ),
        booking=booking,
    )


def handle_check_in_confirmed(event: CheckInConfirmed) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.guest,
        notification_type=Notification.Type.CHECK_IN,
        title=f"Checked in to {booking.property.title}",
        message=(
            "Welcome! If something is wrong with the property you can open a dispute "
            f"until {event.dispute_window_closes_at:%H:%M, %d %b}."
        ),
        booking=booking,
    )
    notify_user(
        booking.property.owner,
        notification_type=Notification.Type.CHECK_IN,
        title=f"Guest checked in ({booking.booking_code})",
        message="The room fee is released once the guest dispute window closes.",
        booking=booking,
    )


def handle_guest_checked_out(event: GuestCheckedOut) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.property.owner,
        notification_type=Notification.Type.CHECK_IN,
        title=f"Guest checked out ({booking.booking_code})",
        message=(
            "Inspect the property. Damage claims against the security deposit can be "
            f"opened until {event.realtor_dispute_closes_at:%H:%M, %d %b}."
        ),
        booking=booking,
    )


# ===== Escrow =====

def handle_room_fee_released(event: RoomFeeReleased) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.property.owner,
        notification_type=Notification.Type.PAYOUT,
        title=f"Payout for {booking.booking_code}",
        message=f"{_money(event.realtor_amount, booking)} was credited to your wallet.",
        booking=booking,
    )


def handle_security_deposit_returned(event: SecurityDepositReturned) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.guest,
        notification_type=Notification.Type.REFUND,
        title=f"Security deposit returned ({booking.booking_code})",
        message=(
            f"{_money(event.amount, booking)} is on its way back to you. "
            f"How was your stay at {booking.property.title}? Leave a review."
        ),
        booking=booking,
    )


# ===== Disputes =====

def handle_dispute_opened(event: DisputeOpened) -> None:
    booking = _booking(event.booking_id)
    counterparty = User.objects.get(pk=event.counterparty_id)
    notify_user(
        counterparty,
        notification_type=Notification.Type.DISPUTE,
        title=f"Dispute opened on {booking.booking_code}",
        message="Accept the claim or reject it to send it to the platform for a decision.",
        booking=booking,
    )


def handle_dispute_escalated(event: DisputeEscalated) -> None:
    booking = _booking(event.booking_id)
    notify_admins(
        subject=f"Dispute #{event.dispute_id} escalated",
        message=(
            f"Booking {booking.booking_code} needs a decision by "
            f"{event.admin_deadline:%Y-%m-%d %H:%M}."
        ),
    )


def handle_dispute_resolved(event: DisputeResolved) -> None:
    booking = _booking(event.booking_id)
    summary = (
        f"Outcome: {event.outcome.replace('_', ' ')}. "
        f"Refunded to guest: {_money(event.refund_amount, booking)}. "
        f"Paid to realtor: {_money(event.realtor_amount, booking)}."
    )
    for user in (booking.guest, booking.property.owner):
        notify_user(
            user,
            notification_type=Notification.Type.DISPUTE,
            title=f"Dispute on {booking.booking_code} resolved",
            message=summary,
            booking=booking,
        )


# ===== Withdrawals =====

def handle_withdrawal_completed(event: WithdrawalCompleted) -> None:
    realtor = User.objects.get(pk=event.realtor_id)
    notify_user(
        realtor,
        notification_type=Notification.Type.PAYOUT,
        title="Withdrawal completed",
        message=f"{event.net_amount} was sent to your bank account.",
    )


def handle_withdrawal_failed(event: WithdrawalFailed) -> None:
    realtor = User.objects.get(pk=event.realtor_id)
    notify_user(
        realtor,
        notification_type=Notification.Type.PAYOUT,
        title="Withdrawal failed",
        message=f"Your withdrawal could not be completed: {event.reason}",
    )


# ===== Refund requests =====

def handle_refund_requested(event: RefundRequested) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.property.owner,
        notification_type=Notification.Type.REFUND,
        title=f"Refund requested on {booking.booking_code}",
        message=(
            f"{booking.guest.email} asked for {_money(event.amount, booking)} back. "
            "Approve or reject the request so the platform can act on it."
        ),
        booking=booking,
    )


def handle_refund_request_decided(event: RefundRequestDecided) -> None:
    booking = _booking(event.booking_id)
    if event.approved:
        notify_admins(
            subject=f"Refund request #{event.refund_request_id} approved",
            message=f"Booking {booking.booking_code} has a realtor approved refund waiting to be processed.",
        )
        message = "The realtor approved your refund request. The platform will send it shortly."
    else:
        message = f"The realtor rejected your refund request: {event.reason}"
    notify_user(
        booking.guest,
        notification_type=Notification.Type.REFUND,
        title=f"Refund request on {booking.booking_code}",
        message=message,
        booking=booking,
    )


def handle_refund_request_completed(event: RefundRequestCompleted) -> None:
    booking = _booking(event.booking_id)
    notify_user(
        booking.guest,
        notification_type=Notification.Type.REFUND,
        title="Refund sent",
        message=f"{_money(event.amount, booking)} was refunded for booking {booking.booking_code}.",
        booking=booking,
    )
    notify_user(
        booking.property.owner,
        notification_type=Notification.Type.REFUND,
        title=f"Refund on {booking.booking_code}",
        message=f"{_money(event.amount, booking)} was refunded to the guest and taken from your wallet.",
        booking=booking,
    )


# ===== Accounts =====)

def handle_realtor_status_changed(event: RealtorStatusChanged) -> None:
    realtor = User.objects.get(pk=event.realtor_id)
    message = f"Your realtor account is now {event.status}."
    if event.reason:
        message = f"{message} Reason: {event.reason}"
    notify_user(
        realtor,
        notification_type=Notification.Type.ACCOUNT,
        title="Realtor account update",
        message=message,
    )


EVENT_HANDLERS = {
    BookingActivated: handle_booking_activated,
    BookingCancelled: handle_booking_cancelled,
    BookingExpired: handle_booking_expired,
    CheckInConfirmed: handle_check_in_confirmed,
    GuestCheckedOut: handle_guest_checked_out,
    RoomFeeReleased: handle_room_fee_released,
    SecurityDepositReturned: handle_security_deposit_returned,
    DisputeOpened: handle_dispute_opened,
    DisputeEscalated: handle_dispute_escalated,
    DisputeResolved: handle_dispute_resolved,
    WithdrawalCompleted: handle_withdrawal_completed,
    WithdrawalFailed: handle_withdrawal_failed,
    RefundRequested: handle_refund_requested,
    RefundRequestDecided: handle_refund_request_decided,
    RefundRequestCompleted: handle_refund_request_completed,
    RealtorStatusChanged: handle_realtor_status_changed,
}


def register_handlers() -> None:
    for event_type, handler in EVENT_HANDLERS.items():
        message_bus.register_event_handler(event_type, handler)
    logger.debug(f"Registered {len(EVENT_HANDLERS)} notification handlers")
