from __future__ import annotations

from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from apps.bookings.models import Booking
from apps.bookings.tasks import (
    auto_check_out_bookings,
    auto_confirm_check_ins,
    expire_pending_bookings,
    send_upcoming_booking_reminders,
)
from apps.finances.models import Payment
from apps.finances.services import initialize_payment
from apps.notifications.models import Notification


def _shift_stay(booking: Booking, check_in_offset: int, check_out_offset: int) -> None:
    today = timezone.localdate()
    Booking.objects.filter(pk=booking.pk).update(
        check_in=today + timedelta(days=check_in_offset),
        check_out=today + timedelta(days=check_out_offset),
    )
    booking.refresh_from_db()


@pytest.mark.django_db
def test_expire_pending_bookings_fails_pending_payment(booking):
    payment = initialize_payment(booking)
    Booking.objects.filter(pk=booking.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

    assert expire_pending_bookings() == {"expired": 1}

    booking.refresh_from_db()
    payment.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED
    assert payment.status == Payment.Status.FAILED
    assert payment.metadata["failure_reason"] == "Payment hold expired"


@pytest.mark.django_db
def test_expire_pending_bookings_skips_live_holds(booking):
    assert expire_pending_bookings() == {"expired": 0}
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING


@pytest.mark.django_db
def test_auto_confirm_check_ins_after_grace_period(paid_booking):
    _shift_stay(paid_booking, -1, 1)

    assert auto_confirm_check_ins() == {"confirmed": 1}

    paid_booking.refresh_from_db()
    assert paid_booking.stay_status == Booking.StayStatus.CHECKED_IN
    assert paid_booking.checkin_confirmation_type == Booking.CheckInConfirmation.AUTO_FALLBACK


@pytest.mark.django_db
def test_auto_confirm_ignores_future_stays(paid_booking):
    assert auto_confirm_check_ins() == {"confirmed": 0}


@pytest.mark.django_db
def test_auto_check_out_after_check_out_time(paid_booking, factories):
    factories.check_in_booking(paid_booking, now=timezone.now())
    _shift_stay(paid_booking, -3, -1)

    assert auto_check_out_bookings() == {"checked_out": 1}

    paid_booking.refresh_from_db()
    assert paid_booking.stay_status == Booking.StayStatus.CHECKED_OUT
    assert paid_booking.realtor_dispute_closes_at is not None


@pytest.mark.django_db
def test_reminders_are_sent_once(paid_booking):
    assert send_upcoming_booking_reminders() == {"sent": 1}
    assert send_upcoming_booking_reminders() == {"sent": 0}

    notification = Notification.objects.get(user=paid_booking.guest, booking=paid_booking)
    assert "starts tomorrow" in notification.title
    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == [paid_booking.guest.email]
