"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from .models import Booking
from .services import check_out, confirm_check_in, expire_booking

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_pending_bookings")
def expire_pending_bookings() -> dict[str, int]:
    """
    Cancel unpaid bookings whose payment hold has run out.

    Dates are released and a pending payment is marked failed.

    Runs every minute.

    Returns:
        dict: {"expired": number of cancelled bookings}
    """
    now = timezone.now()
    expired_count = 0

    expired_bookings = Booking.objects.filter(
        status=Booking.Status.PENDING,
        expires_at__lte=now,
    ).select_related("property", "guest")

    for booking in expired_bookings:
        try:
            if expire_booking(booking, now=now):
                expired_count += 1
        except Exception as e:
            logger.error(f"Error expiring booking {booking.id}: {e}", exc_info=True)

    if expired_count > 0:
        logger.info(f"Expired {expired_count} pending bookings")

    return {"expired": expired_count}


@shared_task(name="bookings.auto_confirm_check_ins")
def auto_confirm_check_ins() -> dict[str, int]:
    """
    Check guests in automatically when nobody confirmed in time.

    A paid booking that is still NOT_CHECKED_IN 30 minutes after the
    check-in time is confirmed as AUTO_FALLBACK.

    Runs every 5 minutes.
    """
    now = timezone.now()
    confirmed = 0

    candidates = Booking.objects.filter(
        status=Booking.Status.ACTIVE,
        stay_status=Booking.StayStatus.NOT_CHECKED_IN,
        check_in__lte=now.date(),
    ).select_related("property", "guest")

    for booking in candidates:
        if now < booking.auto_check_in_due_at():
            continue
        try:
            confirm_check_in(
                booking,
                confirmation_type=Booking.CheckInConfirmation.AUTO_FALLBACK,
                now=now,
            )
            confirmed += 1
        except Exception as e:
            logger.error(f"Error auto-confirming check-in for booking {booking.id}: {e}", exc_info=True)

    if confirmed > 0:
        logger.info(f"Auto-confirmed {confirmed} check-ins")

    return {"confirmed": confirmed}


@shared_task(name="bookings.auto_check_out_bookings")
def auto_check_out_bookings() -> dict[str, int]:
    """
    Check guests out once the check-out time has passed.

    Runs every 15 minutes.
    """
    now = timezone.now()
    checked_out = 0

    candidates = Booking.objects.filter(
        status__in=[Booking.Status.ACTIVE, Booking.Status.DISPUTED],
        stay_status=Booking.StayStatus.CHECKED_IN,
        check_out__lte=now.date(),
    ).select_related("property", "guest")

    for booking in candidates:
        if now < booking.check_out_at:
            continue
        try:
            check_out(booking, now=now)
            checked_out += 1
        except Exception as e:
            logger.error(f"Error checking out booking {booking.id}: {e}", exc_info=True)

    if checked_out > 0:
        logger.info(f"Checked out {checked_out} bookings")

    return {"checked_out": checked_out}


@shared_task(name="bookings.send_upcoming_booking_reminders")
def send_upcoming_booking_reminders() -> dict[str, int]:
    """
    Remind guests of tomorrow's check-in.

    Each booking is reminded once (``reminder_sent_at``).

    Runs every 6 hours.

    Returns:
        dict: {"sent": number of reminders}
    """
    from apps.notifications.models import Notification
    from apps.notifications.services import notify_user

    tomorrow = timezone.localdate() + timedelta(days=1)
    sent_count = 0

    upcoming_bookings = Booking.objects.filter(
        status=Booking.Status.ACTIVE,
        check_in=tomorrow,
        reminder_sent_at__isnull=True,
    ).select_related("property", "guest")

    for booking in upcoming_bookings:
        try:
            notify_user(
                booking.guest,
                notification_type=Notification.Type.BOOKING,
                title=f"Your stay at {booking.property.title} starts tomorrow",
                message=(
                    f"Check-in for booking {booking.booking_code} is on "
                    f"{booking.check_in:%d %b %Y} from {booking.property.check_in_time:%H:%M}."
                ),
                booking=booking,
            )
            Booking.objects.filter(pk=booking.pk).update(reminder_sent_at=timezone.now())
            sent_count += 1
            logger.info(f"Sent reminder for booking {booking.booking_code}")
        except Exception as e:
            logger.error(f"Error sending reminder for booking {booking.id}: {e}", exc_info=True)

    if sent_count > 0:
        logger.info(f"Sent {sent_count} booking reminders")

    return {"sent": sent_count}
