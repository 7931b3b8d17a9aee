"""Celery tasks that move money out of escrow and pay realtors."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking
from shared.infrastructure.locks import job_lock

from .escrow import release_room_fee, return_security_deposit
from .models import Payment
from .withdrawals import retry_failed_withdrawals as retry_failed

logger = logging.getLogger(__name__)


@shared_task(name="finances.release_room_fees")
def release_room_fees() -> dict[str, int]:
    """
    Release room fees whose guest dispute window has closed.

    Runs every 5 minutes.

    Returns:
        dict: {"released": n, "failed": m} or {"skipped": 1} when another run holds the lock
    """
    with job_lock("finances.release_room_fees") as acquired:
        if not acquired:
            return {"skipped": 1}

        now = timezone.now()
        released = failed = 0
        bookings = Booking.objects.filter(
            status=Booking.Status.ACTIVE,
            stay_status__in=[Booking.StayStatus.CHECKED_IN, Booking.StayStatus.CHECKED_OUT],
            room_fee_release_eligible_at__lte=now,
            user_dispute_opened=False,
            payment__status=Payment.Status.ESCROW_HELD,
            payment__room_fee_in_escrow=True,
        ).select_related("property", "property__owner")

        for booking in bookings:
            try:
                result = release_room_fee(booking, now=now)
                if not result["already_released"]:
                    released += 1
            except Exception as e:
                failed += 1
                logger.error(f"Error releasing room fee for booking {booking.id}: {e}", exc_info=True)

    if released or failed:
        logger.info(f"Room fee release: {released} released, {failed} failed")
    return {"released": released, "failed": failed}


@shared_task(name="finances.return_security_deposits")
def return_security_deposits() -> dict[str, int]:
    """
    Refund deposits whose realtor dispute window has closed, completing the booking.

    Runs every 5 minutes.
    """
    with job_lock("finances.return_security_deposits") as acquired:
        if not acquired:
            return {"skipped": 1}

        now = timezone.now()
        returned = failed = 0
        bookings = Booking.objects.filter(
            status=Booking.Status.ACTIVE,
            stay_status=Booking.StayStatus.CHECKED_OUT,
            deposit_refund_eligible_at__lte=now,
            realtor_dispute_opened=False,
            payment__status=Payment.Status.PARTIALLY_RELEASED,
        ).select_related("property", "guest")

        for booking in bookings:
            try:
                result = return_security_deposit(booking, now=now)
                if not result["already_released"]:
                    returned += 1
            except Exception as e:
                failed += 1
                logger.error(f"Error returning deposit for booking {booking.id}: {e}", exc_info=True)

    if returned or failed:
        logger.info(f"Deposit return: {returned} returned, {failed} failed")
    return {"returned": returned, "failed": failed}


@shared_task(name="finances.retry_failed_withdrawals")
def retry_failed_withdrawals() -> dict[str, int]:
    """Retry failed payouts that have not used up their attempts. Runs hourly."""
    with job_lock("finances.retry_failed_withdrawals") as acquired:
        if not acquired:
            return {"skipped": 1}
        return retry_failed()
