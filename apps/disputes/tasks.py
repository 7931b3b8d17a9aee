"""Celery tasks for the dispute domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore
from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore

from .models import Dispute
from .services import overdue_escalations

logger = logging.getLogger(__name__)


@shared_task(name="disputes.notify_overdue_escalations")
def notify_overdue_escalations() -> dict[str, int]:
    """
    Alert platform admins about escalated disputes past their decision deadline.

    Each dispute is reported once. Runs hourly.

    Returns:
        dict: {"notified": n, "failed": m}
    """
    from apps.notifications.services import notify_admins

    now = timezone.now()
    notified = failed = 0
    for dispute in overdue_escalations(now):
        try:
            notify_admins(
                subject=f"Dispute #{dispute.pk} is past its decision deadline",
                message=(
                    f"Escalated {dispute.get_subject_display().lower()} dispute on booking "
                    f"{dispute.booking.booking_code} was due by {dispute.admin_deadline:%Y-%m-%d %H:%M}. "
                    f"Review it at {settings.FRONTEND_URL}/admin/disputes/{dispute.pk}."
                ),
            )
            Dispute.objects.filter(pk=dispute.pk).update(overdue_notified_at=now)
            notified += 1
        except Exception as e:
            failed += 1
            logger.error(f"Error notifying admins about dispute {dispute.pk}: {e}", exc_info=True)

    if notified or failed:
        logger.info(f"Overdue escalations: {notified} notified, {failed} failed")
    return {"notified": notified, "failed": failed}
