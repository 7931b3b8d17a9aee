import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("stayza")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Unpaid holds past expires_at - every minute
    "expire-pending-bookings": {
        "task": "bookings.expire_pending_bookings",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Check-in fallback 30 minutes after check-in time
    "auto-confirm-check-ins": {
        "task": "bookings.auto_confirm_check_ins",
        "schedule": crontab(minute="*/5"),
    },
    # Check-out once check-out time has passed
    "auto-check-out-bookings": {
        "task": "bookings.auto_check_out_bookings",
        "schedule": crontab(minute="*/15"),
    },
    "send-upcoming-booking-reminders": {
        "task": "bookings.send_upcoming_booking_reminders",
        "schedule": crontab(minute=0, hour="*/6"),
    },
    # Escrow releases
    "release-room-fees": {
        "task": "finances.release_room_fees",
        "schedule": crontab(minute="*/5"),
        "options": {"expires": 240},
    },
    "return-security-deposits": {
        "task": "finances.return_security_deposits",
        "schedule": crontab(minute="*/5"),
        "options": {"expires": 240},
    },
    "retry-failed-withdrawals": {
        "task": "finances.retry_failed_withdrawals",
        "schedule": crontab(minute=30),
    },
    "notify-overdue-escalations": {
        "task": "disputes.notify_overdue_escalations",
        "schedule": crontab(minute=0),
    },
}

app.conf.timezone = "Africa/Lagos"
