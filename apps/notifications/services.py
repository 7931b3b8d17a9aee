"""Notification services for sending emails and in-app messages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.template.loader import render_to_string  # type: ignore
from django.utils.html import strip_tags  # type: ignore

from .models import Notification

if TYPE_CHECKING:  # pragma: no cover
    from apps.users.models import CustomUser
    from apps.bookings.models import Booking

logger = logging.getLogger(__name__)


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(
    recipient_email: str,
    subject: str,
    template_name: str | None,
    context: dict,
    *,
    html_message: str | None = None,
) -> bool:
    """
    Send one email through Django's mail backend.

    Args:
        recipient_email: Recipient address
        subject: Subject line
        template_name: Django template for the HTML body (optional)
        context: Template context; ``context["message"]`` is the plain
            text body when neither a template nor HTML is given
        html_message: Prebuilt HTML body (optional)

    Returns:
        bool: True if the backend accepted the message
    """
    try:
        if html_message:
            text_message = strip_tags(html_message)
        elif template_name:
            html_message = render_to_string(template_name, context)
            text_message = strip_tags(html_message)
        else:
            text_message = context.get("message", "")
            html_message = None

        send_mail(
            subject=subject,
            message=text_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )

        logger.info(f"Email sent successfully to {recipient_email}: {subject}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {recipient_email}: {e}", exc_info=True)
        return False


def notify_admins(subject: str, message: str) -> int:
    """Email every address in ``ADMIN_ALERT_EMAILS``. Returns the number sent."""
    recipients = list(getattr(settings, "ADMIN_ALERT_EMAILS", []))
    if not recipients:
        logger.warning(f"No ADMIN_ALERT_EMAILS configured, admin alert dropped: {subject}")
        return 0
    return sum(
        send_email_notification(email, subject, None, {"message": message})
        for email in recipients
    )


# ============================================================================
# IN-APP NOTIFICATIONS
# ============================================================================

def create_in_app_notification(
    user: "CustomUser",
    title: str,
    message: str,
    *,
    notification_type: str = Notification.Type.SYSTEM,
    booking: "Booking | None" = None,
) -> bool:
    """
    Store a notification for the user's inbox.

    Returns:
        bool: True if the notification was created
    """
    try:
        Notification.objects.create(
            user=user,
            type=notification_type,
            title=title,
            message=message,
            booking=booking,
        )

        logger.info(f"In-app notification created for {user.email}: {title}")
        return True

    except Exception as e:
        logger.error(f"Failed to create in-app notification for {user.email}: {e}", exc_info=True)
        return False


def notify_user(
    user: "CustomUser",
    *,
    notification_type: str,
    title: str,
    message: str,
    booking: "Booking | None" = None,
) -> dict[str, bool]:
    """
    Notify a user by email and in the app.

    Returns:
        dict: Delivery result per channel
    """
    results = {
        "email": False,
        "in_app": False,
    }

    if user.email:
        results["email"] = send_email_notification(
            recipient_email=user.email,
            subject=title,
            template_name=None,
            context={"message": message},
        )

    results["in_app"] = create_in_app_notification(
        user,
        title,
        message,
        notification_type=notification_type,
        booking=booking,
    )

    return results
