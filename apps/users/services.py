"""Realtor onboarding, approval workflow and payout account setup."""

from __future__ import annotations

import logging

from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from shared.application.uow import DjangoUnitOfWork

from .events import RealtorStatusChanged
from .models import CustomUser, RealtorProfile

logger = logging.getLogger(__name__)


class RealtorStatusError(Exception):
    """Raised when an approval action does not apply to the realtor's current status."""


# Allowed source statuses for each admin action
_ACTIONS: dict[str, tuple[tuple[str, ...], str]] = {
    "approve": (
        (RealtorProfile.Status.PENDING, RealtorProfile.Status.REJECTED),
        RealtorProfile.Status.APPROVED,
    ),
    "reject": ((RealtorProfile.Status.PENDING,), RealtorProfile.Status.REJECTED),
    "suspend": ((RealtorProfile.Status.APPROVED,), RealtorProfile.Status.SUSPENDED),
    "reinstate": ((RealtorProfile.Status.SUSPENDED,), RealtorProfile.Status.APPROVED),
}


@transaction.atomic
def register_realtor(user: CustomUser, business_name: str, business_phone: str = "") -> RealtorProfile:
    """Turn a freshly created user into a realtor awaiting approval."""
    if user.role != CustomUser.RoleChoices.REALTOR:
        user.role = CustomUser.RoleChoices.REALTOR
        user.save(update_fields=["role"])
    profile, _ = RealtorProfile.objects.get_or_create(
        user=user,
        defaults={"business_name": business_name, "business_phone": business_phone},
    )
    logger.info(f"Realtor {user.email} registered, awaiting approval")
    return profile


def change_realtor_status(
    profile: RealtorProfile,
    action: str,
    *,
    admin: CustomUser,
    reason: str = "",
) -> RealtorProfile:
    """Apply an admin approval action (approve, reject, suspend, reinstate)."""
    if action not in _ACTIONS:
        raise RealtorStatusError(f"Unknown action: {action}")
    allowed_from, target = _ACTIONS[action]
    if action in {"reject", "suspend"} and not reason.strip():
        raise RealtorStatusError("A reason is required.")

    with DjangoUnitOfWork() as uow:
        locked = RealtorProfile.objects.select_for_update().get(pk=profile.pk)
        if locked.status not in allowed_from:
            raise RealtorStatusError(
                f"Cannot {action} a realtor whose status is {locked.status}."
            )
        locked.status = target
        locked.status_changed_at = timezone.now()
        locked.status_changed_by = admin
        update_fields = ["status", "status_changed_at", "status_changed_by", "updated_at"]
        if action == "reject":
            locked.rejection_reason = reason
            update_fields.append("rejection_reason")
        elif action == "suspend":
            locked.suspension_reason = reason
            update_fields.append("suspension_reason")
        elif action in {"approve", "reinstate"}:
            locked.rejection_reason = ""
            locked.suspension_reason = ""
            update_fields += ["rejection_reason", "suspension_reason"]
        locked.save(update_fields=update_fields)

        if action == "suspend":
            from apps.properties.models import Property

            hidden = Property.objects.filter(
                owner_id=locked.user_id, status=Property.Status.ACTIVE
            ).update(status=Property.Status.INACTIVE, updated_at=timezone.now())
            logger.info(f"Suspension of realtor {locked.user_id} deactivated {hidden} properties")

        uow.add_event(
            RealtorStatusChanged(
                aggregate_id=locked.user_id,
                realtor_id=locked.user_id,
                status=target,
                reason=reason,
            )
        )

    logger.info(f"Realtor {locked.user_id} {action} by admin {admin.pk}: {locked.status}")
    return locked


def set_payout_account(
    profile: RealtorProfile,
    *,
    bank_code: str,
    account_number: str,
    account_name: str,
    bank_name: str = "",
) -> RealtorProfile:
    """Store bank details and register them as a gateway transfer recipient.

    The gateway call happens first; nothing is stored when it fails.
    """
    from apps.finances import gateway

    recipient = gateway.create_transfer_recipient(
        name=account_name,
        account_number=account_number,
        bank_code=bank_code,
    )
    profile.bank_code = bank_code
    profile.bank_name = bank_name
    profile.account_number = account_number
    profile.account_name = account_name
    profile.payout_recipient_code = recipient["recipient_code"]
    profile.save(
        update_fields=[
            "bank_code",
            "bank_name",
            "account_number",
            "account_name",
            "payout_recipient_code",
            "updated_at",
        ]
    )
    logger.info(f"Payout account set for realtor {profile.user_id}")
    return profile
