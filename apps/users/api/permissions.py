"""Permission classes for the platform admin API."""

from __future__ import annotations

from rest_framework import permissions  # type: ignore


class IsPlatformAdmin(permissions.BasePermission):
    """
    Allows access only to platform admins.

    A platform admin is a user with role='admin', or Django staff/superuser.
    """

    message = "Only platform admins can perform this action."

    def has_permission(self, request, view) -> bool:  # type: ignore
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return hasattr(user, "is_platform_admin") and user.is_platform_admin()


class IsRealtor(permissions.BasePermission):
    """Allows access only to users with the realtor role."""

    message = "Only realtors can perform this action."

    def has_permission(self, request, view) -> bool:  # type: ignore
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return hasattr(user, "is_realtor") and user.is_realtor()
