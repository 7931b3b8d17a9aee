"""User API views."""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.finances.gateway import PaymentGatewayError

from .api.permissions import IsPlatformAdmin
from .serializers import PayoutAccountSerializer, RealtorProfileSerializer, UserSerializer
from .services import set_payout_account

User = get_user_model()
logger = logging.getLogger(__name__)


class UserViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """User profiles.

    - `me` returns or updates the current user's profile
    - `me/payout-account` registers the realtor's bank account for payouts
    - list/retrieve of arbitrary users is reserved for platform admins
    """

    serializer_class = UserSerializer
    queryset = User.objects.select_related("realtor_profile").all()

    def get_permissions(self):  # type: ignore
        if self.action in {"me", "payout_account"}:
            return [permissions.IsAuthenticated()]
        return [permissions.IsAuthenticated(), IsPlatformAdmin()]

    @action(detail=False, methods=["get", "patch"], permission_classes=[permissions.IsAuthenticated])
    def me(self, request):
        """Current user's profile; PATCH updates the editable fields."""
        if request.method == "GET":
            return Response(UserSerializer(request.user).data)
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    @action(
        detail=False,
        methods=["put"],
        url_path="me/payout-account",
        permission_classes=[permissions.IsAuthenticated],
    )
    def payout_account(self, request):
        user = request.user
        if not (hasattr(user, "is_realtor") and user.is_realtor()):
            return Response(
                {"detail": "Only realtors can set a payout account."},
                status=status.HTTP_403_FORBIDDEN,
            )
        profile = getattr(user, "realtor_profile", None)
        if profile is None:
            return Response(
                {"detail": "Realtor profile not found."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        serializer = PayoutAccountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            profile = set_payout_account(profile, **serializer.validated_data)
        except PaymentGatewayError as exc:
            logger.error(f"Could not register payout account for realtor {user.pk}: {exc}")
            return Response(
                {"detail": "The payment provider rejected the bank details."},
                status=status.HTTP_502_BAD_GATEWAY,
            )
        return Response(RealtorProfileSerializer(profile).data)
