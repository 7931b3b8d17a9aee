"""Platform admin API for realtor oversight."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.users.models import RealtorProfile
from apps.users.services import RealtorStatusError, change_realtor_status
from .permissions import IsPlatformAdmin
from .serializers import AdminRealtorSerializer, RealtorActionSerializer


class AdminRealtorViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Realtor approval workflow for platform admins.

    Endpoints:
    - GET /api/v1/admin/realtors/?status=pending - list realtors
    - GET /api/v1/admin/realtors/{id}/ - realtor details
    - POST /api/v1/admin/realtors/{id}/approve/
    - POST /api/v1/admin/realtors/{id}/reject/ - requires reason
    - POST /api/v1/admin/realtors/{id}/suspend/ - requires reason, hides listings
    - POST /api/v1/admin/realtors/{id}/reinstate/
    """

    queryset = RealtorProfile.objects.select_related("user").all()
    serializer_class = AdminRealtorSerializer
    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]
    filterset_fields = ["status"]

    def _apply(self, request, action_name: str):  # type: ignore
        profile = self.get_object()
        serializer = RealtorActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            profile = change_realtor_status(
                profile,
                action_name,
                admin=request.user,
                reason=serializer.validated_data["reason"],
            )
        except RealtorStatusError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(AdminRealtorSerializer(profile).data)

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):  # type: ignore
        return self._apply(request, "approve")

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):  # type: ignore
        return self._apply(request, "reject")

    @action(detail=True, methods=["post"])
    def suspend(self, request, pk=None):  # type: ignore
        return self._apply(request, "suspend")

    @action(detail=True, methods=["post"])
    def reinstate(self, request, pk=None):  # type: ignore
        return self._apply(request, "reinstate")
