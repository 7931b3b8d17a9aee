"""Platform admin API for escalated disputes."""

from __future__ import annotations

from rest_framework import mixins, permissions, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.disputes.models import Dispute
from apps.disputes.serializers import AdminResolveSerializer, DisputeSerializer
from apps.disputes.services import admin_resolve_dispute, dispute_stats
from apps.disputes.views import DISPUTE_ERRORS, dispute_error_response
from apps.users.api.permissions import IsPlatformAdmin


class AdminDisputeViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Dispute arbitration for platform admins.

    Endpoints:
    - GET /api/v1/admin/disputes/?status=escalated
    - POST /api/v1/admin/disputes/{id}/resolve/ - {decision, awarded_amount, notes}
    - GET /api/v1/admin/disputes/stats/
    """

    queryset = Dispute.objects.select_related("booking", "opened_by").all()
    serializer_class = DisputeSerializer
    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]
    filterset_fields = ["status", "subject", "category"]

    @action(detail=True, methods=["post"])
    def resolve(self, request, pk=None):  # type: ignore
        dispute = self.get_object()
        serializer = AdminResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            dispute = admin_resolve_dispute(
                dispute,
                request.user,
                decision=data["decision"],
                awarded_amount=data.get("awarded_amount"),
                notes=data["notes"],
            )
        except DISPUTE_ERRORS as exc:
            return dispute_error_response(exc)
        return Response(DisputeSerializer(dispute).data)

    @action(detail=False, methods=["get"])
    def stats(self, request):  # type: ignore
        return Response(dispute_stats())
