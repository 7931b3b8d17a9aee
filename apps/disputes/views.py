"""API views for disputes raised by guests and realtors."""

from __future__ import annotations

from django.db.models import Q  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.domain.lifecycle import BookingLifecycleError, BookingStatusConflictError
from apps.finances import gateway
from apps.finances.escrow import EscrowReleaseError, RefundInProgressError

from . import services
from .models import Dispute
from .serializers import (
    DepositDisputeSerializer,
    DisputeResponseSerializer,
    DisputeSerializer,
    RoomFeeDisputeSerializer,
)
from .services import DisputeConflictError, DisputeError


def dispute_error_response(exc: Exception) -> Response:
    if isinstance(exc, gateway.PaymentGatewayError):
        return Response({"detail": f"Payment gateway error: {exc}"}, status=status.HTTP_502_BAD_GATEWAY)
    if isinstance(exc, (DisputeConflictError, BookingStatusConflictError, RefundInProgressError)):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


DISPUTE_ERRORS = (DisputeError, BookingLifecycleError, EscrowReleaseError, gateway.PaymentGatewayError)


class DisputeViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Disputes visible to the booking's guest and property owner.

    Endpoints:
    - GET  /api/v1/disputes/
    - POST /api/v1/disputes/room-fee/ - guest, during the guest window
    - POST /api/v1/disputes/deposit/ - realtor, during the realtor window
    - POST /api/v1/disputes/{id}/respond/ - counterparty: accept or reject_escalate
    - POST /api/v1/disputes/{id}/withdraw/ - opener
    """

    serializer_class = DisputeSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status", "subject"]

    def get_queryset(self):  # type: ignore
        user = self.request.user
        return Dispute.objects.select_related("booking", "booking__property").filter(
            Q(booking__guest=user) | Q(booking__property__owner=user)
        )

    @action(detail=False, methods=["post"], url_path="room-fee")
    def room_fee(self, request):  # type: ignore
        serializer = RoomFeeDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            dispute = services.open_room_fee_dispute(
                data["booking"],
                request.user,
                category=data["category"],
                description=data["description"],
                evidence_urls=data["evidence_urls"],
            )
        except DISPUTE_ERRORS as exc:
            return dispute_error_response(exc)
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"])
    def deposit(self, request):  # type: ignore
        serializer = DepositDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            dispute = services.open_deposit_dispute(
                data["booking"],
                request.user,
                category=data["category"],
                claimed_amount=data["claimed_amount"],
                description=data["description"],
                evidence_urls=data["evidence_urls"],
            )
        except DISPUTE_ERRORS as exc:
            return dispute_error_response(exc)
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def respond(self, request, pk=None):  # type: ignore
        dispute = self.get_object()
        serializer = DisputeResponseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dispute = services.respond_to_dispute(
                dispute,
                request.user,
                action=serializer.validated_data["action"],
                note=serializer.validated_data["note"],
            )
        except DISPUTE_ERRORS as exc:
            return dispute_error_response(exc)
        return Response(DisputeSerializer(dispute).data)

    @action(detail=True, methods=["post"])
    def withdraw(self, request, pk=None):  # type: ignore
        dispute = self.get_object()
        try:
            dispute = services.withdraw_dispute(dispute, request.user)
        except DISPUTE_ERRORS as exc:
            return dispute_error_response(exc)
        return Response(DisputeSerializer(dispute).data)
