"""Platform admin API for booking oversight."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.domain.lifecycle import (
    BookingLifecycleError,
    BookingStatusConflictError,
    batch_update_booking_status,
    transition_booking_status,
)
from apps.bookings.models import Booking
from apps.bookings.serializers import (
    AdminStatusSerializer,
    BatchStatusSerializer,
    BookingSerializer,
    CancelBookingSerializer,
)
from apps.bookings.services import cancel_booking
from apps.finances import gateway
from apps.finances.escrow import EscrowReleaseError, RefundInProgressError
from apps.users.api.permissions import IsPlatformAdmin


class AdminBookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Booking oversight for platform admins.

    Endpoints:
    - GET /api/v1/admin/bookings/?status=disputed
    - POST /api/v1/admin/bookings/{id}/status/ - validated transition
    - POST /api/v1/admin/bookings/batch-status/ - {booking_ids, status, reason}
    - POST /api/v1/admin/bookings/{id}/cancel/ - full refund to the guest
    """

    queryset = Booking.objects.select_related("property", "guest", "payment").all()
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]
    filterset_fields = ["status", "stay_status", "property"]

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        serializer = AdminStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            booking = transition_booking_status(
                booking,
                serializer.validated_data["status"],
                reason=serializer.validated_data["reason"] or f"by admin {request.user.pk}",
            )
        except BookingStatusConflictError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except BookingLifecycleError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(BookingSerializer(booking).data)

    @action(detail=False, methods=["post"], url_path="batch-status")
    def batch_status(self, request):  # type: ignore
        serializer = BatchStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = batch_update_booking_status(data["booking_ids"], data["status"], data["reason"])
        return Response(result)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking = self.get_object()
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = cancel_booking(
                booking,
                source=Booking.CancellationSource.ADMIN,
                reason=serializer.validated_data["reason"],
                triggered_by=request.user,
            )
        except (BookingStatusConflictError, RefundInProgressError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except (BookingLifecycleError, EscrowReleaseError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except gateway.PaymentGatewayError as exc:
            return Response(
                {"detail": f"Refund could not be processed: {exc}"},
                status=status.HTTP_502_BAD_GATEWAY,
            )
        refund = result["refund"]
        return Response(
            {
                "booking": BookingSerializer(result["booking"]).data,
                "refund": refund.as_dict() if refund else None,
            }
        )
