"""API views for the booking domain."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.finances import gateway
from apps.finances.escrow import EscrowReleaseError
from apps.finances.models import EscrowEvent
from apps.finances.serializers import EscrowEventSerializer

from .domain.lifecycle import BookingStatusConflictError, CancellationNotAllowedError, CheckInError
from .models import Booking
from .serializers import (
    BookingCreateSerializer,
    BookingQuoteSerializer,
    BookingSerializer,
    CancelBookingSerializer,
)
from . import services
from .services import BookingValidationError, cancellation_source_for


def _is_admin(user) -> bool:
    return hasattr(user, "is_platform_admin") and user.is_platform_admin()


class IsBookingStakeholder(permissions.BasePermission):
    """Guests, property owners and platform admins can access a booking."""

    def has_object_permission(self, request, view, obj: Booking):  # type: ignore
        user = request.user
        if not user.is_authenticated:
            return False
        if _is_admin(user):
            return True
        return obj.guest_id == user.id or obj.property.owner_id == user.id


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Bookings for guests and realtors.

    Endpoints:
    - POST /api/v1/bookings/quote/ - fee breakdown without booking
    - POST /api/v1/bookings/ - create (guest)
    - POST /api/v1/bookings/{id}/cancel/
    - GET  /api/v1/bookings/{id}/cancellation-preview/
    - POST /api/v1/bookings/{id}/confirm-check-in/
    - POST /api/v1/bookings/{id}/check-out/
    - GET  /api/v1/bookings/{id}/escrow-events/
    - GET  /api/v1/bookings/{id}/dispute-windows/
    """

    queryset = Booking.objects.select_related("property", "guest", "property__owner", "payment").all()
    permission_classes = [permissions.IsAuthenticated, IsBookingStakeholder]
    filterset_fields = ["status", "stay_status"]

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if _is_admin(user):
            return qs
        if hasattr(user, "is_realtor") and user.is_realtor():
            return qs.filter(property__owner=user)
        return qs.filter(guest=user)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = serializer.save()
        read_serializer = BookingSerializer(booking, context=self.get_serializer_context())
        headers = self.get_success_headers(read_serializer.data)
        return Response(read_serializer.data, status=status.HTTP_201_CREATED, headers=headers)

    @action(detail=False, methods=["post"])
    def quote(self, request):  # type: ignore
        serializer = BookingQuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            fees = services.quote_booking(data["property"], data["check_in"], data["check_out"], data["guests_count"])
        except (BookingValidationError, ValueError) as exc:
            return Response({"non_field_errors": [str(exc)]}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"currency": data["property"].currency, **fees.as_dict()})

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        source = cancellation_source_for(booking, request.user)
        if source is None:
            return Response(status=status.HTTP_403_FORBIDDEN)
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = services.cancel_booking(
                booking,
                source=source,
                reason=serializer.validated_data["reason"],
                triggered_by=request.user,
            )
        except CancellationNotAllowedError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except (BookingStatusConflictError, EscrowReleaseError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
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

    @action(detail=True, methods=["get"], url_path="cancellation-preview")
    def cancellation_preview(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        source = cancellation_source_for(booking, request.user) or Booking.CancellationSource.GUEST
        return Response(services.preview_cancellation(booking, source=source))

    @action(detail=True, methods=["post"], url_path="confirm-check-in")
    def confirm_check_in(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        if booking.guest_id == request.user.id:
            confirmation_type = Booking.CheckInConfirmation.GUEST_CONFIRMED
        elif booking.property.owner_id == request.user.id:
            confirmation_type = Booking.CheckInConfirmation.REALTOR_CONFIRMED
        else:
            return Response(
                {"detail": "Only the guest or the property owner can confirm check-in."},
                status=status.HTTP_403_FORBIDDEN,
            )
        try:
            booking = services.confirm_check_in(booking, confirmation_type=confirmation_type)
        except CheckInError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"], url_path="check-out")
    def check_out(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        if booking.guest_id != request.user.id:
            return Response({"detail": "Only the guest can check out."}, status=status.HTTP_403_FORBIDDEN)
        try:
            booking = services.check_out(booking)
        except CheckInError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["get"], url_path="escrow-events")
    def escrow_events(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        events = EscrowEvent.objects.filter(booking=booking).order_by("created_at", "id")
        return Response(EscrowEventSerializer(events, many=True).data)

    @action(detail=True, methods=["get"], url_path="dispute-windows")
    def dispute_windows(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        return Response(services.dispute_windows(booking))
