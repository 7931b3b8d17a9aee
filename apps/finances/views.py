"""API views for payments, the gateway webhook, wallets, withdrawals and refund requests.

Payments are created by guests for their own pending bookings. Escrow
releases happen in periodic tasks, not here; these views only start and
confirm payments and expose balances.
"""

from __future__ import annotations

import json
import logging

from django.db.models import Q  # type: ignore
from django.shortcuts import get_object_or_404  # type: ignore
from django.utils.decorators import method_decorator  # type: ignore
from django_ratelimit.decorators import ratelimit  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings.models import Booking
from apps.users.api.permissions import IsRealtor

from . import gateway
from .models import Payment, RefundRequest, WithdrawalRequest
from .refund_requests import (
    RefundRequestConflictError,
    RefundRequestError,
    cancel_refund_request,
    realtor_decide,
    request_refund,
)
from .serializers import (
    InitializePaymentSerializer,
    PaymentSerializer,
    RefundDecisionSerializer,
    RefundRequestSerializer,
    VerifyPaymentSerializer,
    WalletSerializer,
    WalletTransactionSerializer,
    WithdrawalRequestSerializer,
)
from .services import (
    PaymentFinalizationError,
    PaymentInitializationError,
    handle_gateway_webhook,
    initialize_payment,
    verify_payment,
)
from .wallets import InsufficientFundsError, get_realtor_wallet
from .withdrawals import WithdrawalError, cancel_withdrawal, request_withdrawal

logger = logging.getLogger(__name__)


class PaymentViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Guest payments.

    Endpoints:
    - GET  /api/v1/finances/payments/ - own payments
    - POST /api/v1/finances/payments/initialize/ - {booking}
    - POST /api/v1/finances/payments/verify/ - {reference}
    """

    serializer_class = PaymentSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = Payment.objects.select_related("booking")
        if hasattr(user, "is_platform_admin") and user.is_platform_admin():
            return qs
        return qs.filter(booking__guest=user)

    @action(detail=False, methods=["post"])
    def initialize(self, request):  # type: ignore
        serializer = InitializePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = get_object_or_404(
            Booking.objects.select_related("guest"),
            pk=serializer.validated_data["booking"],
        )
        if booking.guest_id != request.user.id:
            return Response(
                {"detail": "You can only pay for your own bookings."},
                status=status.HTTP_403_FORBIDDEN,
            )
        try:
            payment = initialize_payment(booking)
        except PaymentInitializationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except gateway.PaymentGatewayError as exc:
            return Response({"detail": f"Payment gateway error: {exc}"}, status=status.HTTP_502_BAD_GATEWAY)

        return Response(
            {
                "reference": payment.reference,
                "authorization_url": payment.authorization_url,
                "access_code": payment.access_code,
                "payment": PaymentSerializer(payment).data,
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=["post"])
    def verify(self, request):  # type: ignore
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = get_object_or_404(self.get_queryset(), reference=serializer.validated_data["reference"])
        try:
            result = verify_payment(payment)
        except PaymentFinalizationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except gateway.PaymentGatewayError as exc:
            return Response({"detail": f"Payment gateway error: {exc}"}, status=status.HTTP_502_BAD_GATEWAY)

        payment = result["payment"]
        payment.refresh_from_db()
        return Response(
            {
                "status": payment.status,
                "already_finalized": result["already_finalized"],
                "payment": PaymentSerializer(payment).data,
            }
        )


class GatewayWebhookView(APIView):
    """Gateway callback; authenticated by the ``X-Paystack-Signature`` HMAC only."""

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]

    @method_decorator(ratelimit(group="finances.gateway_webhook", key="ip", rate="100/m", method="POST", block=False))
    def post(self, request):  # type: ignore
        if getattr(request, "limited", False):
            logger.warning(f"Gateway webhook rate limit exceeded for IP: {request.META.get('REMOTE_ADDR')}")
            return Response({"detail": "Rate limit exceeded."}, status=status.HTTP_429_TOO_MANY_REQUESTS)
        raw_body = request.body
        signature = request.META.get("HTTP_X_PAYSTACK_SIGNATURE")
        if not gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Rejected gateway webhook with invalid signature")
            return Response({"detail": "Invalid signature."}, status=status.HTTP_400_BAD_REQUEST)
        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return Response({"detail": "Malformed payload."}, status=status.HTTP_400_BAD_REQUEST)

        result = handle_gateway_webhook(payload)
        return Response({"received": True, **result})


class WalletView(APIView):
    """Current realtor's wallet balance."""

    permission_classes = [permissions.IsAuthenticated, IsRealtor]

    def get(self, request):  # type: ignore
        wallet = get_realtor_wallet(request.user)
        return Response(WalletSerializer(wallet).data)


class WalletTransactionListView(mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = WalletTransactionSerializer
    permission_classes = [permissions.IsAuthenticated, IsRealtor]

    def get_queryset(self):  # type: ignore
        wallet = get_realtor_wallet(self.request.user)
        return wallet.transactions.select_related("booking").all()


class WithdrawalViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """Realtor withdrawals: request, list, cancel."""

    serializer_class = WithdrawalRequestSerializer
    permission_classes = [permissions.IsAuthenticated, IsRealtor]

    def get_queryset(self):  # type: ignore
        return WithdrawalRequest.objects.filter(realtor=self.request.user)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            withdrawal = request_withdrawal(request.user, serializer.validated_data["amount"])
        except WithdrawalError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except InsufficientFundsError:
            return Response({"detail": "Insufficient wallet balance."}, status=status.HTTP_400_BAD_REQUEST)
        return Response(self.get_serializer(withdrawal).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        withdrawal = self.get_object()
        try:
            withdrawal = cancel_withdrawal(withdrawal)
        except WithdrawalError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(self.get_serializer(withdrawal).data)


def refund_request_error_response(exc: RefundRequestError) -> Response:
    if isinstance(exc, RefundRequestConflictError):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


class RefundRequestViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Refund requests after the room fee was paid out.

    Endpoints:
    - GET  /api/v1/finances/refund-requests/?status=pending_realtor_approval
    - POST /api/v1/finances/refund-requests/ - guest: {booking, requested_amount, reason, customer_notes}
    - POST /api/v1/finances/refund-requests/{id}/decide/ - realtor: {approved, reason, notes}
    - POST /api/v1/finances/refund-requests/{id}/cancel/ - guest
    """

    serializer_class = RefundRequestSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["status", "booking"]

    def get_queryset(self):  # type: ignore
        user = self.request.user
        return RefundRequest.objects.select_related("booking", "requested_by").filter(
            Q(requested_by=user) | Q(realtor=user)
        )

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = serializer.validated_data["booking"]
        if booking.guest_id != request.user.id:
            return Response(
                {"detail": "You can only request refunds for your own bookings."},
                status=status.HTTP_403_FORBIDDEN,
            )
        try:
            refund_request = request_refund(
                booking,
                request.user,
                amount=serializer.validated_data["requested_amount"],
                reason=serializer.validated_data["reason"],
                notes=serializer.validated_data.get("customer_notes", ""),
            )
        except RefundRequestError as exc:
            return refund_request_error_response(exc)
        return Response(self.get_serializer(refund_request).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def decide(self, request, pk=None):  # type: ignore
        refund_request = self.get_object()
        if refund_request.realtor_id != request.user.id:
            return Response(
                {"detail": "Only the realtor of this booking can review the request."},
                status=status.HTTP_403_FORBIDDEN,
            )
        serializer = RefundDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            refund_request = realtor_decide(refund_request, request.user, **serializer.validated_data)
        except RefundRequestError as exc:
            return refund_request_error_response(exc)
        return Response(self.get_serializer(refund_request).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        refund_request = self.get_object()
        if refund_request.requested_by_id != request.user.id:
            return Response(
                {"detail": "Only the guest who asked can cancel this refund request."},
                status=status.HTTP_403_FORBIDDEN,
            )
        try:
            refund_request = cancel_refund_request(refund_request, request.user)
        except RefundRequestError as exc:
            return refund_request_error_response(exc)
        return Response(self.get_serializer(refund_request).data)
