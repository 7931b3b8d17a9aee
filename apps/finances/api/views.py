"""Platform admin API for realtor payouts and guest refund requests."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.finances import gateway
from apps.finances.escrow import EscrowReleaseError, RefundInProgressError
from apps.finances.models import RefundRequest, WithdrawalRequest
from apps.finances.refund_requests import RefundRequestError, cancel_refund_request, process_refund_request
from apps.finances.serializers import AdminWithdrawalSerializer, ProcessRefundSerializer, RefundRequestSerializer
from apps.finances.views import refund_request_error_response
from apps.finances.withdrawals import (
    WithdrawalError,
    cancel_withdrawal,
    process_withdrawal,
    retry_failed_withdrawals,
)
from apps.users.api.permissions import IsPlatformAdmin


class AdminWithdrawalViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Withdrawal oversight for platform admins.

    Endpoints:
    - GET /api/v1/admin/withdrawals/?status=failed
    - POST /api/v1/admin/withdrawals/{id}/process/ - send the transfer now
    - POST /api/v1/admin/withdrawals/{id}/cancel/ - return locked funds
    - POST /api/v1/admin/withdrawals/retry-failed/
    """

    queryset = WithdrawalRequest.objects.select_related("realtor", "wallet").all()
    serializer_class = AdminWithdrawalSerializer
    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]
    filterset_fields = ["status", "needs_reconciliation"]

    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):  # type: ignore
        withdrawal = process_withdrawal(self.get_object())
        return Response(AdminWithdrawalSerializer(withdrawal).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        try:
            withdrawal = cancel_withdrawal(self.get_object(), by_admin=True)
        except WithdrawalError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(AdminWithdrawalSerializer(withdrawal).data)

    @action(detail=False, methods=["post"], url_path="retry-failed")
    def retry_failed(self, request):  # type: ignore
        return Response(retry_failed_withdrawals())


class AdminRefundRequestViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Refund requests waiting on the platform.

    Endpoints:
    - GET /api/v1/admin/refund-requests/ - realtor approved, oldest first
    - GET /api/v1/admin/refund-requests/?status=completed
    - POST /api/v1/admin/refund-requests/{id}/process/ - {amount, notes}
    - POST /api/v1/admin/refund-requests/{id}/cancel/
    """

    serializer_class = RefundRequestSerializer
    permission_classes = [permissions.IsAuthenticated, IsPlatformAdmin]

    def get_queryset(self):  # type: ignore
        qs = RefundRequest.objects.select_related("booking", "requested_by", "realtor")
        if self.action != "list":
            return qs
        wanted = self.request.query_params.get("status", RefundRequest.Status.REALTOR_APPROVED)
        return qs.filter(status=wanted).order_by("created_at")

    @action(detail=True, methods=["post"])
    def process(self, request, pk=None):  # type: ignore
        serializer = ProcessRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            refund_request = process_refund_request(
                self.get_object(),
                request.user,
                amount=serializer.validated_data.get("amount"),
                notes=serializer.validated_data["notes"],
            )
        except RefundRequestError as exc:
            return refund_request_error_response(exc)
        except gateway.PaymentGatewayError as exc:
            return Response({"detail": f"Payment gateway error: {exc}"}, status=status.HTTP_502_BAD_GATEWAY)
        except RefundInProgressError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except EscrowReleaseError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(RefundRequestSerializer(refund_request).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        try:
            refund_request = cancel_refund_request(self.get_object(), request.user)
        except RefundRequestError as exc:
            return refund_request_error_response(exc)
        return Response(RefundRequestSerializer(refund_request).data)
