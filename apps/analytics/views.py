"""API views for platform analytics.

Aggregated booking, escrow and dispute figures for platform admins, and
the effective finance configuration.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from rest_framework.permissions import IsAuthenticated  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings.models import Booking
from apps.disputes.models import Dispute
from apps.finances.config import describe_finance_config
from apps.finances.models import Payment, Wallet
from apps.users.api.permissions import IsPlatformAdmin

ZERO = Decimal('0.00')


def _sum(qs, field: str) -> Decimal:  # type: ignore
    return qs.aggregate(total=models.Sum(field))['total'] or ZERO


class OverviewAnalyticsView(APIView):
    """Bookings by status, money held and owed, open disputes."""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, format=None):  # type: ignore
        bookings_by_status = {value: 0 for value in Booking.Status.values}
        for row in Booking.objects.values('status').annotate(count=models.Count('id')):
            bookings_by_status[row['status']] = row['count']

        payments = Payment.objects.all()
        escrow_held = (
            _sum(payments.filter(room_fee_in_escrow=True), 'room_fee')
            + _sum(payments.filter(deposit_in_escrow=True), 'security_deposit')
        )
        platform_wallet = Wallet.objects.filter(owner_type=Wallet.OwnerType.PLATFORM).first()

        return Response(
            {
                'bookings_by_status': bookings_by_status,
                'escrow_held': escrow_held,
                'platform_wallet_balance': platform_wallet.balance_available if platform_wallet else ZERO,
                'realtor_wallet_balance': _sum(
                    Wallet.objects.filter(owner_type=Wallet.OwnerType.REALTOR), 'balance_available'
                ),
                'total_refunded': _sum(payments, 'refund_amount'),
                'open_disputes': Dispute.objects.filter(status__in=Dispute.ACTIVE_STATUSES).count(),
                'escalated_disputes': Dispute.objects.filter(status=Dispute.Status.ESCALATED).count(),
            }
        )


class FinanceConfigView(APIView):
    """Effective finance configuration and cancellation policy, with any validation errors."""

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get(self, request, format=None):  # type: ignore
        return Response(describe_finance_config())
