from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from apps.bookings.services import check_out
from apps.finances.escrow import release_room_fee, return_security_deposit
from apps.finances.gateway import PaymentGatewayError
from apps.finances.models import EscrowEvent, Payment, RefundRequest, WalletTransaction
from apps.finances.refund_requests import (
    RefundRequestConflictError,
    RefundRequestError,
    cancel_refund_request,
    process_refund_request,
    realtor_decide,
    refundable_amount,
    request_refund,
)
from apps.finances.wallets import get_realtor_wallet

Status = RefundRequest.Status
OTHER = RefundRequest.Reason.OTHER


@pytest.fixture
def released_booking(paid_booking, factories):
    """Room fee paid out, deposit still held."""
    factories.check_in_booking(paid_booking)
    release_room_fee(paid_booking, now=paid_booking.check_in_at + timedelta(hours=2))
    return paid_booking


@pytest.fixture
def approved_request(released_booking, guest, realtor):
    refund_request = request_refund(released_booking, guest, amount=Decimal("5000"), reason=OTHER)
    return realtor_decide(refund_request, realtor, approved=True)


@pytest.mark.django_db
class TestRequestRefund:
    def test_guest_requests_after_payout(self, released_booking, guest, realtor):
        refund_request = request_refund(
            released_booking,
            guest,
            amount=Decimal("5000"),
            reason=RefundRequest.Reason.SERVICE_ISSUE,
            notes="No hot water",
        )

        assert refund_request.status == Status.PENDING_REALTOR_APPROVAL
        assert refund_request.realtor == realtor
        assert refund_request.requested_amount == Decimal("5000.00")
        assert refund_request.payment == Payment.objects.get(booking=released_booking)

    def test_held_deposit_is_not_requestable(self, released_booking, guest):
        payment = Payment.objects.get(booking=released_booking)
        assert refundable_amount(payment) == Decimal("22440.00")

        with pytest.raises(RefundRequestError, match="At most 22440.00"):
            request_refund(released_booking, guest, amount=Decimal("22441"), reason=OTHER)

    def test_nothing_to_request_while_funds_are_in_escrow(self, paid_booking, guest):
        with pytest.raises(RefundRequestError, match="paid out"):
            request_refund(paid_booking, guest, amount=Decimal("100"), reason=OTHER)

    def test_only_the_guest_can_ask(self, released_booking, realtor):
        with pytest.raises(RefundRequestError, match="Only the guest"):
            request_refund(released_booking, realtor, amount=Decimal("100"), reason=OTHER)

    def test_one_open_request_per_booking(self, released_booking, guest, realtor):
        first = request_refund(released_booking, guest, amount=Decimal("100"), reason=OTHER)
        with pytest.raises(RefundRequestError, match="already has an open"):
            request_refund(released_booking, guest, amount=Decimal("200"), reason=OTHER)

        realtor_decide(first, realtor, approved=False, reason="Stay was fine")
        second = request_refund(released_booking, guest, amount=Decimal("200"), reason=OTHER)
        assert second.status == Status.PENDING_REALTOR_APPROVAL


@pytest.mark.django_db
class TestRealtorDecision:
    def test_rejection_needs_a_reason(self, released_booking, guest, realtor):
        refund_request = request_refund(released_booking, guest, amount=Decimal("100"), reason=OTHER)

        with pytest.raises(RefundRequestError, match="reason is required"):
            realtor_decide(refund_request, realtor, approved=False)

        refund_request = realtor_decide(refund_request, realtor, approved=False, reason="Not justified")
        assert refund_request.status == Status.REALTOR_REJECTED
        assert refund_request.realtor_decided_at is not None

    def test_other_realtor_cannot_decide(self, released_booking, guest, factories):
        refund_request = request_refund(released_booking, guest, amount=Decimal("100"), reason=OTHER)

        with pytest.raises(RefundRequestError, match="Only the realtor"):
            realtor_decide(refund_request, factories.make_realtor(), approved=True)

    def test_decision_is_taken_once(self, approved_request, realtor):
        with pytest.raises(RefundRequestError, match="realtor_approved"):
            realtor_decide(approved_request, realtor, approved=False, reason="Changed my mind")


@pytest.mark.django_db
class TestProcessRefundRequest:
    def test_refund_is_sent_and_charged_to_realtor(self, approved_request, platform_admin, realtor):
        with patch("apps.finances.gateway.refund_transaction", return_value={"status": "processed"}) as refund:
            refund_request = process_refund_request(approved_request, platform_admin, notes="Verified")

        assert refund.call_count == 1
        assert refund_request.status == Status.COMPLETED
        assert refund_request.actual_refund_amount == Decimal("5000.00")
        assert refund_request.admin == platform_admin
        assert refund_request.provider_response == {"status": "processed"}

        payment = Payment.objects.get(pk=approved_request.payment_id)
        assert payment.refund_amount == Decimal("5000.00")
        assert payment.metadata["gateway_refunds"][refund_request.gateway_leg]["status"] == "sent"
        assert get_realtor_wallet(realtor).balance_available == Decimal("15000.00")
        assert WalletTransaction.objects.filter(source=WalletTransaction.Source.REFUND, reference=refund_request.gateway_leg).exists()
        event = EscrowEvent.objects.get(event_type=EscrowEvent.EventType.REFUND_PARTIAL_TO_CUSTOMER)
        assert (event.from_party, event.to_party) == (EscrowEvent.Party.REALTOR, EscrowEvent.Party.CUSTOMER)

    def test_admin_can_lower_but_not_raise_the_amount(self, approved_request, platform_admin):
        with pytest.raises(RefundRequestError, match="between 0 and 5000.00"):
            process_refund_request(approved_request, platform_admin, amount=Decimal("6000"))
        assert approved_request.status == Status.REALTOR_APPROVED

        refund_request = process_refund_request(approved_request, platform_admin, amount=Decimal("3000"))
        assert refund_request.actual_refund_amount == Decimal("3000.00")

    def test_gateway_failure_can_be_retried(self, approved_request, platform_admin):
        with patch("apps.finances.gateway.refund_transaction", side_effect=PaymentGatewayError("timeout")):
            with pytest.raises(PaymentGatewayError):
                process_refund_request(approved_request, platform_admin)

        assert approved_request.status == Status.REALTOR_APPROVED
        assert approved_request.failure_reason == "timeout"
        assert not EscrowEvent.objects.filter(event_type=EscrowEvent.EventType.REFUND_PARTIAL_TO_CUSTOMER).exists()

        refund_request = process_refund_request(approved_request, platform_admin)
        assert refund_request.status == Status.COMPLETED
        assert refund_request.failure_reason == ""

    def test_second_admin_is_refused_while_the_first_is_sending(self, approved_request, platform_admin):
        refunded = []

        def second_admin_arrives(**kwargs):
            with pytest.raises(RefundRequestConflictError):
                process_refund_request(RefundRequest.objects.get(pk=approved_request.pk), platform_admin)
            refunded.append(kwargs["amount"])
            return {"status": "processed"}

        with patch("apps.finances.gateway.refund_transaction", side_effect=second_admin_arrives):
            process_refund_request(approved_request, platform_admin)

        assert refunded == [Decimal("5000.00")]
        with pytest.raises(RefundRequestError, match="completed"):
            process_refund_request(approved_request, platform_admin)

    def test_pending_request_cannot_be_processed(self, released_booking, guest, platform_admin):
        refund_request = request_refund(released_booking, guest, amount=Decimal("100"), reason=OTHER)

        with pytest.raises(RefundRequestError, match="pending_realtor_approval"):
            process_refund_request(refund_request, platform_admin)

    def test_deposit_is_still_returned_after_a_full_refund_request(self, released_booking, guest, realtor, platform_admin):
        refund_request = request_refund(released_booking, guest, amount=Decimal("22440"), reason=OTHER)
        realtor_decide(refund_request, realtor, approved=True)
        process_refund_request(refund_request, platform_admin)

        base = released_booking.check_in_at
        check_out(released_booking, now=base + timedelta(hours=3))
        result = return_security_deposit(released_booking, now=base + timedelta(hours=6))

        assert result["amount"] == Decimal("5000.00")
        payment = Payment.objects.get(booking=released_booking)
        assert payment.status == Payment.Status.SETTLED
        assert refundable_amount(payment) == Decimal("0.00")


@pytest.mark.django_db
class TestCancelRefundRequest:
    def test_guest_cancels_open_request(self, approved_request, guest):
        refund_request = cancel_refund_request(approved_request, guest)

        assert refund_request.status == Status.CANCELLED

    def test_realtor_cannot_cancel(self, approved_request, realtor):
        with pytest.raises(RefundRequestError, match="Only the guest"):
            cancel_refund_request(approved_request, realtor)

    def test_admin_can_cancel(self, approved_request, platform_admin):
        assert cancel_refund_request(approved_request, platform_admin).status == Status.CANCELLED

    def test_completed_request_stays_completed(self, approved_request, guest, platform_admin):
        process_refund_request(approved_request, platform_admin)

        with pytest.raises(RefundRequestError, match="completed"):
            cancel_refund_request(approved_request, guest)
