"""API tests for opening, answering and arbitrating disputes."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.domain.lifecycle import BookingStatusConflictError
from apps.bookings.models import Booking
from apps.bookings.services import check_out
from apps.bookings.tests.factories import (
    check_in_booking,
    make_admin,
    make_booking,
    make_guest,
    make_property,
    make_realtor,
    pay_booking,
)
from apps.disputes.models import Dispute
from apps.finances.escrow import release_room_fee


class DisputeAPITests(APITestCase):
    def setUp(self) -> None:
        self.guest = make_guest()
        self.realtor = make_realtor()
        self.booking = make_booking(self.guest, make_property(self.realtor), days_ahead=1)
        pay_booking(self.booking)
        self.booking = check_in_booking(self.booking, now=timezone.now())

    def _open_room_fee(self, category=Dispute.Category.MISSING_AMENITIES_CLEANLINESS):
        self.client.force_authenticate(self.guest)
        return self.client.post(
            reverse("dispute-room-fee"),
            {
                "booking": self.booking.pk,
                "category": category,
                "description": "Wi-Fi advertised but not available.",
                "evidence_urls": ["https://example.com/photo.jpg"],
            },
            format="json",
        )

    def test_guest_opens_room_fee_dispute(self) -> None:
        response = self._open_room_fee()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], Dispute.Status.AWAITING_RESPONSE)
        self.assertEqual(response.data["max_refund_percent"], 30)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.DISPUTED)

    def test_second_dispute_is_rejected(self) -> None:
        self._open_room_fee()

        response = self._open_room_fee(Dispute.Category.MINOR_INCONVENIENCE)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_category_is_rejected(self) -> None:
        response = self._open_room_fee(Dispute.Category.PROPERTY_DAMAGE)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("category", response.data)

    def test_escalate_and_admin_resolves(self) -> None:
        dispute_id = self._open_room_fee().data["id"]
        self.client.force_authenticate(self.realtor)

        response = self.client.post(
            reverse("dispute-respond", kwargs={"pk": dispute_id}),
            {"action": Dispute.ResponseAction.REJECT_ESCALATE, "note": "Wi-Fi works fine."},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Dispute.Status.ESCALATED)

        self.client.force_authenticate(make_admin())
        response = self.client.get(reverse("admin-dispute-list"), {"status": "escalated"})
        self.assertEqual([row["id"] for row in response.data], [dispute_id])

        response = self.client.post(
            reverse("admin-dispute-resolve", kwargs={"pk": dispute_id}),
            {"decision": Dispute.AdminDecision.PARTIAL_REFUND, "notes": "Router was faulty."},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["outcome"], Dispute.Outcome.PARTIAL_REFUND_EXECUTED)

        response = self.client.get(reverse("admin-dispute-stats"))
        self.assertEqual(response.data["by_outcome"], {Dispute.Outcome.PARTIAL_REFUND_EXECUTED: 1})

    def test_guest_withdraws(self) -> None:
        dispute_id = self._open_room_fee().data["id"]

        response = self.client.post(reverse("dispute-withdraw", kwargs={"pk": dispute_id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Dispute.Status.CANCELLED)

    def test_respond_while_executing_is_a_conflict(self) -> None:
        dispute_id = self._open_room_fee().data["id"]
        Dispute.objects.filter(pk=dispute_id).update(execution_started_at=timezone.now())
        self.client.force_authenticate(self.realtor)

        response = self.client.post(
            reverse("dispute-respond", kwargs={"pk": dispute_id}),
            {"action": Dispute.ResponseAction.ACCEPT},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(Dispute.objects.get(pk=dispute_id).status, Dispute.Status.AWAITING_RESPONSE)

    def test_booking_status_conflict_is_reported_as_409(self) -> None:
        dispute_id = self._open_room_fee().data["id"]

        with patch(
            "apps.disputes.services.withdraw_dispute",
            side_effect=BookingStatusConflictError(self.booking.pk, Booking.Status.DISPUTED, Booking.Status.CANCELLED),
        ):
            response = self.client.post(reverse("dispute-withdraw", kwargs={"pk": dispute_id}))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_guest_cannot_respond_to_own_dispute(self) -> None:
        dispute_id = self._open_room_fee().data["id"]

        response = self.client.post(
            reverse("dispute-respond", kwargs={"pk": dispute_id}),
            {"action": Dispute.ResponseAction.ACCEPT},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_strangers_do_not_see_disputes(self) -> None:
        dispute_id = self._open_room_fee().data["id"]
        self.client.force_authenticate(make_guest())

        self.assertEqual(self.client.get(reverse("dispute-list")).data, [])
        response = self.client.post(reverse("dispute-withdraw", kwargs={"pk": dispute_id}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_non_admin_cannot_resolve(self) -> None:
        dispute_id = self._open_room_fee().data["id"]

        response = self.client.post(
            reverse("admin-dispute-resolve", kwargs={"pk": dispute_id}),
            {"decision": Dispute.AdminDecision.FULL_REFUND},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class DepositDisputeAPITests(APITestCase):
    def setUp(self) -> None:
        self.guest = make_guest()
        self.realtor = make_realtor()
        booking = make_booking(self.guest, make_property(self.realtor), days_ahead=1)
        pay_booking(booking)
        now = timezone.now()
        check_in_booking(booking, now=now - timedelta(hours=3))
        release_room_fee(booking, now=now - timedelta(hours=1))
        self.booking = check_out(booking, now=now)
        self.client.force_authenticate(self.realtor)

    def _claim(self, amount: str):
        return self.client.post(
            reverse("dispute-deposit"),
            {
                "booking": self.booking.pk,
                "category": Dispute.Category.CLEANING_REQUIRED,
                "claimed_amount": amount,
                "description": "Deep clean needed after a party.",
            },
            format="json",
        )

    def test_realtor_claims_deposit(self) -> None:
        response = self._claim("1500.00")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(Decimal(response.data["claimed_amount"]), Decimal("1500.00"))
        self.assertEqual(response.data["subject"], Dispute.Subject.SECURITY_DEPOSIT)

    def test_claim_above_deposit_is_rejected(self) -> None:
        response = self._claim("9000.00")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("claimed amount", response.data["detail"])

    def test_guest_cannot_claim_deposit(self) -> None:
        self.client.force_authenticate(self.guest)

        response = self._claim("1500.00")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
