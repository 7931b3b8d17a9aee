"""API tests for guest refund requests and their admin processing."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.tests.factories import (
    check_in_booking,
    make_admin,
    make_booking,
    make_guest,
    make_property,
    make_realtor,
    pay_booking,
)
from apps.finances.escrow import release_room_fee
from apps.finances.gateway import PaymentGatewayError
from apps.finances.models import RefundRequest


class RefundRequestAPITests(APITestCase):
    def setUp(self) -> None:
        self.guest = make_guest()
        self.realtor = make_realtor()
        self.admin = make_admin()
        self.booking = make_booking(self.guest, make_property(self.realtor), days_ahead=1)
        pay_booking(self.booking)
        check_in_booking(self.booking)
        release_room_fee(self.booking, now=self.booking.check_in_at + timedelta(hours=2))

    def _request(self, amount: str = "4000.00"):
        self.client.force_authenticate(self.guest)
        return self.client.post(
            reverse("refund-request-list"),
            {"booking": self.booking.pk, "requested_amount": amount, "reason": "service_issue", "customer_notes": "Broken AC"},
            format="json",
        )

    def _approve(self, refund_request_id: int):
        self.client.force_authenticate(self.realtor)
        return self.client.post(
            reverse("refund-request-decide", kwargs={"pk": refund_request_id}),
            {"approved": True, "notes": "Fair"},
            format="json",
        )

    def test_full_workflow(self) -> None:
        response = self._request()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], RefundRequest.Status.PENDING_REALTOR_APPROVAL)
        refund_request_id = response.data["id"]

        self.client.force_authenticate(self.realtor)
        pending = self.client.get(reverse("refund-request-list"), {"status": "pending_realtor_approval"})
        self.assertEqual([item["id"] for item in pending.data], [refund_request_id])

        response = self._approve(refund_request_id)
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], RefundRequest.Status.REALTOR_APPROVED)

        self.client.force_authenticate(self.admin)
        queue = self.client.get(reverse("admin-refund-request-list"))
        self.assertEqual([item["id"] for item in queue.data], [refund_request_id])

        response = self.client.post(
            reverse("admin-refund-request-process", kwargs={"pk": refund_request_id}),
            {"amount": "3500.00", "notes": "Partial"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], RefundRequest.Status.COMPLETED)
        self.assertEqual(Decimal(response.data["actual_refund_amount"]), Decimal("3500.00"))

        self.client.force_authenticate(self.guest)
        response = self.client.get(reverse("refund-request-detail", kwargs={"pk": refund_request_id}))
        self.assertEqual(response.data["status"], RefundRequest.Status.COMPLETED)

    def test_amount_above_refundable_is_rejected(self) -> None:
        response = self._request("22441.00")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("At most", response.data["detail"])

    def test_cannot_request_for_someone_elses_booking(self) -> None:
        self.client.force_authenticate(make_guest())

        response = self.client.post(
            reverse("refund-request-list"),
            {"booking": self.booking.pk, "requested_amount": "100.00", "reason": "other"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_guest_cannot_approve_own_request(self) -> None:
        refund_request_id = self._request().data["id"]

        response = self.client.post(
            reverse("refund-request-decide", kwargs={"pk": refund_request_id}),
            {"approved": True},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_rejection_without_reason_is_invalid(self) -> None:
        refund_request_id = self._request().data["id"]
        self.client.force_authenticate(self.realtor)

        response = self.client.post(
            reverse("refund-request-decide", kwargs={"pk": refund_request_id}),
            {"approved": False},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("reason", response.data)

    def test_guest_cancels_pending_request(self) -> None:
        refund_request_id = self._request().data["id"]

        response = self.client.post(reverse("refund-request-cancel", kwargs={"pk": refund_request_id}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], RefundRequest.Status.CANCELLED)

    def test_gateway_failure_is_502_and_request_stays_approved(self) -> None:
        refund_request_id = self._request().data["id"]
        self._approve(refund_request_id)
        self.client.force_authenticate(self.admin)

        with patch("apps.finances.gateway.refund_transaction", side_effect=PaymentGatewayError("down")):
            response = self.client.post(reverse("admin-refund-request-process", kwargs={"pk": refund_request_id}))

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        refund_request = RefundRequest.objects.get(pk=refund_request_id)
        self.assertEqual(refund_request.status, RefundRequest.Status.REALTOR_APPROVED)
        self.assertEqual(refund_request.failure_reason, "down")

    def test_processing_twice_is_rejected(self) -> None:
        refund_request_id = self._request().data["id"]
        self._approve(refund_request_id)
        self.client.force_authenticate(self.admin)
        url = reverse("admin-refund-request-process", kwargs={"pk": refund_request_id})
        self.client.post(url)

        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_realtor_cannot_use_admin_api(self) -> None:
        self.client.force_authenticate(self.realtor)

        response = self.client.get(reverse("admin-refund-request-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
