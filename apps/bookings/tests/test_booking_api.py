"""Integration tests for booking API endpoints."""

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
from apps.bookings.tests.factories import (
    check_in_booking,
    make_admin,
    make_booking,
    make_guest,
    make_property,
    make_realtor,
    pay_booking,
)
from apps.finances.domain.refund_policy import RefundTier
from apps.finances.escrow import RefundInProgressError
from apps.finances.gateway import PaymentGatewayError
from apps.finances.models import EscrowEvent, Payment
from apps.properties.models import PropertyAvailability


class BookingAPITests(APITestCase):
    """Covers creation, conflicts, quotes and cancellation of bookings."""

    def setUp(self) -> None:
        self.guest = make_guest()
        self.owner = make_realtor()
        self.property = make_property(self.owner)
        self.client.force_authenticate(self.guest)
        self.list_url = reverse("booking-list")

    def _payload(self, days_ahead: int = 10, nights: int = 2, **overrides) -> dict:
        check_in = timezone.localdate() + timedelta(days=days_ahead)
        payload = {
            "property": self.property.id,
            "check_in": str(check_in),
            "check_out": str(check_in + timedelta(days=nights)),
            "guests_count": 2,
        }
        payload.update(overrides)
        return payload

    def test_guest_can_create_booking(self) -> None:
        response = self.client.post(self.list_url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], Booking.Status.PENDING)
        self.assertEqual(Decimal(response.data["room_fee"]), Decimal("20000.00"))
        self.assertEqual(Decimal(response.data["service_fee"]), Decimal("440.00"))
        self.assertEqual(Decimal(response.data["total_price"]), Decimal("27440.00"))
        self.assertIsNotNone(response.data["expires_at"])

        booking = Booking.objects.get()
        self.assertEqual(booking.guest, self.guest)
        self.assertTrue(
            PropertyAvailability.objects.filter(
                booking=booking,
                status=PropertyAvailability.AvailabilityStatus.BOOKED,
            ).exists()
        )

    def test_overlapping_booking_is_rejected(self) -> None:
        first = self.client.post(self.list_url, self._payload(days_ahead=10, nights=3), format="json")
        self.assertEqual(first.status_code, status.HTTP_201_CREATED, first.data)

        self.client.force_authenticate(make_guest())
        second = self.client.post(self.list_url, self._payload(days_ahead=11, nights=3), format="json")
        self.assertEqual(second.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Booking.objects.count(), 1)

    def test_back_to_back_bookings_are_allowed(self) -> None:
        self.client.post(self.list_url, self._payload(days_ahead=10, nights=2), format="json")

        response = self.client.post(self.list_url, self._payload(days_ahead=12, nights=2), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

    def test_rejects_check_in_in_the_past(self) -> None:
        response = self.client.post(self.list_url, self._payload(days_ahead=-1), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rejects_too_many_guests(self) -> None:
        response = self.client.post(self.list_url, self._payload(guests_count=9), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rejects_stay_longer_than_max_nights(self) -> None:
        response = self.client.post(self.list_url, self._payload(nights=31), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_quote_returns_fee_breakdown(self) -> None:
        response = self.client.post(reverse("booking-quote"), self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["currency"], "NGN")
        self.assertEqual(response.data["nights"], 2)
        self.assertEqual(response.data["total"], "27440.00")
        self.assertEqual(Booking.objects.count(), 0)

    def test_guest_sees_only_own_bookings(self) -> None:
        make_booking(make_guest(), self.property, days_ahead=20)
        own = make_booking(self.guest, self.property, days_ahead=10)

        response = self.client.get(self.list_url)
        self.assertEqual([row["id"] for row in response.data], [own.id])

    def test_realtor_sees_bookings_of_own_listings(self) -> None:
        booking = make_booking(self.guest, self.property)
        self.client.force_authenticate(self.owner)

        response = self.client.get(self.list_url)
        self.assertEqual([row["id"] for row in response.data], [booking.id])

    def test_cancel_unpaid_booking_releases_dates(self) -> None:
        booking = make_booking(self.guest, self.property)

        response = self.client.post(reverse("booking-cancel", kwargs={"pk": booking.pk}), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["booking"]["status"], Booking.Status.CANCELLED)
        self.assertIsNone(response.data["refund"])
        self.assertFalse(PropertyAvailability.objects.filter(booking=booking).exists())

    def test_cancel_paid_booking_early_refunds_ninety_percent(self) -> None:
        booking = make_booking(self.guest, self.property, days_ahead=10)
        pay_booking(booking)

        response = self.client.post(
            reverse("booking-cancel", kwargs={"pk": booking.pk}),
            {"reason": "Change of plans"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        refund = response.data["refund"]
        self.assertEqual(refund["tier"], RefundTier.EARLY)
        self.assertEqual(refund["customer_room_refund"], "18000.00")
        self.assertEqual(refund["deposit_refund"], "5000.00")
        self.assertEqual(refund["total_refund"], "23000.00")
        self.assertEqual(Payment.objects.get(booking=booking).status, Payment.Status.REFUNDED)

    def test_gateway_failure_keeps_booking_active(self) -> None:
        booking = make_booking(self.guest, self.property, days_ahead=10)
        pay_booking(booking)

        with patch("apps.finances.gateway.refund_transaction", side_effect=PaymentGatewayError("timeout")):
            response = self.client.post(reverse("booking-cancel", kwargs={"pk": booking.pk}), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY, response.data)
        booking.refresh_from_db()
        payment = Payment.objects.get(booking=booking)
        self.assertEqual(booking.status, Booking.Status.ACTIVE)
        self.assertEqual(payment.status, Payment.Status.ESCROW_HELD)
        self.assertTrue(payment.metadata["cancellation_refund_failed"])
        self.assertEqual(payment.metadata["gateway_refunds"], {})
        self.assertFalse(EscrowEvent.objects.filter(transaction_reference__startswith="refund_").exists())

        # The guest can try again once the gateway is back
        response = self.client.post(reverse("booking-cancel", kwargs={"pk": booking.pk}), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["refund"]["total_refund"], "23000.00")

    def test_cancellation_preview(self) -> None:
        booking = make_booking(self.guest, self.property, days_ahead=10)
        pay_booking(booking)

        response = self.client.get(reverse("booking-cancellation-preview", kwargs={"pk": booking.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["can_cancel"])
        self.assertEqual(response.data["tier"], RefundTier.EARLY)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.ACTIVE)

    def test_stranger_cannot_cancel(self) -> None:
        booking = make_booking(self.guest, self.property)
        self.client.force_authenticate(make_guest())

        response = self.client.post(reverse("booking-cancel", kwargs={"pk": booking.pk}), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class CheckInAPITests(APITestCase):
    def setUp(self) -> None:
        self.guest = make_guest()
        self.owner = make_realtor()
        self.property = make_property(self.owner)
        self.booking = make_booking(self.guest, self.property, days_ahead=3)
        pay_booking(self.booking)

    def test_guest_confirms_check_in(self) -> None:
        self.client.force_authenticate(self.guest)

        response = self.client.post(reverse("booking-confirm-check-in", kwargs={"pk": self.booking.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["stay_status"], Booking.StayStatus.CHECKED_IN)
        self.assertEqual(response.data["checkin_confirmation_type"], Booking.CheckInConfirmation.GUEST_CONFIRMED)
        self.assertIsNotNone(response.data["dispute_window_closes_at"])

    def test_realtor_cannot_confirm_before_check_in_time(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.post(reverse("booking-confirm-check-in", kwargs={"pk": self.booking.pk}))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unpaid_booking_cannot_check_in(self) -> None:
        unpaid = make_booking(self.guest, self.property, days_ahead=10)
        self.client.force_authenticate(self.guest)

        response = self.client.post(reverse("booking-confirm-check-in", kwargs={"pk": unpaid.pk}))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_guest_checks_out(self) -> None:
        check_in_booking(self.booking, now=timezone.now())
        self.client.force_authenticate(self.owner)

        response = self.client.post(reverse("booking-check-out", kwargs={"pk": self.booking.pk}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.guest)
        response = self.client.post(reverse("booking-check-out", kwargs={"pk": self.booking.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["stay_status"], Booking.StayStatus.CHECKED_OUT)
        self.assertIsNotNone(response.data["realtor_dispute_closes_at"])

    def test_dispute_windows(self) -> None:
        check_in_booking(self.booking, now=timezone.now())
        self.client.force_authenticate(self.guest)

        response = self.client.get(reverse("booking-dispute-windows", kwargs={"pk": self.booking.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["guest_window_open"])
        self.assertFalse(response.data["realtor_window_open"])

    def test_escrow_events_list_payment_legs(self) -> None:
        self.client.force_authenticate(self.guest)

        response = self.client.get(reverse("booking-escrow-events", kwargs={"pk": self.booking.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        event_types = {row["event_type"] for row in response.data}
        self.assertEqual(
            event_types,
            {"hold_room_fee", "hold_security_deposit", "release_cleaning_fee", "collect_service_fee"},
        )


class AdminBookingAPITests(APITestCase):
    def setUp(self) -> None:
        self.admin = make_admin()
        self.property = make_property(make_realtor())
        self.guest = make_guest()
        self.client.force_authenticate(self.admin)

    def test_invalid_transition_is_rejected(self) -> None:
        booking = make_booking(self.guest, self.property)

        response = self.client.post(
            reverse("admin-booking-change-status", kwargs={"pk": booking.pk}),
            {"status": Booking.Status.COMPLETED},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_activation_requires_held_payment(self) -> None:
        booking = make_booking(self.guest, self.property)

        response = self.client.post(
            reverse("admin-booking-change-status", kwargs={"pk": booking.pk}),
            {"status": Booking.Status.ACTIVE},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("funds not held", response.data["detail"])

    def test_batch_status_reports_each_booking(self) -> None:
        first = make_booking(self.guest, self.property, days_ahead=10)
        second = make_booking(self.guest, self.property, days_ahead=20)
        Booking.objects.filter(pk=second.pk).update(status=Booking.Status.COMPLETED)

        response = self.client.post(
            reverse("admin-booking-batch-status"),
            {"booking_ids": [first.pk, second.pk, 999999], "status": Booking.Status.CANCELLED},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["successful"], [first.pk])
        failed_ids = [row["id"] for row in response.data["failed"]]
        self.assertEqual(failed_ids, [second.pk, 999999])
        self.assertEqual(response.data["failed"][1]["error"], "Booking not found.")

    def test_admin_cancel_refunds_everything(self) -> None:
        booking = make_booking(self.guest, self.property, days_ahead=10)
        pay_booking(booking)

        response = self.client.post(reverse("admin-booking-cancel", kwargs={"pk": booking.pk}), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["refund"]["tier"], RefundTier.FULL)
        self.assertEqual(response.data["refund"]["total_refund"], "27440.00")

    def test_concurrent_status_change_is_a_conflict(self) -> None:
        booking = make_booking(self.guest, self.property)

        with patch(
            "apps.bookings.api.views.transition_booking_status",
            side_effect=BookingStatusConflictError(booking.pk, Booking.Status.PENDING, Booking.Status.CANCELLED),
        ):
            response = self.client.post(
                reverse("admin-booking-change-status", kwargs={"pk": booking.pk}),
                {"status": Booking.Status.CANCELLED},
                format="json",
            )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_cancel_during_refund_in_flight_is_a_conflict(self) -> None:
        booking = make_booking(self.guest, self.property, days_ahead=10)
        pay_booking(booking)

        with patch("apps.bookings.api.views.cancel_booking", side_effect=RefundInProgressError("in progress")):
            response = self.client.post(reverse("admin-booking-cancel", kwargs={"pk": booking.pk}), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_guest_cannot_use_admin_api(self) -> None:
        self.client.force_authenticate(self.guest)
        response = self.client.get(reverse("admin-booking-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
