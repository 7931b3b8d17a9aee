"""Tests for the property calendar: manual blocks and booked ranges."""

from __future__ import annotations

from datetime import timedelta

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.tests.factories import make_booking, make_guest, make_property, make_realtor
from apps.properties.models import PropertyAvailability
from apps.properties.services import is_range_available


class PropertyCalendarAPITests(APITestCase):
    def setUp(self) -> None:
        self.owner = make_realtor()
        self.property = make_property(self.owner)
        self.today = timezone.localdate()
        self.client.force_authenticate(self.owner)

    def _block_url(self) -> str:
        return reverse("property-block-dates", kwargs={"pk": self.property.pk})

    def test_owner_blocks_dates(self) -> None:
        payload = {
            "start_date": str(self.today + timedelta(days=3)),
            "end_date": str(self.today + timedelta(days=6)),
            "reason": "Painting",
        }

        response = self.client.post(self._block_url(), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["source"], PropertyAvailability.Source.MANUAL)
        self.assertFalse(
            is_range_available(self.property, self.today + timedelta(days=5), self.today + timedelta(days=8))
        )
        # End date is exclusive
        self.assertTrue(
            is_range_available(self.property, self.today + timedelta(days=6), self.today + timedelta(days=8))
        )

    def test_block_overlapping_booking_is_rejected(self) -> None:
        booking = make_booking(make_guest(), self.property, days_ahead=4, nights=2)
        payload = {
            "start_date": str(booking.check_in + timedelta(days=1)),
            "end_date": str(booking.check_out + timedelta(days=3)),
        }

        response = self.client.post(self._block_url(), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("booking", response.data["detail"])

    def test_end_before_start_is_rejected(self) -> None:
        payload = {
            "start_date": str(self.today + timedelta(days=6)),
            "end_date": str(self.today + timedelta(days=3)),
        }

        response = self.client.post(self._block_url(), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("end_date", response.data)

    def test_booking_reservation_cannot_be_unblocked(self) -> None:
        booking = make_booking(make_guest(), self.property, days_ahead=4, nights=2)
        period = PropertyAvailability.objects.get(booking=booking)

        response = self.client.delete(
            reverse("property-unblock-dates", kwargs={"pk": self.property.pk, "block_id": period.pk})
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(PropertyAvailability.objects.filter(pk=period.pk).exists())

    def test_manual_block_can_be_removed(self) -> None:
        self.client.post(
            self._block_url(),
            {"start_date": str(self.today + timedelta(days=3)), "end_date": str(self.today + timedelta(days=4))},
            format="json",
        )
        period = PropertyAvailability.objects.get(property=self.property)

        response = self.client.delete(
            reverse("property-unblock-dates", kwargs={"pk": self.property.pk, "block_id": period.pk})
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(PropertyAvailability.objects.exists())

    def test_public_calendar_lists_unavailable_ranges(self) -> None:
        booking = make_booking(make_guest(), self.property, days_ahead=4, nights=2)
        self.client.force_authenticate(None)

        response = self.client.get(reverse("property-calendar", kwargs={"pk": self.property.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(len(response.data["unavailable"]), 1)
        self.assertEqual(response.data["unavailable"][0]["start_date"], str(booking.check_in))
        self.assertEqual(response.data["unavailable"][0]["status"], PropertyAvailability.AvailabilityStatus.BOOKED)

    def test_guest_cannot_block_dates(self) -> None:
        self.client.force_authenticate(make_guest())
        payload = {
            "start_date": str(self.today + timedelta(days=3)),
            "end_date": str(self.today + timedelta(days=6)),
        }

        response = self.client.post(self._block_url(), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
