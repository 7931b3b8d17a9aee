"""API tests for listings: creation, publishing, visibility and search."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.tests.factories import make_booking, make_guest, make_property, make_realtor
from apps.properties.models import Property


class PropertyAPITests(APITestCase):
    def setUp(self) -> None:
        self.realtor = make_realtor()
        self.guest = make_guest()
        self.list_url = reverse("property-list")

    def _payload(self, **overrides) -> dict:
        payload = {
            "title": "Victoria Island Loft",
            "description": "Open plan loft close to the beach.",
            "address": "5 Ahmadu Bello Way",
            "city": "Lagos",
            "price_per_night": "15000.00",
            "cleaning_fee": "2500.00",
            "security_deposit": "10000.00",
            "max_guests": 3,
        }
        payload.update(overrides)
        return payload

    def test_approved_realtor_creates_draft(self) -> None:
        self.client.force_authenticate(self.realtor)

        response = self.client.post(self.list_url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], Property.Status.DRAFT)
        self.assertEqual(Property.objects.get().owner, self.realtor)

    def test_pending_realtor_cannot_create(self) -> None:
        pending = make_realtor(approved=False)
        self.client.force_authenticate(pending)

        response = self.client.post(self.list_url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_guest_cannot_create(self) -> None:
        self.client.force_authenticate(self.guest)

        response = self.client.post(self.list_url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_rejects_max_nights_below_min_nights(self) -> None:
        self.client.force_authenticate(self.realtor)

        response = self.client.post(self.list_url, self._payload(min_nights=5, max_nights=2), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("max_nights", response.data)

    def test_publish_and_unpublish(self) -> None:
        listing = make_property(self.realtor, status=Property.Status.DRAFT)
        self.client.force_authenticate(self.realtor)

        response = self.client.post(reverse("property-publish", kwargs={"pk": listing.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Property.Status.ACTIVE)

        response = self.client.post(reverse("property-unpublish", kwargs={"pk": listing.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Property.Status.INACTIVE)

    def test_other_realtor_cannot_edit(self) -> None:
        listing = make_property(self.realtor)
        self.client.force_authenticate(make_realtor())

        response = self.client.patch(
            reverse("property-detail", kwargs={"pk": listing.pk}),
            {"price_per_night": "1.00"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_shows_only_active_listings(self) -> None:
        active = make_property(self.realtor)
        make_property(self.realtor, title="Draft", status=Property.Status.DRAFT)

        response = self.client.get(self.list_url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in response.data], [active.id])

    def test_mine_includes_drafts(self) -> None:
        make_property(self.realtor)
        make_property(self.realtor, title="Draft", status=Property.Status.DRAFT)
        self.client.force_authenticate(self.realtor)

        response = self.client.get(reverse("property-mine"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)


class PropertySearchAPITests(APITestCase):
    def setUp(self) -> None:
        self.realtor = make_realtor()
        self.lagos = make_property(self.realtor, price_per_night=Decimal("10000.00"))
        self.abuja = make_property(
            self.realtor,
            title="Maitama Villa",
            city="Abuja",
            state="FCT",
            price_per_night=Decimal("40000.00"),
            max_guests=8,
        )
        self.url = reverse("property-search")

    def _ids(self, response) -> set[int]:
        return {row["id"] for row in response.data}

    def test_filter_by_city_and_price(self) -> None:
        response = self.client.get(self.url, {"city": "lagos"})
        self.assertEqual(self._ids(response), {self.lagos.id})

        response = self.client.get(self.url, {"price_min": "20000"})
        self.assertEqual(self._ids(response), {self.abuja.id})

    def test_filter_by_guests(self) -> None:
        response = self.client.get(self.url, {"guests": 6})
        self.assertEqual(self._ids(response), {self.abuja.id})

    def test_availability_window_excludes_booked_listing(self) -> None:
        booking = make_booking(make_guest(), self.lagos, days_ahead=5, nights=3)

        response = self.client.get(
            self.url,
            {
                "check_in": str(booking.check_in + timedelta(days=1)),
                "check_out": str(booking.check_out + timedelta(days=2)),
            },
        )
        self.assertEqual(self._ids(response), {self.abuja.id})

        # Check-out day is free again
        response = self.client.get(
            self.url,
            {
                "check_in": str(booking.check_out),
                "check_out": str(booking.check_out + timedelta(days=2)),
            },
        )
        self.assertEqual(self._ids(response), {self.lagos.id, self.abuja.id})

    def test_ordering_by_price(self) -> None:
        response = self.client.get(self.url, {"ordering": "-price_per_night"})
        self.assertEqual([row["id"] for row in response.data], [self.abuja.id, self.lagos.id])

    def test_inactive_listing_is_hidden(self) -> None:
        self.abuja.deactivate()

        response = self.client.get(self.url)
        self.assertEqual(self._ids(response), {self.lagos.id})
