from __future__ import annotations

from decimal import Decimal

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.bookings.tests.factories import make_admin, make_booking, make_guest, make_property, make_realtor
from apps.reviews.models import Review
from apps.reviews.services import create_review


class ReviewAPITests(APITestCase):
    def setUp(self) -> None:
        self.realtor = make_realtor()
        self.guest = make_guest()
        self.property = make_property(self.realtor)
        self.booking = self._completed_booking(self.guest)
        self.url = reverse("review-list")

    def _completed_booking(self, guest, days_ahead: int = 3) -> Booking:
        booking = make_booking(guest, self.property, days_ahead=days_ahead)
        Booking.objects.filter(pk=booking.pk).update(status=Booking.Status.COMPLETED)
        booking.refresh_from_db()
        return booking

    def test_guest_reviews_completed_booking(self) -> None:
        self.client.force_authenticate(self.guest)

        response = self.client.post(
            self.url,
            {"booking": self.booking.pk, "rating": 4, "comment": "Great host.", "cleanliness_rating": 5},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["average_rating"], 4.5)

        self.property.refresh_from_db()
        self.assertEqual(self.property.review_count, 1)
        self.assertEqual(self.property.average_rating, Decimal("4.00"))

    def test_active_booking_cannot_be_reviewed(self) -> None:
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.ACTIVE)
        self.client.force_authenticate(self.guest)

        response = self.client.post(self.url, {"booking": self.booking.pk, "rating": 5}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("completed", response.data["detail"])

    def test_one_review_per_booking(self) -> None:
        create_review(self.guest, self.booking, rating=5)
        self.client.force_authenticate(self.guest)

        response = self.client.post(self.url, {"booking": self.booking.pk, "rating": 1}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Review.objects.count(), 1)

    def test_other_guest_cannot_review(self) -> None:
        self.client.force_authenticate(make_guest())

        response = self.client.post(self.url, {"booking": self.booking.pk, "rating": 5}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rating_out_of_range(self) -> None:
        self.client.force_authenticate(self.guest)

        response = self.client.post(self.url, {"booking": self.booking.pk, "rating": 6}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("rating", response.data)

    def test_owner_responds_once(self) -> None:
        review = create_review(self.guest, self.booking, rating=3)
        url = reverse("review-respond", kwargs={"pk": review.pk})

        self.client.force_authenticate(self.guest)
        response = self.client.post(url, {"realtor_response": "Thanks"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.realtor)
        response = self.client.post(url, {"realtor_response": "Thanks for staying!"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["realtor_response"], "Thanks for staying!")

        response = self.client.post(url, {"realtor_response": "Again"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_hides_and_restores_review(self) -> None:
        review = create_review(self.guest, self.booking, rating=1, comment="Spam")
        create_review(self.guest, self._completed_booking(self.guest, days_ahead=10), rating=5)
        self.property.refresh_from_db()
        self.assertEqual(self.property.average_rating, Decimal("3.00"))

        self.client.force_authenticate(make_admin())
        response = self.client.post(reverse("review-hide", kwargs={"pk": review.pk}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.property.refresh_from_db()
        self.assertEqual(self.property.average_rating, Decimal("5.00"))
        self.assertEqual(self.property.review_count, 1)

        # Hidden reviews drop out of the public list
        self.client.force_authenticate(None)
        response = self.client.get(self.url, {"property": self.property.pk})
        self.assertEqual(len(response.data), 1)

        self.client.force_authenticate(make_admin())
        self.client.post(reverse("review-unhide", kwargs={"pk": review.pk}))
        self.property.refresh_from_db()
        self.assertEqual(self.property.review_count, 2)

    def test_guest_cannot_hide_review(self) -> None:
        review = create_review(self.guest, self.booking, rating=1)
        self.client.force_authenticate(self.guest)

        response = self.client.post(reverse("review-hide", kwargs={"pk": review.pk}))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
