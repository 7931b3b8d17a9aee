"""API tests for authentication endpoints."""

from __future__ import annotations

from datetime import timedelta

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.users.models import RealtorProfile, User


class AuthAPITests(APITestCase):
    def test_register_returns_tokens(self) -> None:
        payload = {
            "email": "guest@example.com",
            "phone": "+2348012345678",
            "first_name": "Ada",
            "last_name": "Obi",
            "password": "StrongPass123",
            "password_confirm": "StrongPass123",
        }

        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertIn("tokens", response.data)
        self.assertEqual(response.data["user"]["email"], payload["email"])
        self.assertEqual(response.data["user"]["role"], User.RoleChoices.GUEST)
        self.assertTrue(User.objects.filter(email=payload["email"]).exists())

    def test_register_realtor_creates_pending_profile(self) -> None:
        payload = {
            "email": "realtor@example.com",
            "phone": "+2348012345679",
            "password": "StrongPass123",
            "password_confirm": "StrongPass123",
            "role": User.RoleChoices.REALTOR,
            "business_name": "Ikoyi Homes",
        }

        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

        user = User.objects.get(email=payload["email"])
        self.assertTrue(user.is_realtor())
        self.assertEqual(user.realtor_profile.status, RealtorProfile.Status.PENDING)
        self.assertFalse(user.is_approved_realtor())

    def test_register_realtor_requires_business_name(self) -> None:
        payload = {
            "email": "nobiz@example.com",
            "phone": "+2348012345670",
            "password": "StrongPass123",
            "password_confirm": "StrongPass123",
            "role": User.RoleChoices.REALTOR,
        }

        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("business_name", response.data)

    def test_register_rejects_mismatched_passwords(self) -> None:
        payload = {
            "email": "typo@example.com",
            "phone": "+2348012345671",
            "password": "StrongPass123",
            "password_confirm": "StrongPass124",
        }

        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("password_confirm", response.data)

    def test_login_with_phone(self) -> None:
        User.objects.create_user(
            email="phone@example.com",
            phone="+2348000000001",
            password="CorrectPassword1",
        )

        response = self.client.post(
            reverse("auth:login"),
            {"login": "+2348000000001", "password": "CorrectPassword1"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertIn("access", response.data["tokens"])

    def test_login_limited_attempts(self) -> None:
        user = User.objects.create_user(
            email="lock@example.com",
            phone="+2348000000002",
            password="CorrectPassword1",
        )

        url = reverse("auth:login")
        wrong_payload = {"login": user.email, "password": "wrong"}
        for _ in range(5):
            response = self.client.post(url, wrong_payload, format="json")

        user.refresh_from_db()
        self.assertTrue(user.is_locked)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {"login": user.email, "password": "CorrectPassword1"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        # After lock expires user can login again
        user.locked_until = timezone.now() - timedelta(minutes=1)
        user.save(update_fields=["locked_until"])
        response = self.client.post(url, {"login": user.email, "password": "CorrectPassword1"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)

    def test_me_requires_authentication(self) -> None:
        response = self.client.get(reverse("user-me"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_returns_profile(self) -> None:
        user = User.objects.create_user(email="me@example.com", password="StrongPass123")
        self.client.force_authenticate(user)

        response = self.client.get(reverse("user-me"))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["email"], "me@example.com")
        self.assertIsNone(response.data["realtor_profile"])
