from __future__ import annotations

from decimal import Decimal

from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.tests.factories import make_admin, make_booking, make_guest, make_property, make_realtor, pay_booking


class AnalyticsAPITests(APITestCase):
    def setUp(self) -> None:
        listing = make_property(make_realtor())
        pay_booking(make_booking(make_guest(), listing, days_ahead=5))
        make_booking(make_guest(), listing, days_ahead=12)
        self.client.force_authenticate(make_admin())

    def test_overview(self) -> None:
        response = self.client.get(reverse("analytics-overview"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["bookings_by_status"]["active"], 1)
        self.assertEqual(response.data["bookings_by_status"]["pending"], 1)
        self.assertEqual(response.data["bookings_by_status"]["disputed"], 0)
        self.assertEqual(response.data["escrow_held"], Decimal("25000.00"))
        self.assertEqual(response.data["platform_wallet_balance"], Decimal("440.00"))
        self.assertEqual(response.data["realtor_wallet_balance"], Decimal("2000.00"))
        self.assertEqual(response.data["open_disputes"], 0)

    def test_finance_config(self) -> None:
        response = self.client.get(reverse("analytics-finance-config"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["errors"], [])
        self.assertEqual(response.data["effective"]["SERVICE_FEE_RATE"], "0.02")

    @override_settings(FINANCE_CONFIG={"WITHDRAWAL_FEE_RATE": "0.5"})
    def test_finance_config_reports_errors(self) -> None:
        response = self.client.get(reverse("analytics-finance-config"))

        self.assertEqual(len(response.data["errors"]), 1)
        self.assertIn("WITHDRAWAL_FEE_RATE", response.data["errors"][0])

    @override_settings(CANCELLATION_POLICY={"TIERS": {"medium": {"customer": "0.90"}}})
    def test_finance_config_reports_cancellation_policy_errors(self) -> None:
        response = self.client.get(reverse("analytics-finance-config"))

        self.assertEqual(len(response.data["errors"]), 1)
        self.assertIn("medium", response.data["errors"][0])
        self.assertEqual(response.data["cancellation_policy"]["TIERS"]["medium"]["customer"], "0.70")

    def test_admin_only(self) -> None:
        self.client.force_authenticate(make_guest())

        self.assertEqual(self.client.get(reverse("analytics-overview")).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.get(reverse("analytics-finance-config")).status_code, status.HTTP_403_FORBIDDEN)
