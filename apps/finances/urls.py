"""URL routing for the finance domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import (
    GatewayWebhookView,
    PaymentViewSet,
    RefundRequestViewSet,
    WalletTransactionListView,
    WalletView,
    WithdrawalViewSet,
)

router = DefaultRouter()
router.register(r"payments", PaymentViewSet, basename="payment")
router.register(r"wallet/transactions", WalletTransactionListView, basename="wallet-transaction")
router.register(r"withdrawals", WithdrawalViewSet, basename="withdrawal")
router.register(r"refund-requests", RefundRequestViewSet, basename="refund-request")

urlpatterns = [
    path("webhooks/gateway/", GatewayWebhookView.as_view(), name="gateway-webhook"),
    path("wallet/", WalletView.as_view(), name="wallet"),
    path("", include(router.urls)),
]
