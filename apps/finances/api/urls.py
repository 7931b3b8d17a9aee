"""URL routing for the platform admin finance API."""

from django.urls import path, include  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from .views import AdminRefundRequestViewSet, AdminWithdrawalViewSet

router = SimpleRouter()
router.register(r"withdrawals", AdminWithdrawalViewSet, basename="admin-withdrawal")
router.register(r"refund-requests", AdminRefundRequestViewSet, basename="admin-refund-request")

urlpatterns = [
    path("", include(router.urls)),
]
