"""URL routing for the platform admin booking API."""

from django.urls import path, include  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from .views import AdminBookingViewSet

router = SimpleRouter()
router.register(r"bookings", AdminBookingViewSet, basename="admin-booking")

urlpatterns = [
    path("", include(router.urls)),
]
