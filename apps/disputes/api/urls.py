"""URL routing for the platform admin dispute API."""

from django.urls import path, include  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from .views import AdminDisputeViewSet

router = SimpleRouter()
router.register(r"disputes", AdminDisputeViewSet, basename="admin-dispute")

urlpatterns = [
    path("", include(router.urls)),
]
