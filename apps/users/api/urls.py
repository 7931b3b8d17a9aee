"""URL routing for the platform admin realtor API."""

from django.urls import path, include  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from .views import AdminRealtorViewSet

router = SimpleRouter()
router.register(r"realtors", AdminRealtorViewSet, basename="admin-realtor")

urlpatterns = [
    path("", include(router.urls)),
]
