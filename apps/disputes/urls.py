"""URL routing for disputes."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import DisputeViewSet

router = DefaultRouter()
router.register(r"", DisputeViewSet, basename="dispute")

urlpatterns = [
    path("", include(router.urls)),
]
