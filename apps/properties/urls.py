"""URL routing for the properties domain."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import PropertyViewSet, SearchPropertiesView

router = DefaultRouter()
router.register(r"", PropertyViewSet, basename="property")

urlpatterns = [
    # Must precede the router so "search/" is not captured as a detail lookup
    path("search/", SearchPropertiesView.as_view(), name="property-search"),
    path("", include(router.urls)),
]
