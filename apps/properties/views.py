"""Property API views."""

from __future__ import annotations

from django.db.models import Q  # type: ignore
from django.shortcuts import get_object_or_404  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import generics, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.filters import OrderingFilter  # type: ignore
from rest_framework.response import Response  # type: ignore

from .filters import PropertyFilterSet
from .models import Property, PropertyAvailability
from .serializers import (
    BlockDatesSerializer,
    PropertyAvailabilitySerializer,
    PropertySerializer,
    PropertyWriteSerializer,
)
from . import services
from .services import CalendarConflictError

ORDERING_FIELDS = ["price_per_night", "average_rating", "created_at"]


def _is_admin(user) -> bool:  # type: ignore
    return hasattr(user, "is_platform_admin") and user.is_platform_admin()


class IsPropertyOwnerOrAdmin(permissions.BasePermission):
    """Listing writes are limited to approved realtors (on their own objects) and admins."""

    message = "Only the property owner or a platform admin can perform this action."

    def has_permission(self, request, view):  # type: ignore
        if request.method in permissions.SAFE_METHODS:
            return True
        user = request.user
        if not user.is_authenticated:
            return False
        if _is_admin(user):
            return True
        if getattr(view, "action", None) == "create":
            return hasattr(user, "is_approved_realtor") and user.is_approved_realtor()
        return hasattr(user, "is_realtor") and user.is_realtor()

    def has_object_permission(self, request, view, obj: Property):  # type: ignore
        if request.method in permissions.SAFE_METHODS:
            return True
        user = request.user
        if _is_admin(user):
            return True
        return obj.owner_id == user.id


class PropertyViewSet(viewsets.ModelViewSet):
    """
    Listings.

    Anonymous users and guests see ACTIVE properties only. Realtors also see
    their own listings in any status; admins see everything.
    """

    queryset = Property.objects.select_related("owner")
    permission_classes = [IsPropertyOwnerOrAdmin]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = PropertyFilterSet
    ordering_fields = ORDERING_FIELDS

    def get_permissions(self):  # type: ignore
        if self.action in {"list", "retrieve", "calendar"}:
            return [permissions.AllowAny()]
        if self.action == "mine":
            return [permissions.IsAuthenticated()]
        return super().get_permissions()

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        user = self.request.user
        if not user.is_authenticated:
            return qs.filter(status=Property.Status.ACTIVE)
        if _is_admin(user):
            return qs
        if self.action == "list":
            return qs.filter(status=Property.Status.ACTIVE)
        return qs.filter(Q(status=Property.Status.ACTIVE) | Q(owner=user))

    def get_serializer_class(self):  # type: ignore
        if self.action in {"create", "update", "partial_update"}:
            return PropertyWriteSerializer
        return PropertySerializer

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        instance = serializer.save()
        return Response(PropertySerializer(instance).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):  # type: ignore
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        instance = serializer.save()
        return Response(PropertySerializer(instance).data)

    @action(detail=False, methods=["get"])
    def mine(self, request):  # type: ignore
        """All listings owned by the current realtor, any status."""
        qs = self.filter_queryset(Property.objects.filter(owner=request.user))
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(PropertySerializer(page, many=True).data)
        return Response(PropertySerializer(qs, many=True).data)

    @action(detail=True, methods=["post"])
    def publish(self, request, pk=None):  # type: ignore
        property_obj = self.get_object()
        owner = property_obj.owner
        if not owner.is_approved_realtor():
            return Response(
                {"detail": "Only approved realtors can publish listings."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        if property_obj.status == Property.Status.BLOCKED and not _is_admin(request.user):
            return Response(
                {"detail": "This listing has been blocked by the platform."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        property_obj.activate()
        return Response(PropertySerializer(property_obj).data)

    @action(detail=True, methods=["post"])
    def unpublish(self, request, pk=None):  # type: ignore
        property_obj = self.get_object()
        property_obj.deactivate()
        return Response(PropertySerializer(property_obj).data)

    @action(detail=True, methods=["get"])
    def calendar(self, request, pk=None):  # type: ignore
        """Unavailable ranges, optionally limited by ``start`` / ``end``."""
        property_obj = get_object_or_404(Property, pk=pk, status=Property.Status.ACTIVE)
        qs = PropertyAvailability.objects.filter(property=property_obj)
        start = request.query_params.get("start")
        end = request.query_params.get("end")
        if start:
            qs = qs.filter(end_date__gt=start)
        if end:
            qs = qs.filter(start_date__lt=end)
        serializer = PropertyAvailabilitySerializer(qs.order_by("start_date"), many=True)
        return Response({"property_id": property_obj.id, "unavailable": serializer.data})

    @action(detail=True, methods=["post"], url_path="block-dates")
    def block_dates(self, request, pk=None):  # type: ignore
        property_obj = self.get_object()
        serializer = BlockDatesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            period = services.block_dates(property_obj, created_by=request.user, **serializer.validated_data)
        except CalendarConflictError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(PropertyAvailabilitySerializer(period).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["delete"], url_path=r"block-dates/(?P<block_id>[^/.]+)")
    def unblock_dates(self, request, pk=None, block_id=None):  # type: ignore
        property_obj = self.get_object()
        period = get_object_or_404(PropertyAvailability, pk=block_id, property=property_obj)
        try:
            services.unblock_dates(period)
        except CalendarConflictError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


class SearchPropertiesView(generics.ListAPIView):
    """Public search over ACTIVE listings with filters, ordering and an availability window."""

    serializer_class = PropertySerializer
    permission_classes = [permissions.AllowAny]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = PropertyFilterSet
    ordering_fields = ORDERING_FIELDS

    def get_queryset(self):  # type: ignore
        return Property.objects.select_related("owner").filter(status=Property.Status.ACTIVE)
