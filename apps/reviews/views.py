"""API views for reviews."""

from __future__ import annotations

from django.db import models  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.users.api.permissions import IsPlatformAdmin

from .models import Review
from .serializers import RealtorResponseSerializer, ReviewCreateSerializer, ReviewSerializer
from .services import ReviewError, create_review, respond_to_review, set_review_visibility


class ReviewViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Property reviews.

    Anyone can read visible reviews (``?property=<id>``). Guests review
    completed bookings, owners respond once, admins hide or restore.
    """

    queryset = Review.objects.select_related('property', 'guest', 'booking').all()
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]

    def get_serializer_class(self):  # type: ignore
        if self.action == 'create':
            return ReviewCreateSerializer
        if self.action == 'respond':
            return RealtorResponseSerializer
        return ReviewSerializer

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        user = self.request.user

        property_id = self.request.query_params.get('property')
        if property_id:
            qs = qs.filter(property_id=property_id)

        if hasattr(user, 'is_platform_admin') and user.is_platform_admin():
            return qs
        if not user.is_authenticated:
            return qs.filter(is_visible=True)
        # Own reviews stay visible to their author and to the property owner
        return qs.filter(models.Q(is_visible=True) | models.Q(guest=user) | models.Q(property__owner=user))

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        booking = data.pop('booking')
        try:
            review = create_review(request.user, booking, **data)
        except ReviewError as exc:
            return Response({'detail': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], permission_classes=[permissions.IsAuthenticated])
    def respond(self, request, pk=None):  # type: ignore
        review = self.get_object()
        if review.property.owner_id != request.user.id:
            return Response(
                {'detail': 'Only the property owner can respond to reviews.'},
                status=status.HTTP_403_FORBIDDEN,
            )
        serializer = RealtorResponseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            review = respond_to_review(review, request.user, serializer.validated_data['realtor_response'])
        except ReviewError as exc:
            return Response({'detail': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(ReviewSerializer(review).data)

    @action(detail=True, methods=['post'], permission_classes=[permissions.IsAuthenticated, IsPlatformAdmin])
    def hide(self, request, pk=None):  # type: ignore
        review = set_review_visibility(self.get_object(), False)
        return Response(ReviewSerializer(review).data)

    @action(detail=True, methods=['post'], permission_classes=[permissions.IsAuthenticated, IsPlatformAdmin])
    def unhide(self, request, pk=None):  # type: ignore
        review = set_review_visibility(self.get_object(), True)
        return Response(ReviewSerializer(review).data)
