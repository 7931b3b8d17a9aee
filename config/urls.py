"""URL configuration for the Stayza project.

The `urlpatterns` list routes URLs to views. It includes the Django admin,
each app's API under ``api/v1/``, the platform admin API under
``api/v1/admin/`` and the OpenAPI schema.
"""
from django.contrib import admin  # type: ignore
from django.urls import path, include  # type: ignore
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView  # type: ignore

# API versioning. v1 is our initial version; future versions can be added here.

urlpatterns = [
    path('admin/', admin.site.urls),
    # Application URLs
    path('api/v1/auth/', include(('apps.users.auth_urls', 'auth'), namespace='auth')),
    path('api/v1/users/', include('apps.users.urls')),
    path('api/v1/properties/', include('apps.properties.urls')),
    path('api/v1/bookings/', include('apps.bookings.urls')),
    path('api/v1/finances/', include('apps.finances.urls')),
    path('api/v1/disputes/', include('apps.disputes.urls')),
    path('api/v1/notifications/', include('apps.notifications.urls')),
    path('api/v1/reviews/', include('apps.reviews.urls')),
    # Platform admin API
    path('api/v1/admin/', include('apps.users.api.urls')),
    path('api/v1/admin/', include('apps.bookings.api.urls')),
    path('api/v1/admin/', include('apps.finances.api.urls')),
    path('api/v1/admin/', include('apps.disputes.api.urls')),
    path('api/v1/admin/analytics/', include('apps.analytics.urls')),
    # OpenAPI schema
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='schema-docs'),
]
