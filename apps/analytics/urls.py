"""URL routing for analytics endpoints."""

from django.urls import path  # type: ignore

from .views import FinanceConfigView, OverviewAnalyticsView


urlpatterns = [
    # Mounted under api/v1/admin/analytics/ in config.urls
    path('overview/', OverviewAnalyticsView.as_view(), name='analytics-overview'),
    path('finance-config/', FinanceConfigView.as_view(), name='analytics-finance-config'),
]
