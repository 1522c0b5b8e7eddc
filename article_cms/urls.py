"""
URL configuration for django-article-cms.

Include in your project urls.py:

    path('cms/', include('article_cms.urls')),
"""
from django.urls import path

from . import views

app_name = "article_cms"

urlpatterns = [
    # Image dashboard
    path("images/", views.ImageListView.as_view(), name="image_list"),
    path("images/stats/", views.ImageStatsView.as_view(), name="image_stats"),

    # Image operations
    path("images/upload/", views.ImageUploadView.as_view(), name="image_upload"),
    path("images/cleanup/", views.CleanupView.as_view(), name="image_cleanup"),
    path("images/delete/", views.BulkDeleteView.as_view(), name="image_bulk_delete"),
    path("images/scan-usage/", views.ScanUsageView.as_view(), name="image_scan_usage"),
]
