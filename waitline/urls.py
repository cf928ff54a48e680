"""
URL configuration for Waitline.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/queue/", include("apps.queueapp.urls")),
]
