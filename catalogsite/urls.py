"""
URL configuration for the catalogsite project.

Only the Django admin is exposed; the supplier cleanup itself runs as the
``clean_supplier`` management command.
"""
from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]
