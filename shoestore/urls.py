"""
URL configuration for shoestore project.
"""
from django.contrib import admin
from django.urls import path

from checkout.api.views import graphql_view, payment_callback_view

urlpatterns = [
    path('admin/', admin.site.urls),
    path('graphql/', graphql_view, name='graphql'),
    path('payments/<str:method>/callback/', payment_callback_view, name='payment-callback'),
]
