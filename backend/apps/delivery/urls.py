# apps/delivery/urls.py
from django.urls import path
from .views import (
    AdminDeliveryCompleteAPIView,
    AdminDeliveryListAPIView,
    DeliveryQrVerifyAPIView,
    GenerateTestQrAPIView,
    OrderDeliveryAPIView,
)

urlpatterns = [
    # Admin
    path("admin/", AdminDeliveryListAPIView.as_view()),
    path("admin/<int:delivery_id>/complete/", AdminDeliveryCompleteAPIView.as_view()),

    # Customer / Seller
    path("orders/<int:order_id>/", OrderDeliveryAPIView.as_view()),
    path("verify-qr/", DeliveryQrVerifyAPIView.as_view()),

    # Development
    path("orders/<int:order_id>/test-qr/", GenerateTestQrAPIView.as_view()),
]
