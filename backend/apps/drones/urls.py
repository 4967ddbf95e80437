# apps/drones/urls.py
from django.urls import path
from .views import (
    AdminDroneOrderListAPIView,
    AdminDroneTelemetryAPIView,
    AdminFleetAPIView,
    AssignDroneAPIView,
    CallDroneToShopAPIView,
    CancelDroneDeliveryAPIView,
    CreateDroneOrderAPIView,
    DroneOrderByOrderAPIView,
    DroneStatusAPIView,
    DroneStatusByOrderAPIView,
    EmergencyStopAPIView,
    LandDroneAPIView,
    LaunchDroneAPIView,
    ReturnDroneAPIView,
    UpdateDroneOrderStatusAPIView,
    VerifyQrDeliveryAPIView,
)

urlpatterns = [
    # Customer
    path("orders/", CreateDroneOrderAPIView.as_view()),
    path("orders/verify-qr/", VerifyQrDeliveryAPIView.as_view()),
    path("orders/by-order/<int:order_id>/", DroneOrderByOrderAPIView.as_view()),
    path("orders/by-order/<int:order_id>/drone/", DroneStatusByOrderAPIView.as_view()),
    path("orders/<int:drone_order_id>/", UpdateDroneOrderStatusAPIView.as_view()),
    path("orders/<int:drone_order_id>/cancel/", CancelDroneDeliveryAPIView.as_view()),

    # Seller
    path("call-to-shop/", CallDroneToShopAPIView.as_view()),

    # Admin
    path("admin/orders/", AdminDroneOrderListAPIView.as_view()),
    path("admin/fleet/", AdminFleetAPIView.as_view()),
    path("admin/fleet/<str:drone_id>/", AdminDroneTelemetryAPIView.as_view()),
    path("assign/<int:order_id>/", AssignDroneAPIView.as_view()),
    path("launch/<int:order_id>/", LaunchDroneAPIView.as_view()),
    path("<str:drone_id>/land/", LandDroneAPIView.as_view()),
    path("<str:drone_id>/return/", ReturnDroneAPIView.as_view()),
    path("<str:drone_id>/emergency-stop/", EmergencyStopAPIView.as_view()),
    path("<str:drone_id>/status/", DroneStatusAPIView.as_view()),
]
