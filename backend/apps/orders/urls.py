# apps/orders/urls.py
from django.urls import path
from .views import OrderListCreateAPIView, OrderDetailAPIView, ShopOrderStatusAPIView

urlpatterns = [
    path("", OrderListCreateAPIView.as_view()),
    path("<int:order_id>/", OrderDetailAPIView.as_view()),
    path("<int:order_id>/shops/<int:shop_id>/status/", ShopOrderStatusAPIView.as_view()),
]
