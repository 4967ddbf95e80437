# apps/accounts/urls.py
from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from .views import MeAPIView, WebSocketTicketAPIView

urlpatterns = [
    path("me/", MeAPIView.as_view()),
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("ws/ticket/", WebSocketTicketAPIView.as_view()),
]
