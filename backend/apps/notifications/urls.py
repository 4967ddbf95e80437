# apps/notifications/urls.py
from django.urls import path
from .views import MyNotificationListAPIView, MarkNotificationReadAPIView

urlpatterns = [
    path("", MyNotificationListAPIView.as_view()),
    path("<int:notification_id>/read/", MarkNotificationReadAPIView.as_view()),
]
