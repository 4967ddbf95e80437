# apps/notifications/views.py
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.utils.exceptions import NotFound
from .models import Notification
from .serializers import NotificationSerializer
from .services import NotificationService


class MyNotificationListAPIView(generics.ListAPIView):
    """
    User: notification history, newest first. `?unread=true` narrows to unread.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        qs = Notification.objects.filter(user=self.request.user).order_by('-created_at')
        if self.request.query_params.get('unread') == 'true':
            qs = qs.filter(is_read=False)
        return qs


class MarkNotificationReadAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, notification_id):
        if not NotificationService.mark_read(request.user, notification_id):
            raise NotFound("Notification not found")
        return Response({"status": "read"}, status=status.HTTP_200_OK)
