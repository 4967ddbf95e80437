# apps/notifications/tasks.py
from asgiref.sync import async_to_sync
from celery import shared_task
from celery.utils.log import get_task_logger
from channels.layers import get_channel_layer

logger = get_task_logger(__name__)


def user_group_name(user_id):
    return f"notif_{user_id}"


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    queue='high_priority'
)
def push_notification(self, notification_id):
    """
    Delivers a stored notification to the recipient's websocket room.
    """
    from .models import Notification
    from .serializers import NotificationSerializer

    try:
        notification = Notification.objects.get(id=notification_id)
    except Notification.DoesNotExist:
        logger.warning(f"Notification {notification_id} vanished before push")
        return "Missing"

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return "No Channel Layer"

    try:
        async_to_sync(channel_layer.group_send)(
            user_group_name(notification.user_id),
            {
                "type": "notification_new",
                "payload": NotificationSerializer(notification).data,
            }
        )
    except Exception as e:
        logger.warning(f"Notification push failed: {e}. Retrying...")
        raise self.retry(exc=e)

    return "Pushed"
