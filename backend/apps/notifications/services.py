# apps/notifications/services.py
import logging
from django.contrib.auth import get_user_model
from django.db import transaction

from apps.utils.resilience import best_effort
from .models import Notification
from .tasks import push_notification

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Stores in-app alerts and fans them out to the user's websocket room.
    Callers in the dispatch flow use notify()/notify_admins(), which never raise.
    """

    @staticmethod
    def create(user, type, title, message, metadata=None):
        notification = Notification.objects.create(
            user=user,
            type=type,
            title=title,
            message=message,
            metadata=metadata or {},
        )

        # Push only after commit so the worker can read the row
        if transaction.get_connection().in_atomic_block:
            transaction.on_commit(lambda: push_notification.delay(notification.id))
        else:
            push_notification.delay(notification.id)

        logger.info(f"[NOTIFY] {type} '{title}' -> user {user.id}")
        return notification

    @staticmethod
    def _create_in_savepoint(user, type, title, message, metadata=None):
        # A failed insert only rolls back its own savepoint, never the caller's transaction
        with transaction.atomic():
            return NotificationService.create(user, type, title, message, metadata)

    @staticmethod
    def _platform_admins():
        User = get_user_model()
        with transaction.atomic():
            return list(User.objects.platform_admins())

    @staticmethod
    def notify(user, type, title, message, metadata=None):
        return best_effort(
            f"notify:user:{user.id}",
            NotificationService._create_in_savepoint,
            user, type, title, message, metadata,
        )

    @staticmethod
    def notify_admins(type, title, message, metadata=None):
        """
        One notification per active platform admin. Returns one result per admin.
        """
        admins = best_effort("notify:admins:lookup", NotificationService._platform_admins)
        if not admins:
            return []

        return [
            best_effort(
                f"notify:admin:{admin.id}",
                NotificationService._create_in_savepoint,
                admin, type, title, message, metadata,
            )
            for admin in admins.value
        ]

    @staticmethod
    def mark_read(user, notification_id):
        return Notification.objects.filter(id=notification_id, user=user).update(is_read=True)
