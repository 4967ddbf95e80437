from django.test import TestCase
from django.contrib.auth import get_user_model
from unittest.mock import patch
from rest_framework.test import APIClient
from rest_framework import status

from apps.notifications.models import Notification
from apps.notifications.services import NotificationService

User = get_user_model()


class NotificationServiceTestCase(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(phone="+917000000001")
        self.admin_a = User.objects.create_user(phone="+917000000002", is_staff=True)
        self.admin_b = User.objects.create_user(phone="+917000000003", is_staff=True)

    @patch("apps.notifications.services.push_notification")
    def test_create_persists_and_pushes(self, mock_push):
        with self.captureOnCommitCallbacks(execute=True):
            notification = NotificationService.create(
                self.user, "info", "Drone launched", "On its way", {"order_id": 1}
            )

        self.assertEqual(notification.metadata, {"order_id": 1})
        mock_push.delay.assert_called_once_with(notification.id)

    @patch("apps.notifications.services.push_notification")
    def test_notify_admins_one_per_admin(self, mock_push):
        results = NotificationService.notify_admins("warning", "Low battery", "Drone D1 at 10%")

        self.assertEqual(len(results), 2)
        self.assertTrue(all(results))
        self.assertEqual(Notification.objects.filter(user=self.admin_a).count(), 1)
        self.assertEqual(Notification.objects.filter(user=self.admin_b).count(), 1)
        self.assertFalse(Notification.objects.filter(user=self.user).exists())

    @patch("apps.notifications.services.Notification.objects.create", side_effect=RuntimeError("db down"))
    def test_notify_swallows_failures(self, mock_create):
        result = NotificationService.notify(self.user, "info", "Title", "Body")

        self.assertFalse(result)
        self.assertIn("db down", result.error)


class NotificationAPITestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(phone="+917100000001")
        self.other = User.objects.create_user(phone="+917100000002")
        self.own = Notification.objects.create(user=self.user, type="info", title="A", message="a")
        self.foreign = Notification.objects.create(user=self.other, type="info", title="B", message="b")
        self.client.force_authenticate(user=self.user)

    def test_list_only_own(self):
        response = self.client.get("/api/v1/notifications/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [row["id"] for row in response.data["results"]]
        self.assertEqual(ids, [self.own.id])

    def test_mark_read(self):
        response = self.client.post(f"/api/v1/notifications/{self.own.id}/read/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.own.refresh_from_db()
        self.assertTrue(self.own.is_read)

    def test_mark_read_foreign_is_404(self):
        response = self.client.post(f"/api/v1/notifications/{self.foreign.id}/read/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"]["type"], "NotFound")
