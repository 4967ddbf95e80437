from django.test import TestCase
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework import status

from apps.audit.models import AuditLog
from apps.audit.services import AuditService

User = get_user_model()


class AuditLogTestCase(TestCase):
    def test_immutability(self):
        user = User.objects.create_user(phone="+919999999999")
        log = AuditLog.objects.create(
            user=user, action="drone_assigned", reference_id="REF123"
        )

        log.action = "tampered"
        with self.assertRaises(RuntimeError):
            log.save()

        with self.assertRaises(RuntimeError):
            AuditLog.objects.filter(id=log.id).delete()

    def test_log_stringifies_reference(self):
        AuditService.log("drone_emergency_stop", 42, None, {})
        self.assertTrue(AuditLog.objects.filter(reference_id="42").exists())


class AuditAPITestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(phone="+919999999900", is_staff=True)
        AuditService.log("drone_assigned", "7", None, {"drone_id": "D1"})
        AuditService.log("drone_launched", "8", None, {"drone_id": "D1"})

    def test_admin_filters_by_reference(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/audit/", {"reference_id": "7"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["results"]), 1)
        self.assertEqual(response.data["results"][0]["action"], "drone_assigned")

    def test_non_admin_forbidden(self):
        user = User.objects.create_user(phone="+919999999901")
        self.client.force_authenticate(user=user)
        response = self.client.get("/api/v1/audit/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
