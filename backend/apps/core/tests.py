# apps/core/tests.py
import json
import logging
from unittest.mock import patch
from django.test import TestCase, RequestFactory
from django.http import JsonResponse
from apps.core.middleware import CorrelationIDMiddleware, get_correlation_id
from apps.utils.logging import GDPRJsonFormatter


class MiddlewareTestCase(TestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_correlation_id_generation(self):
        middleware = CorrelationIDMiddleware(lambda req: JsonResponse({"status": "ok"}))
        request = self.factory.get("/")
        response = middleware(request)

        self.assertTrue(response.has_header("X-Request-ID"))
        self.assertEqual(response["X-Request-ID"], request.correlation_id)

    def test_incoming_request_id_is_kept_and_scoped(self):
        seen = {}

        def get_response(req):
            seen["inside"] = get_correlation_id()
            return JsonResponse({})

        middleware = CorrelationIDMiddleware(get_response)
        response = middleware(self.factory.get("/", HTTP_X_REQUEST_ID="trace-123"))

        self.assertEqual(seen["inside"], "trace-123")
        self.assertEqual(response["X-Request-ID"], "trace-123")
        self.assertIsNone(get_correlation_id())


class HealthCheckTestCase(TestCase):
    def test_health_check_ok(self):
        response = self.client.get("/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["services"]["db"], "ok")

    @patch("apps.core.views.get_channel_layer", side_effect=RuntimeError("redis down"))
    def test_channel_layer_failure_degrades(self, mock_layer):
        response = self.client.get("/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "degraded")


class JsonLoggingTestCase(TestCase):
    def test_handover_codes_and_tokens_are_masked(self):
        record = logging.LogRecord("apps.drones", logging.INFO, __file__, 1, "QR verified", None, None)
        record.metadata = {"order_id": 7, "qr_code": "DRN-" + "A" * 40, "nested": {"ticket": "abc"}}

        output = json.loads(GDPRJsonFormatter().format(record))

        self.assertEqual(output["metadata"]["order_id"], 7)
        self.assertEqual(output["metadata"]["qr_code"], "***MASKED***")
        self.assertEqual(output["metadata"]["nested"]["ticket"], "***MASKED***")
