import logging
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness Probe.
    503 when the database or cache is unreachable. A broken channel layer only
    degrades the status since dispatch keeps working without live pushes.
    """
    status_data = {
        "status": "ok",
        "services": {"db": "ok", "cache": "ok", "channels": "ok"}
    }

    # 1. Database (Critical)
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except Exception as e:
        logger.critical(f"Health Check DB Fail: {e}")
        status_data["status"] = "error"
        status_data["services"]["db"] = "unreachable"
        return JsonResponse(status_data, status=503)

    # 2. Cache (Critical: tickets, circuit breaker, token blocklist)
    try:
        cache.set("health_ping", "pong", timeout=5)
        if cache.get("health_ping") != "pong":
            raise RuntimeError("Cache R/W mismatch")
    except Exception as e:
        logger.critical(f"Health Check Cache Fail: {e}")
        status_data["status"] = "error"
        status_data["services"]["cache"] = "unreachable"
        return JsonResponse(status_data, status=503)

    # 3. Channel layer (Non-Critical)
    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            status_data["services"]["channels"] = "not_configured"
        else:
            async_to_sync(channel_layer.group_send)("health", {"type": "health.ping"})
    except Exception as e:
        logger.error(f"Health Check Channel Layer Fail: {e}")
        status_data["services"]["channels"] = "unreachable"
        status_data["status"] = "degraded"

    return JsonResponse(status_data, status=200)
