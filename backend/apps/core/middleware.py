import uuid
import logging
from contextvars import ContextVar

logger = logging.getLogger(__name__)

# ContextVar for Request ID (Async Safe)
_correlation_id = ContextVar("correlation_id", default=None)


def get_correlation_id():
    return _correlation_id.get()


class CorrelationIDMiddleware:
    """
    Attaches a unique Request ID (Trace ID) to every request.
    Celery tasks inherit it through the X-Request-ID task header.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        token = _correlation_id.set(request_id)
        request.correlation_id = request_id

        try:
            response = self.get_response(request)
            response['X-Request-ID'] = request_id
            return response
        finally:
            _correlation_id.reset(token)
