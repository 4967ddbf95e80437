from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status


class BusinessLogicException(Exception):
    """
    Base class for domain-specific errors (e.g. NoDronesAvailable, QRExpired).
    These are expected operational errors, not 500s.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "BusinessLogicError"

    def __init__(self, message, code="invalid_request"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFound(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "NotFound"

    def __init__(self, message, code="not_found"):
        super().__init__(message, code)


class Conflict(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT
    error_type = "Conflict"

    def __init__(self, message, code="conflict"):
        super().__init__(message, code)


class Forbidden(BusinessLogicException):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "Forbidden"

    def __init__(self, message, code="forbidden"):
        super().__init__(message, code)


class InvalidState(BusinessLogicException):
    error_type = "InvalidState"

    def __init__(self, message, code="invalid_state"):
        super().__init__(message, code)


class ServiceUnavailable(BusinessLogicException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_type = "ServiceUnavailable"

    def __init__(self, message, code="service_unavailable"):
        super().__init__(message, code)


def custom_exception_handler(exc, context):
    """
    Custom DRF Exception Handler.
    Maps BusinessLogicException (and subclasses) to their HTTP status
    with a standard error structure.
    """
    response = exception_handler(exc, context)

    if isinstance(exc, BusinessLogicException):
        return Response(
            {
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "type": exc.error_type,
                }
            },
            status=exc.status_code,
        )

    if response is not None and response.status_code == 400:
        if "error" not in response.data:
            response.data = {
                "error": {
                    "code": "validation_error",
                    "details": response.data
                }
            }

    return response
