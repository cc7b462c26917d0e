"""Domain errors raised by the messaging service layer.

Each error carries the HTTP status the API maps it to plus the
``{"message", "field_errors"}`` detail shape used by ``error_response``.
"""

from typing import Dict, Optional

from fastapi import status


class MessagingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, field_errors: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.field_errors = field_errors or {}
        super().__init__(self.message)


class ValidationError(MessagingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid message"


class AccessDenied(MessagingError):
    # Never says which party is allowed
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized to access this booking"


class NotFound(MessagingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class AuthError(MessagingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class TransientIOError(MessagingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Temporarily unavailable, please retry"
