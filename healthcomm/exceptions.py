# healthcomm/exceptions.py
from fastapi import status


class PortalError(Exception):
    """Base error; handlers in main turn it into a ``{"error": message}`` response."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(PortalError):
    status_code = status.HTTP_409_CONFLICT


class TransportError(PortalError):
    """Raised inside a transport; the dispatcher records it as a FAILED send."""
    status_code = status.HTTP_502_BAD_GATEWAY
