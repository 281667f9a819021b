"""
Base exception classes for the table client.

Every failure surfaced by the client derives from TableStorageError so callers
can catch the whole family, while each kind stays a distinct class that tests
and SAS checks can assert on.
"""
from typing import Optional


class TableStorageError(Exception):
    """
    Base exception for all client errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        status_code: HTTP-equivalent status code
        details: Additional error details (optional)
        retryable: Whether a caller-directed retry may succeed
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to a dictionary for logs and console output"""
        result = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(TableStorageError):
    """Connection descriptor or settings are malformed or incomplete"""

    def __init__(self, message: str = "Invalid storage configuration", field: str = None):
        details = {"field": field} if field else {}
        super().__init__(message, "CONFIGURATION_ERROR", 500, details)


class InvalidArgumentError(TableStorageError):
    """Caller misuse detected before any remote call (400)"""

    def __init__(self, message: str = "Invalid argument", field: str = None):
        details = {"field": field} if field else {}
        super().__init__(message, "INVALID_ARGUMENT", 400, details)


class AuthorizationDeniedError(TableStorageError):
    """Credential or SAS lacks the permission for the operation (403)"""

    def __init__(self, message: str = "Authorization denied", operation: str = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, "AUTHORIZATION_DENIED", 403, details)


class NotFoundError(TableStorageError):
    """Requested resource was not found (404)"""

    def __init__(self, message: str = "Resource not found", resource_type: str = None):
        details = {"resource_type": resource_type} if resource_type else {}
        super().__init__(message, "NOT_FOUND", 404, details)


class ConflictError(TableStorageError):
    """Resource already exists or is being deleted (409)"""

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, "CONFLICT", 409)


class PreconditionFailedError(TableStorageError):
    """Version tag or existence check failed (412)"""

    def __init__(self, message: str = "Precondition failed", etag: str = None):
        details = {"etag": etag} if etag else {}
        super().__init__(message, "PRECONDITION_FAILED", 412, details)


class TransportError(TableStorageError):
    """Transient network or server fault; eligible for caller retry"""

    retryable = True

    def __init__(self, message: str = "Transport error", status_code: int = 0):
        super().__init__(message, "TRANSPORT_ERROR", status_code)


class ServiceUnavailableError(TableStorageError):
    """Backing service cannot be reached or is down (503)"""

    def __init__(self, message: str = "Storage service unavailable", endpoint: str = None):
        details = {"endpoint": endpoint} if endpoint else {}
        super().__init__(message, "SERVICE_UNAVAILABLE", 503, details)
