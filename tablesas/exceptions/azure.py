"""
Azure-specific exception classes.

These exceptions wrap Azure SDK errors at the client boundary. Every SDK
failure is mapped by status code to exactly one named kind so that a 403
never looks like a 404 or a dropped connection.
"""
from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    ResourceExistsError,
    ResourceModifiedError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)

from .base import (
    AuthorizationDeniedError,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
    ServiceUnavailableError,
    TableStorageError,
    TransportError,
)

# 재시도로 회복될 수 있는 HTTP 상태 코드
_TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 504})


class StorageServiceError(TableStorageError):
    """The storage service rejected the request for an unclassified reason"""

    def __init__(self, message: str = "Storage service error", status_code: int = 500):
        super().__init__(message, "STORAGE_SERVICE_ERROR", status_code)


class EntityNotFoundError(NotFoundError):
    """Table entity was not found in storage."""

    def __init__(
        self,
        message: str = "Entity not found",
        table_name: str = None,
        partition_key: str = None,
        row_key: str = None,
    ):
        TableStorageError.__init__(
            self, message, "ENTITY_NOT_FOUND", 404,
            {
                "resource_type": "TableEntity",
                "table_name": table_name,
                "partition_key": partition_key,
                "row_key": row_key,
            }
        )


class TableNotFoundError(NotFoundError):
    """Storage table was not found."""

    def __init__(self, message: str = "Table not found", table_name: str = None):
        TableStorageError.__init__(
            self, message, "TABLE_NOT_FOUND", 404,
            {"resource_type": "Table", "table_name": table_name}
        )


class StoredPolicyNotFoundError(NotFoundError):
    """Named stored access policy is not attached to the table."""

    def __init__(self, message: str = "Stored access policy not found", policy_name: str = None):
        TableStorageError.__init__(
            self, message, "STORED_POLICY_NOT_FOUND", 404,
            {"resource_type": "StoredAccessPolicy", "policy_name": policy_name}
        )


def translate_azure_error(
    error: AzureError,
    operation: str,
    table_name: str = None,
    partition_key: str = None,
    row_key: str = None,
) -> TableStorageError:
    """
    Map an Azure SDK exception to the client's error taxonomy.

    The caller is expected to chain the original cause:

        except AzureError as e:
            raise translate_azure_error(e, "get_entity", table_name) from e
    """
    message = f"{operation} failed: {error.message or type(error).__name__}"

    # 연결 실패는 HTTP 응답이 없으므로 상태 코드보다 먼저 판별한다
    if isinstance(error, (ServiceRequestError, ServiceResponseError)):
        return TransportError(message)

    status = getattr(error, "status_code", None)

    if status in (401, 403) or isinstance(error, ClientAuthenticationError):
        return AuthorizationDeniedError(message, operation)
    if status == 404 or isinstance(error, ResourceNotFoundError):
        error_code = getattr(error, "error_code", None)
        if row_key is not None and getattr(error_code, "value", error_code) != "TableNotFound":
            return EntityNotFoundError(message, table_name, partition_key, row_key)
        return TableNotFoundError(message, table_name)
    if status == 412 or isinstance(error, ResourceModifiedError):
        return PreconditionFailedError(message)
    if status == 409 or isinstance(error, ResourceExistsError):
        return ConflictError(message)
    if status == 503:
        return ServiceUnavailableError(message)
    if status in _TRANSIENT_STATUS_CODES:
        return TransportError(message, status)
    if status is not None and 400 <= status < 500:
        return InvalidArgumentError(message)
    return StorageServiceError(message, status or 500)
