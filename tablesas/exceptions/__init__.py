"""
Client exceptions module.

This module provides a centralized location for all client exceptions.
Azure SDK errors are translated into these kinds at the boundary; the
client never retries implicitly and never collapses kinds into one.

Usage:
    from tablesas.exceptions import AuthorizationDeniedError

    try:
        await sas_table.upsert_merge(customer)
    except AuthorizationDeniedError:
        print("denied as expected")

Exception Hierarchy:
    TableStorageError (base)
    ├── ConfigurationError
    ├── InvalidArgumentError (400)
    │   ├── InvalidTableNameError
    │   ├── InvalidEntityKeyError
    │   ├── SasPolicyConflictError
    │   └── TooManyStoredPoliciesError
    ├── AuthorizationDeniedError (403)
    ├── NotFoundError (404)
    │   ├── EntityNotFoundError
    │   ├── TableNotFoundError
    │   └── StoredPolicyNotFoundError
    ├── ConflictError (409)
    ├── PreconditionFailedError (412)
    ├── TransportError (retryable)
    ├── ServiceUnavailableError (503)
    └── StorageServiceError
"""

from .base import (
    TableStorageError,
    ConfigurationError,
    InvalidArgumentError,
    AuthorizationDeniedError,
    NotFoundError,
    ConflictError,
    PreconditionFailedError,
    TransportError,
    ServiceUnavailableError,
)

from .azure import (
    StorageServiceError,
    EntityNotFoundError,
    TableNotFoundError,
    StoredPolicyNotFoundError,
    translate_azure_error,
)

from .validation import (
    InvalidTableNameError,
    InvalidEntityKeyError,
    SasPolicyConflictError,
    TooManyStoredPoliciesError,
)

__all__ = [
    "TableStorageError",
    "ConfigurationError",
    "InvalidArgumentError",
    "AuthorizationDeniedError",
    "NotFoundError",
    "ConflictError",
    "PreconditionFailedError",
    "TransportError",
    "ServiceUnavailableError",
    "StorageServiceError",
    "EntityNotFoundError",
    "TableNotFoundError",
    "StoredPolicyNotFoundError",
    "translate_azure_error",
    "InvalidTableNameError",
    "InvalidEntityKeyError",
    "SasPolicyConflictError",
    "TooManyStoredPoliciesError",
]
