"""
Validation-specific exception classes.

Use these exceptions for caller errors detected locally, before any
network call is made.
"""
from .base import InvalidArgumentError


class InvalidTableNameError(InvalidArgumentError):
    """Table name does not satisfy the service naming rules"""

    def __init__(self, message: str = "Invalid table name", table_name: str = None):
        super().__init__(message, "table_name")
        self.code = "INVALID_TABLE_NAME"
        if table_name is not None:
            self.details["table_name"] = table_name


class InvalidEntityKeyError(InvalidArgumentError):
    """PartitionKey/RowKey or a property name is not acceptable"""

    def __init__(self, message: str = "Invalid entity key", field: str = None):
        super().__init__(message, field)
        self.code = "INVALID_ENTITY_KEY"


class SasPolicyConflictError(InvalidArgumentError):
    """SAS constraints were given both ad hoc and by stored policy, or not at all"""

    def __init__(self, message: str = "Specify exactly one of an ad-hoc policy or a stored policy name"):
        super().__init__(message, "policy")
        self.code = "SAS_POLICY_CONFLICT"


class TooManyStoredPoliciesError(InvalidArgumentError):
    """Table would exceed the service limit on stored access policies"""

    def __init__(self, message: str = "Too many stored access policies", limit: int = None):
        super().__init__(message, "signed_identifiers")
        self.code = "TOO_MANY_STORED_POLICIES"
        if limit:
            self.details["limit"] = limit
