"""
Custom exceptions for bowlise.

All backends should raise these exceptions so callers of the cache facade
see consistent errors regardless of the storage engine behind it.
"""


class BowliseError(Exception):
    """Base exception for all bowlise errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(BowliseError):
    """Raised when input validation fails (e.g., empty subject id)."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class AccessControlNotFoundError(BowliseError):
    """Raised when no active access control exists for a subject and target."""

    def __init__(self, subject_id: str, target_id: str):
        super().__init__(
            f"Access control not found: subject {subject_id} on target {target_id}",
            {"subject_id": subject_id, "target_id": target_id},
        )
        self.subject_id = subject_id
        self.target_id = target_id


class AccessControlExistsError(BowliseError):
    """Raised when creating an access control that already exists."""

    def __init__(self, subject_id: str, target_id: str):
        super().__init__(
            f"Access control already exists: subject {subject_id} on target {target_id}",
            {"subject_id": subject_id, "target_id": target_id},
        )
        self.subject_id = subject_id
        self.target_id = target_id


class RoleNotFoundError(BowliseError):
    """Raised when a role handle does not exist."""

    def __init__(self, role_handle: str):
        super().__init__(f"Role not found: {role_handle}", {"role_handle": role_handle})
        self.role_handle = role_handle


class BulkResultMissingError(BowliseError):
    """Stored for a target that a bulk backend response left out."""

    def __init__(self, subject_id: str, target_id: str):
        super().__init__(
            f"Bulk result missing for subject {subject_id} on target {target_id}",
            {"subject_id": subject_id, "target_id": target_id},
        )
        self.subject_id = subject_id
        self.target_id = target_id


class BackendConnectionError(BowliseError):
    """Raised when connecting to the backend store fails.

    Note: Named BackendConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class BackendIOError(BowliseError):
    """Raised when a backend read or write fails."""

    def __init__(self, operation: str, cause: Exception | None = None):
        details = {"operation": operation}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Backend I/O error during {operation}", details)
        self.operation = operation
        self.cause = cause
