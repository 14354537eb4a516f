"""Exception classes for the authorization engine.

Authorization denials are not exceptions: they are returned as a Decision.
Everything here is a fault the caller has to react to.
"""
from typing import Any


class AuthzError(Exception):
    """Base exception for the authorization engine."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, "errorCode": self.error_code}


class ValidationError(AuthzError):
    """Raised when input is rejected before any state change."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[Any] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class NotFoundError(AuthzError):
    """Raised when a requested record does not exist."""

    status_code = 404
    error_code = "NOT_FOUND_ERROR"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class ConflictError(AuthzError):
    """Raised when a change conflicts with existing state."""

    status_code = 409
    error_code = "CONFLICT_ERROR"


class SystemRoleProtectedError(ConflictError):
    """Raised on an attempt to rename, redefine or delete a system role."""

    error_code = "SYSTEM_ROLE_PROTECTED"


class SystemPermissionProtectedError(ConflictError):
    """Raised on an attempt to delete a built-in permission."""

    error_code = "SYSTEM_PERMISSION_PROTECTED"


class IntegrityViolation(ConflictError):
    """Raised when a delete is blocked by active descendants."""

    error_code = "INTEGRITY_VIOLATION"

    def __init__(self, message: str, blocking_kind: str, count: int):
        super().__init__(message)
        self.blocking_kind = blocking_kind
        self.count = count

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["blocking"] = {"level": self.blocking_kind, "count": self.count}
        return payload


class ConcurrentModificationError(ConflictError):
    """Raised when a principal's assignments changed underneath a grant or revoke."""

    error_code = "CONCURRENT_MODIFICATION"


class ConsistencyError(AuthzError):
    """Raised when persisted hierarchy data is malformed (missing or corrupt path)."""

    error_code = "CONSISTENCY_ERROR"
