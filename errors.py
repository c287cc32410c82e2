"""
Error taxonomy for the project tracker.

Validation problems are raised before any write is attempted. Store failures of any
cause (network, permission, quota) surface as a single PersistenceError carrying the
original exception as ``cause``. Nothing is retried here; callers report and let the
user try again.
"""

from typing import Any, Dict, Optional


class PBLError(Exception):
    """Base exception for all tracker errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PBLError):
    """Missing or invalid input, raised before touching the store"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class AuthorizationError(PBLError):
    """Caller's role may not perform this action"""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class NotFound(PBLError):
    """Referenced entity is absent"""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class CapacityExceeded(PBLError):
    """Team is already at its member limit"""

    def __init__(self, team_id: str, max_members: int):
        super().__init__(
            f"Team is full (Limit: {max_members} students)",
            code="CAPACITY_EXCEEDED",
            details={"team_id": team_id, "max_members": max_members},
        )


class PersistenceError(PBLError):
    """Underlying store call failed"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        details = {"cause": f"{type(cause).__name__}: {cause}"} if cause else {}
        super().__init__(message, code="PERSISTENCE_ERROR", details=details)
        self.cause = cause
