"""
Custom application exceptions
"""

from typing import Optional, Dict, Any
import enum


class SeatkeeperException(Exception):
    """Base exception for Seatkeeper application"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class AuthorizationError(SeatkeeperException):
    """Caller is not allowed to perform the operation"""

    def __init__(self, message: str = "Not authorized", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="AUTH_FORBIDDEN",
            status_code=403,
            details=details
        )


class NotFoundError(SeatkeeperException):
    """Resource not found errors"""

    def __init__(self, resource: str, identifier: Any = None, details: Optional[Dict] = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id {identifier} not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details=details
        )


class ValidationError(SeatkeeperException):
    """Malformed or missing arguments, rejected before storage is touched"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


class ConflictReason(str, enum.Enum):
    """
    Why a seat was left out of a batch result.

    Conflicts are always reported per seat, never raised for a whole batch.
    """
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    BOOKED = "booked"
    HELD_BY_OTHER = "held_by_other"
    NOT_HELD = "not_held"
    EXPIRED = "expired"
    CONTESTED = "contested"


class StorageError(SeatkeeperException):
    """The availability store could not be read or written"""

    def __init__(self, operation: str, message: str = None):
        super().__init__(
            message=message or f"Availability store failed during {operation}",
            code="STORAGE_FAILURE",
            status_code=503,
            details={"operation": operation}
        )
