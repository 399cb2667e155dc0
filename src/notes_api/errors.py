"""
Error taxonomy shared by the stores, the session gate and the routes.

Every failure a store operation can report is an ApplicationError subclass;
the HTTP layer maps the category to a status code (see main.py).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"


_STATUS_BY_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.UNAVAILABLE: 500,
}


# PUBLIC_INTERFACE
@dataclass(eq=False)
class ApplicationError(Exception):
    """
    Base class for typed application errors.

    Fields:
    - code: stable machine-readable code (e.g. "NOT_FOUND")
    - message: text that is safe to show to the end user
    - category: drives the HTTP status code
    - details: optional structured context for logs
    - cause: the underlying exception, if any
    """

    code: str
    message: str
    category: ErrorCategory = ErrorCategory.UNAVAILABLE
    details: Optional[Dict[str, Any]] = None
    cause: Optional[BaseException] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    @property
    def http_status_code(self) -> int:
        return _STATUS_BY_CATEGORY.get(self.category, 500)


class ValidationError(ApplicationError):
    """Bad caller input; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            category=ErrorCategory.VALIDATION,
            details={"field": field} if field else None,
        )
        self.field = field


class NotFoundError(ApplicationError):
    """No resource with the given id."""

    def __init__(self, resource_type: str, resource_id: Any) -> None:
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource_type} not found",
            category=ErrorCategory.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(ApplicationError):
    """A unique value already exists (e.g. a duplicate principal registration)."""

    def __init__(self, resource_type: str, conflict_field: str, conflict_value: Any) -> None:
        super().__init__(
            code="CONFLICT",
            message=f"{resource_type} already exists",
            category=ErrorCategory.CONFLICT,
            details={
                "resource_type": resource_type,
                "conflict_field": conflict_field,
                "conflict_value": str(conflict_value),
            },
        )


class StoreUnavailableError(ApplicationError):
    """The backing store could not complete the call (connectivity, timeout, cancellation)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(
            code="STORE_UNAVAILABLE",
            message=message,
            category=ErrorCategory.UNAVAILABLE,
            cause=cause,
        )
