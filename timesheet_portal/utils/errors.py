"""Exception classes and structured error bodies for the HTTP layer."""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, List, Optional


@dataclass
class FieldError:
    """Error details for a single request field."""

    field: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> Dict[str, str]:
        return {
            "field": self.field,
            "message": self.message,
            "code": self.code,
        }


@dataclass
class ErrorResponse:
    """Structured error body: ``{"error": {"message", "code", ...}}``."""

    message: str
    status_code: int
    error_code: str
    details: Optional[Dict[str, Any]] = None
    field_errors: List[FieldError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        body: Dict[str, Any] = {
            "message": self.message,
            "code": self.error_code,
        }
        if self.details:
            body["details"] = self.details
        if self.field_errors:
            body["field_errors"] = [fe.to_dict() for fe in self.field_errors]
        return {"error": body}


class APIError(Exception):
    """Base exception for errors surfaced to API callers."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    error_code: str = "internal_error"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        field_errors: Optional[List[FieldError]] = None,
    ):
        self.message = message or self.__class__.message
        self.details = details
        self.field_errors = field_errors or []
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            message=self.message,
            status_code=self.status_code,
            error_code=self.error_code,
            details=self.details,
            field_errors=self.field_errors,
        )


class ValidationError(APIError):
    """Malformed request: bad upload, unknown data type, bad decision map."""

    status_code: int = HTTPStatus.BAD_REQUEST
    error_code: str = "validation_error"
    message: str = "Request validation failed"


class UnauthorizedError(APIError):
    status_code: int = HTTPStatus.UNAUTHORIZED
    error_code: str = "unauthorized"
    message: str = "Authentication required"


class ForbiddenError(APIError):
    status_code: int = HTTPStatus.FORBIDDEN
    error_code: str = "forbidden"
    message: str = "Access denied"


class NotFoundError(APIError):
    status_code: int = HTTPStatus.NOT_FOUND
    error_code: str = "not_found"
    message: str = "Resource not found"


class DatabaseError(APIError):
    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    error_code: str = "database_error"
    message: str = "Database operation failed"


def create_field_error(field: str, message: str, code: str = "invalid") -> FieldError:
    """Helper to create a field error."""
    return FieldError(field=field, message=message, code=code)


def create_validation_error(
    message: str,
    field: str,
    code: str = "invalid",
) -> ValidationError:
    """Create a 400 error pointing at one request field."""
    return ValidationError(
        message=message,
        field_errors=[create_field_error(field, message, code)],
    )


def create_not_found_error(resource_type: str, identifier: Any) -> NotFoundError:
    """Create a not found error for a specific resource."""
    return NotFoundError(
        message=f"{resource_type} not found",
        details={"resource_type": resource_type, "identifier": str(identifier)},
    )
