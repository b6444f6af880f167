"""Custom exception classes and error response utilities."""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Sequence


@dataclass
class FieldError:
    """Error details for a specific field."""

    field: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for JSON response."""
        return {
            "field": self.field,
            "message": self.message,
            "code": self.code,
        }


@dataclass
class ErrorResponse:
    """Structured error response for API endpoints."""

    message: str
    status_code: int
    error_code: str
    details: Optional[Dict[str, Any]] = None
    field_errors: List[FieldError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result = {
            "error": {
                "message": self.message,
                "code": self.error_code,
            }
        }

        if self.details:
            result["error"]["details"] = self.details

        if self.field_errors:
            result["error"]["field_errors"] = [
                fe.to_dict() for fe in self.field_errors
            ]

        return result


class APIError(Exception):
    """Base exception for API errors."""

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
        """Convert exception to structured error response."""
        return ErrorResponse(
            message=self.message,
            status_code=self.status_code,
            error_code=self.error_code,
            details=self.details,
            field_errors=self.field_errors,
        )


class ValidationError(APIError):
    """Exception for request validation failures."""

    status_code: int = HTTPStatus.BAD_REQUEST
    error_code: str = "validation_error"
    message: str = "Request validation failed"


class NoValidDataError(ValidationError):
    """Raised when an uploaded CSV yields no importable rows."""

    error_code: str = "no_valid_data"
    message: str = "CSV file is empty or contains no valid data"


class NotFoundError(APIError):
    """Exception for resource not found."""

    status_code: int = HTTPStatus.NOT_FOUND
    error_code: str = "not_found"
    message: str = "Resource not found"


class UnauthorizedError(APIError):
    """Exception for authentication failures."""

    status_code: int = HTTPStatus.UNAUTHORIZED
    error_code: str = "unauthorized"
    message: str = "Authentication required"


class ServiceUnavailableError(APIError):
    """Exception for backing services that cannot be reached."""

    status_code: int = HTTPStatus.SERVICE_UNAVAILABLE
    error_code: str = "service_unavailable"
    message: str = "Service temporarily unavailable"


# =============================================================================
# Job Pipeline Errors
# =============================================================================

class JobError(Exception):
    """Base exception for background job failures."""


class JobValidationError(JobError):
    """
    Malformed job payload or field values.

    Terminal: the job is failed without retrying, since the same input
    will not become valid on a later attempt.
    """

    def __init__(
        self,
        message: str,
        field_errors: Optional[List[FieldError]] = None,
        missing_fields: Sequence[str] = (),
    ):
        self.message = message
        self.field_errors = field_errors or []
        self.missing_fields = list(missing_fields)
        super().__init__(message)


class JobStoreUnavailableError(JobError):
    """The job store could not accept a job; nothing was enqueued."""


class ConnectionClosedError(Exception):
    """Delivery attempted on a live connection that is already closed."""


def create_field_error(field: str, message: str, code: str = "invalid") -> FieldError:
    """Helper to create a field error."""
    return FieldError(field=field, message=message, code=code)


def create_not_found_error(resource_type: str, identifier: Any) -> NotFoundError:
    """Create a not found error for a specific resource."""
    return NotFoundError(
        message=f"{resource_type} not found",
        details={"resource_type": resource_type, "identifier": str(identifier)},
    )
