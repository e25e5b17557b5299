"""Error kinds and structured error payloads.

Errors are returned as values (``PortabilityError``) rather than raised, so
each call site decides how to handle the kind. The only exception type is
``StoreUnavailable``, raised by record stores when the backing storage fails.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Kinds of failure the engine can report."""

    PARSE_ERROR = "PARSE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_HANDLING_ERROR = "DUPLICATE_HANDLING_ERROR"
    FILE_SIZE_ERROR = "FILE_SIZE_ERROR"
    FILE_FORMAT_ERROR = "FILE_FORMAT_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    DATABASE_CONNECTION_ERROR = "DATABASE_CONNECTION_ERROR"
    INVALID_EXPORT_FORMAT = "INVALID_EXPORT_FORMAT"
    INVALID_DATA_TYPES = "INVALID_DATA_TYPES"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    SYSTEM_ERROR = "SYSTEM_ERROR"

    @property
    def recoverable(self) -> bool:
        """Record-level kinds that skip a record instead of aborting."""
        return self in (ErrorKind.VALIDATION_ERROR, ErrorKind.DUPLICATE_HANDLING_ERROR)


# HTTP-style status per kind, for callers that front the engine with a web layer
STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.PARSE_ERROR: 400,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.FILE_FORMAT_ERROR: 400,
    ErrorKind.INVALID_EXPORT_FORMAT: 400,
    ErrorKind.INVALID_DATA_TYPES: 400,
    ErrorKind.DUPLICATE_HANDLING_ERROR: 409,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.FILE_SIZE_ERROR: 413,
    ErrorKind.RATE_LIMIT_ERROR: 429,
    ErrorKind.DATABASE_CONNECTION_ERROR: 503,
    ErrorKind.SYSTEM_ERROR: 500,
}


class PortabilityError(BaseModel):
    """A structured error: kind, user-facing message, optional details."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def line(self) -> Optional[int]:
        return self.details.get("line")

    @property
    def field(self) -> Optional[str]:
        return self.details.get("field")

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class StoreUnavailable(Exception):
    """Backing storage could not be reached or refused a write."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(f"Record store unavailable during {operation}")
        self.operation = operation
        self.cause = cause


# ============================================================================
# Constructors
# ============================================================================


def parse_error(
    fmt: str,
    details: Optional[str] = None,
    line: Optional[int] = None,
    column: Optional[int] = None,
) -> PortabilityError:
    """Malformed byte stream. Unrecoverable."""
    location = ""
    if line:
        location = f" at line {line}"
        if column:
            location += f", column {column}"
    suffix = f": {details}" if details else ""
    return PortabilityError(
        kind=ErrorKind.PARSE_ERROR,
        message=f"Failed to parse {fmt} file{location}{suffix}",
        details={"format": fmt, "line": line, "column": column, "reason": details},
    )


def validation_error(
    field: str,
    value: Any,
    reason: str,
    line: Optional[int] = None,
    suggestion: Optional[str] = None,
) -> PortabilityError:
    """Single-record defect. Recoverable unless strict mode."""
    location = f" (line {line})" if line else ""
    details: dict[str, Any] = {"field": field, "value": value, "reason": reason, "line": line}
    if suggestion:
        details["suggestion"] = suggestion
    return PortabilityError(
        kind=ErrorKind.VALIDATION_ERROR,
        message=f"Validation failed for field '{field}': {reason}{location}",
        details=details,
    )


def duplicate_handling_error(operation: str, **details: Any) -> PortabilityError:
    return PortabilityError(
        kind=ErrorKind.DUPLICATE_HANDLING_ERROR,
        message=f"Failed to handle duplicate data during {operation}",
        details={"operation": operation, **details},
    )


def file_size_error(size: int, max_size: int) -> PortabilityError:
    return PortabilityError(
        kind=ErrorKind.FILE_SIZE_ERROR,
        message=(
            f"File size ({round(size / 1024 / 1024)}MB) exceeds maximum allowed "
            f"size ({round(max_size / 1024 / 1024)}MB)"
        ),
        details={"size": size, "maxSize": max_size},
    )


def file_format_error(filename: str, expected: list[str]) -> PortabilityError:
    return PortabilityError(
        kind=ErrorKind.FILE_FORMAT_ERROR,
        message=f"Invalid file format: {filename}. Supported formats: {', '.join(expected)}",
        details={"filename": filename, "expectedFormats": expected},
    )


def rate_limit_error(operation: str, limit: int, retry_after: int) -> PortabilityError:
    return PortabilityError(
        kind=ErrorKind.RATE_LIMIT_ERROR,
        message=(
            f"Rate limit exceeded for {operation} operation. "
            f"Try again in {retry_after} seconds."
        ),
        details={"operation": operation, "limit": limit, "retryAfter": retry_after},
    )


def database_connection_error(operation: str, **details: Any) -> PortabilityError:
    return PortabilityError(
        kind=ErrorKind.DATABASE_CONNECTION_ERROR,
        message=f"Database connection failed during {operation} operation",
        details={"operation": operation, **details},
    )


def invalid_export_format(fmt: Optional[str]) -> PortabilityError:
    supported = ["json", "csv", "goodreads"]
    return PortabilityError(
        kind=ErrorKind.INVALID_EXPORT_FORMAT,
        message=f"Invalid export format: {fmt}. Supported formats: {', '.join(supported)}",
        details={"format": fmt, "supportedFormats": supported},
    )


def invalid_data_types(reason: str, **details: Any) -> PortabilityError:
    return PortabilityError(kind=ErrorKind.INVALID_DATA_TYPES, message=reason, details=details)


def user_not_found(user_id: str) -> PortabilityError:
    return PortabilityError(
        kind=ErrorKind.USER_NOT_FOUND,
        message=f"User not found: {user_id}",
        details={"userId": user_id},
    )


def system_error(message: str = "Internal server error") -> PortabilityError:
    return PortabilityError(kind=ErrorKind.SYSTEM_ERROR, message=message)


# ============================================================================
# Response shaping
# ============================================================================


def to_response(error: Any) -> tuple[dict[str, Any], int]:
    """Build the user-facing failure body and status code.

    Anything that is not a ``PortabilityError`` becomes a generic system error
    so exception text never leaks to the caller.
    """
    if not isinstance(error, PortabilityError):
        error = system_error()

    body: dict[str, Any] = {"code": error.kind.value, "message": error.message}
    if error.details:
        body["details"] = error.details

    return {"success": False, "error": body}, STATUS_CODES.get(error.kind, 500)
