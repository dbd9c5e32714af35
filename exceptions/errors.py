"""
Custom exception classes for the application.

Every error surfaced to API callers derives from AppError and renders
through to_dict(). Row-level transformation failures are not here:
they stay inside the rule engine and are reported as data.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        code: Error code (e.g., "SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def attach(self, **context: Any) -> "AppError":
        """Merge extra context into details (e.g. the session's new state)."""
        self.details.update(context)
        return self

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None,
        status_code: int = 422
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# LOOKUP ERRORS
# ===================

class SessionNotFoundError(NotFoundError):
    """Import session not found."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="SESSION_NOT_FOUND"
        )


class TemplateNotFoundError(NotFoundError):
    """Mapping template not found."""

    def __init__(self, template_id: str):
        super().__init__(
            resource="Mapping template",
            identifier=template_id,
            code="TEMPLATE_NOT_FOUND"
        )


class ClientNotFoundError(NotFoundError):
    """Tenant (client) not found."""

    def __init__(self, client_id: str):
        super().__init__(
            resource="Client",
            identifier=client_id,
            code="CLIENT_NOT_FOUND"
        )


# ===================
# TEMPLATE ERRORS
# ===================

class DuplicateTargetFieldError(ValidationError):
    """More than one rule binds the same target field."""

    def __init__(self, target_fields: list[str]):
        super().__init__(
            code="DUPLICATE_TARGET_FIELD",
            message=f"Each target field may be mapped once; duplicated: {', '.join(target_fields)}",
            details={"target_fields": target_fields}
        )


class UnknownTargetFieldError(ValidationError):
    """Rule refers to a field that is not in the catalog."""

    def __init__(self, target_field: str):
        super().__init__(
            code="UNKNOWN_TARGET_FIELD",
            message=f"Unknown target field: {target_field}",
            details={"target_field": target_field}
        )


class ProcessingNotAllowedError(ValidationError):
    """Processing function is not permitted for the target field."""

    def __init__(self, target_field: str, function: str, allowed: list[str]):
        super().__init__(
            code="PROCESSING_NOT_ALLOWED",
            message=f"Processing {function} is not allowed for field {target_field}",
            details={"target_field": target_field, "function": function, "allowed": allowed}
        )


class TemplateInUseError(ConflictError):
    """Template is referenced by an unfinished import session."""

    def __init__(self, template_id: str, session_ids: list[str]):
        super().__init__(
            code="TEMPLATE_IN_USE",
            message="Mapping template is used by import sessions that are not finished",
            details={"template_id": template_id, "session_ids": session_ids}
        )


class TemplateMismatchError(ValidationError):
    """Template source fields are absent from the uploaded file."""

    def __init__(self, missing_fields: list[dict], error_messages: list[str]):
        super().__init__(
            code="TEMPLATE_MISMATCH",
            message="Uploaded file does not contain every column the template maps",
            details={"missing_fields": missing_fields, "error_messages": error_messages}
        )


# ===================
# FILE ERRORS
# ===================

class SizeLimitError(ValidationError):
    """Uploaded file exceeds the size cap (413)."""

    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(
            code="FILE_TOO_LARGE",
            message=f"File exceeds the {limit_bytes // (1024 * 1024)} MB size limit",
            details={"size_bytes": size_bytes, "limit_bytes": limit_bytes},
            status_code=413
        )


class SpreadsheetParseError(ValidationError):
    """File could not be read as a table."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SPREADSHEET_PARSE_ERROR",
            message=message,
            details=details
        )


class StorageError(ExternalServiceError):
    """Object storage or persistence failure."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            service="storage",
            code="STORAGE_ERROR",
            message=f"Storage {operation} failed: {message}",
            details={"operation": operation, **(details or {})}
        )


# ===================
# SESSION ERRORS
# ===================

class TemplateRequiredError(ValidationError):
    """Session has no mapping template selected."""

    def __init__(self, session_id: str):
        super().__init__(
            code="TEMPLATE_REQUIRED",
            message="Select a mapping template before uploading a file",
            details={"session_id": session_id, "field": "field_mapping_id"}
        )


class InvalidStatusTransitionError(ValidationError):
    """Session cannot move from its current status with this event."""

    def __init__(self, current: str, event: str):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot {event.replace('_', ' ')} from status {current}",
            details={"current_status": current, "event": event}
        )


class SessionBusyError(ConflictError):
    """Another stage or commit call is working on the session."""

    def __init__(self, session_id: str):
        super().__init__(
            code="SESSION_BUSY",
            message="Import session is being processed by another request",
            details={"session_id": session_id}
        )
