"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Lookups
    SessionNotFoundError,
    TemplateNotFoundError,
    ClientNotFoundError,

    # Templates
    DuplicateTargetFieldError,
    UnknownTargetFieldError,
    ProcessingNotAllowedError,
    TemplateInUseError,
    TemplateMismatchError,

    # Files
    SizeLimitError,
    SpreadsheetParseError,
    StorageError,

    # Sessions
    TemplateRequiredError,
    InvalidStatusTransitionError,
    SessionBusyError,
)

__all__ = [
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",
    "SessionNotFoundError",
    "TemplateNotFoundError",
    "ClientNotFoundError",
    "DuplicateTargetFieldError",
    "UnknownTargetFieldError",
    "ProcessingNotAllowedError",
    "TemplateInUseError",
    "TemplateMismatchError",
    "SizeLimitError",
    "SpreadsheetParseError",
    "StorageError",
    "TemplateRequiredError",
    "InvalidStatusTransitionError",
    "SessionBusyError",
]
