"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
    Pagination,
)
from models.mapping_template import (
    FieldRule,
    Processing,
    RuleSet,
    MappingTemplateCreate,
    MappingTemplateUpdate,
    MappingTemplateResponse,
    MappingTemplateListResponse,
    CatalogResponse,
    SampleUploadResponse,
    find_duplicate_targets,
)
from models.import_session import (
    ImportStatus,
    SessionEvent,
    RowError,
    RowErrorType,
    ErrorSummary,
    TemplateValidationResult,
    SessionSummary,
    SessionListResponse,
    InitiateSessionRequest,
    StageResponse,
    CommitRequest,
    CommitResponse,
    next_status,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    "Pagination",

    # Templates
    "FieldRule",
    "Processing",
    "RuleSet",
    "MappingTemplateCreate",
    "MappingTemplateUpdate",
    "MappingTemplateResponse",
    "MappingTemplateListResponse",
    "CatalogResponse",
    "SampleUploadResponse",
    "find_duplicate_targets",

    # Sessions
    "ImportStatus",
    "SessionEvent",
    "RowError",
    "RowErrorType",
    "ErrorSummary",
    "TemplateValidationResult",
    "SessionSummary",
    "SessionListResponse",
    "InitiateSessionRequest",
    "StageResponse",
    "CommitRequest",
    "CommitResponse",
    "next_status",
]
