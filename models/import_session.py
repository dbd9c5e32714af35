"""
Import session schemas and status transitions.

A session is one run of the import wizard. Its status moves only
through the transition table below; the lifecycle service is the one
caller of next_status().
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from exceptions import InvalidStatusTransitionError
from models.base import BaseSchema, Pagination
from models.mapping_template import FieldRule


class ImportStatus(str, Enum):
    """Import session status values."""
    INITIATED = "initiated"
    FILE_UPLOADED = "file_uploaded"  # legacy alias of preview_ready
    PREVIEW_READY = "preview_ready"
    PROCESSING_FAILED = "processing_failed"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


class SessionEvent(str, Enum):
    """Outcomes that move a session between statuses."""
    STAGE_SUCCEEDED = "stage_succeeded"
    STAGE_FAILED = "stage_failed"
    COMMIT_COMPLETED = "commit_completed"
    COMMIT_PARTIAL = "commit_partial"
    COMMIT_FAILED = "commit_failed"


_STAGEABLE = (ImportStatus.INITIATED, ImportStatus.PROCESSING_FAILED)

TRANSITIONS: dict[tuple[ImportStatus, SessionEvent], ImportStatus] = {
    **{(s, SessionEvent.STAGE_SUCCEEDED): ImportStatus.PREVIEW_READY for s in _STAGEABLE},
    **{(s, SessionEvent.STAGE_FAILED): ImportStatus.PROCESSING_FAILED for s in _STAGEABLE},
    (ImportStatus.PREVIEW_READY, SessionEvent.COMMIT_COMPLETED): ImportStatus.COMPLETED,
    (ImportStatus.PREVIEW_READY, SessionEvent.COMMIT_PARTIAL): ImportStatus.PARTIAL,
    (ImportStatus.PREVIEW_READY, SessionEvent.COMMIT_FAILED): ImportStatus.FAILED,
}

TERMINAL_STATUSES = frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED, ImportStatus.PARTIAL})


def canonical_status(status: ImportStatus | str) -> ImportStatus:
    """Map legacy aliases onto the status they stand for."""
    status = ImportStatus(status)
    if status == ImportStatus.FILE_UPLOADED:
        return ImportStatus.PREVIEW_READY
    return status


def can_transition(current: ImportStatus | str, event: SessionEvent) -> bool:
    return (canonical_status(current), event) in TRANSITIONS


def next_status(current: ImportStatus | str, event: SessionEvent) -> ImportStatus:
    """
    Resolve the status a session moves to.

    Raises:
        InvalidStatusTransitionError: If the pair is not in the table
    """
    key = (canonical_status(current), event)
    if key not in TRANSITIONS:
        raise InvalidStatusTransitionError(ImportStatus(current).value, event.value)
    return TRANSITIONS[key]


# ===================
# ROW ERRORS
# ===================

class RowErrorType(str, Enum):
    """Per-cell failure kinds."""
    NO_MATCH = "no_match"
    FORMAT_ERROR = "format_error"
    OUT_OF_RANGE = "out_of_range"
    TYPE_MISMATCH = "type_mismatch"
    STORAGE_ERROR = "storage_error"


class RowError(BaseModel):
    """One failed cell. Reported in summaries, never stored on its own."""
    row_number_in_file: int
    field_name: str
    original_value: Any = None
    error_type: RowErrorType
    error_message: str


class ErrorSummary(BaseModel):
    """Aggregated row errors with a bounded detail sample."""
    total_errors: int = 0
    rows_with_errors: int = 0
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    detailed_errors: list[RowError] = Field(default_factory=list)


# ===================
# TEMPLATE VALIDATION
# ===================

class FieldMatch(BaseSchema):
    template_field: str
    target_field: str
    system_field: str = Field(..., description="Human label of the target field")


class TemplateValidationResult(BaseSchema):
    found_fields: list[FieldMatch] = Field(default_factory=list)
    missing_fields: list[FieldMatch] = Field(default_factory=list)
    unused_file_headers: list[str] = Field(default_factory=list)
    all_required_found: bool = True
    error_messages: list[str] = Field(default_factory=list)


# ===================
# SESSION SCHEMAS
# ===================

class InitiateSessionRequest(BaseSchema):
    """Start an import wizard run."""
    client_id: str = Field(..., description="Tenant UUID")
    field_mapping_id: str = Field(..., description="Mapping template UUID")
    custom_name: Optional[str] = Field(None, max_length=255, description="Display name for the import")


class SessionSummary(BaseSchema):
    """Import session as returned to callers."""

    id: str
    client_id: str
    user_id: Optional[str] = None
    field_mapping_id: Optional[str] = None
    template_version: Optional[int] = None
    custom_name: Optional[str] = None
    file_name: Optional[str] = None
    storage_key: Optional[str] = None
    status: ImportStatus
    status_details: Optional[str] = None
    total_rows_in_file: int = 0
    rows_successfully_previewed: int = 0
    rows_failed_preview: int = 0
    rows_successfully_imported: int = 0
    rows_failed: int = 0
    rows_skipped: int = 0
    error_summary: Optional[ErrorSummary] = None
    version: int = 0
    busy: bool = False
    processing_started_at: Optional[datetime] = None
    processing_finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SessionListResponse(BaseSchema):
    items: list[SessionSummary]
    pagination: Pagination


class StageStatistics(BaseModel):
    total_rows_in_file: int
    rows_successfully_previewed: int
    rows_failed_preview: int
    sample_rows: list[dict[str, Any]]
    error_summary: ErrorSummary
    file_headers: list[str]
    validation: Optional[TemplateValidationResult] = None


class StageResponse(BaseModel):
    message: str
    statistics: StageStatistics
    session: SessionSummary


class CommitRequest(BaseSchema):
    """Rules to import with. Omit to use the session's template as stored."""
    finalized_rules: Optional[list[FieldRule]] = Field(None, min_length=1)


class CommitStatistics(BaseModel):
    total_processed_rows: int
    rows_successfully_imported: int
    rows_failed: int
    rows_skipped: int
    error_summary: ErrorSummary


class CommitResponse(BaseModel):
    message: str
    imported_count: int = Field(..., serialization_alias="importedCount")
    total_processed_rows: int = Field(..., serialization_alias="totalProcessedRows")
    session: SessionSummary
    statistics: CommitStatistics
