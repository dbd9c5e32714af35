"""
Import wizard API routes.

initiate -> upload-file (preview) -> execute (commit), plus session
listing and lookup for resuming the wizard.
"""

from fastapi import APIRouter, Body, File, Header, Query, UploadFile
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.import_session import (
    CommitRequest,
    CommitResponse,
    InitiateSessionRequest,
    SessionListResponse,
    SessionSummary,
    StageResponse,
)
from services.import_session_service import get_import_session_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("", response_model=SessionListResponse)
async def list_imports(
    client_id: Optional[str] = Query(None, description="Filter by tenant"),
    search: Optional[str] = Query(None, description="Search custom name or file name"),
    sort_by: str = Query("created_at", description="Sort column"),
    sort_order: str = Query("desc", pattern="^(asc|desc|ASC|DESC)$", description="Sort direction"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page")
):
    """
    List import sessions.

    Returns items plus pagination (total_items, total_pages, current_page, limit).
    """
    try:
        service = get_import_session_service()
        return service.list_sessions(
            client_id=client_id,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit
        )

    except Exception as e:
        return handle_error(e)


@router.post("/initiate", response_model=SessionSummary, status_code=201)
async def initiate_import(
    data: InitiateSessionRequest,
    user_id: Optional[str] = Header(None, alias="X-User-Id")
):
    """
    Start an import session for a tenant and mapping template.

    Raises:
        404: Client or template not found
        422: Template belongs to another client
    """
    try:
        service = get_import_session_service()
        return service.initiate(
            client_id=data.client_id,
            template_id=data.field_mapping_id,
            user_id=user_id,
            custom_name=data.custom_name
        )

    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=SessionSummary)
async def get_import(session_id: str):
    """Get an import session's status and counters."""
    try:
        service = get_import_session_service()
        return service.get_session(session_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/upload-file", response_model=StageResponse)
async def upload_import_file(session_id: str, file: UploadFile = File(...)):
    """
    Upload a spreadsheet and build the preview.

    Raises:
        413: File over the size limit (session unchanged)
        409: Session busy
        422: Unreadable file, template mismatch or wrong status
        503: Storage unavailable
    """
    try:
        content = await file.read()
        service = get_import_session_service()
        return service.stage(session_id, content, file.filename or "upload.xlsx")

    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/execute", response_model=CommitResponse)
async def execute_import(session_id: str, data: Optional[CommitRequest] = Body(None)):
    """
    Commit the staged file into orders.

    finalized_rules overrides the template for this run when given.
    """
    try:
        service = get_import_session_service()
        rules = data.finalized_rules if data else None
        return service.commit(session_id, rules)

    except Exception as e:
        return handle_error(e)
