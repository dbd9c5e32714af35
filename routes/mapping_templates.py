"""
Mapping template API routes.
"""

from fastapi import APIRouter, File, Query, UploadFile
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.mapping_template import (
    CatalogResponse,
    MappingTemplateCreate,
    MappingTemplateListResponse,
    MappingTemplateResponse,
    MappingTemplateUpdate,
    SampleUploadResponse,
)
from services.mapping_template_service import get_mapping_template_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/mapping-templates", tags=["Mapping Templates"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
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


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog():
    """Target fields and processing functions for the template editor."""
    try:
        return get_mapping_template_service().get_catalog()

    except Exception as e:
        return handle_error(e)


@router.get("", response_model=MappingTemplateListResponse)
async def list_templates(
    client_id: Optional[str] = Query(None, description="Filter by tenant")
):
    """List mapping templates."""
    try:
        templates, total = get_mapping_template_service().get_all(client_id=client_id)
        return MappingTemplateListResponse(data=templates, total=total)

    except Exception as e:
        return handle_error(e)


@router.get("/{template_id}", response_model=MappingTemplateResponse)
async def get_template(template_id: str):
    """Get a mapping template."""
    try:
        return get_mapping_template_service().get_by_id(template_id)

    except Exception as e:
        return handle_error(e)


@router.post("", response_model=MappingTemplateResponse, status_code=201)
async def create_template(data: MappingTemplateCreate):
    """
    Create a mapping template.

    Raises:
        422: Unknown target field, disallowed processing or duplicate target
    """
    try:
        return get_mapping_template_service().create(data)

    except Exception as e:
        return handle_error(e)


@router.put("/{template_id}", response_model=MappingTemplateResponse)
async def update_template(template_id: str, data: MappingTemplateUpdate):
    """Update a mapping template. Changing rules bumps its version."""
    try:
        return get_mapping_template_service().update(template_id, data)

    except Exception as e:
        return handle_error(e)


@router.delete("/{template_id}", status_code=204)
async def delete_template(template_id: str):
    """
    Delete a mapping template.

    Raises:
        409: Template used by an unfinished import
    """
    try:
        get_mapping_template_service().delete(template_id)
        return None

    except Exception as e:
        return handle_error(e)


@router.post("/{template_id}/sample", response_model=SampleUploadResponse)
async def upload_template_sample(template_id: str, file: UploadFile = File(...)):
    """Store a sample file and return its preview with mapping suggestions."""
    try:
        content = await file.read()
        return get_mapping_template_service().upload_sample(
            template_id, content, file.filename or "sample.xlsx"
        )

    except Exception as e:
        return handle_error(e)
