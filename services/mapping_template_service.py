"""
Mapping template service.

Tenant-scoped CRUD for templates. Rules are checked against the field
catalog on every save, and changing rules bumps the template version
so sessions can tell which revision they previewed with.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from config.field_catalog import FieldCatalog, get_field_catalog
from exceptions import (
    DatabaseError,
    TemplateInUseError,
    TemplateNotFoundError,
)
from models.import_session import TERMINAL_STATUSES, ImportStatus
from models.mapping_template import (
    CatalogResponse,
    MappingTemplateCreate,
    MappingTemplateResponse,
    MappingTemplateUpdate,
    ProcessingFunctionDescription,
    SampleUploadResponse,
    TargetFieldInfo,
)
from parsers.spreadsheet_parser import parse_spreadsheet
from services.storage_service import StorageService, get_storage_service
from services.template_validator import TemplateValidator

logger = structlog.get_logger(__name__)


class MappingTemplateService:
    """
    Mapping template business logic.

    Handles CRUD, sample uploads and the editor catalog.
    """

    def __init__(self, catalog: Optional[FieldCatalog] = None):
        self.db = get_supabase_client()
        self.table = "mapping_templates"
        self.sessions_table = "import_sessions"
        self.catalog = catalog or get_field_catalog()
        self.validator = TemplateValidator(self.catalog)

    # ===================
    # READ OPERATIONS
    # ===================

    def get_all(self, client_id: Optional[str] = None) -> tuple[list[MappingTemplateResponse], int]:
        """
        List templates, optionally for one tenant.

        Returns:
            Tuple of (templates list, total count)
        """
        logger.info("getting_mapping_templates", client_id=client_id)

        try:
            query = self.db.table(self.table).select("*", count="exact")
            if client_id:
                query = query.eq("client_id", client_id)
            result = query.order("created_at", desc=True).execute()

            templates = [MappingTemplateResponse(**row) for row in result.data]
            total = result.count if result.count is not None else len(templates)

            logger.info("mapping_templates_retrieved", count=len(templates), total=total)
            return templates, total

        except Exception as e:
            logger.error("get_mapping_templates_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def get_by_id(self, template_id: str) -> MappingTemplateResponse:
        """
        Get a template by ID.

        Raises:
            TemplateNotFoundError: If template doesn't exist
        """
        logger.debug("getting_mapping_template", template_id=template_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", template_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_mapping_template_failed", template_id=template_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise TemplateNotFoundError(template_id)

        return MappingTemplateResponse(**result.data[0])

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: MappingTemplateCreate) -> MappingTemplateResponse:
        """
        Create a template.

        Raises:
            UnknownTargetFieldError, ProcessingNotAllowedError,
            DuplicateTargetFieldError: If rules do not fit the catalog
        """
        logger.info("creating_mapping_template", client_id=data.client_id, name=data.name)

        self.validator.check_rules(data.rules)

        try:
            result = (
                self.db.table(self.table)
                .insert({
                    "client_id": data.client_id,
                    "name": data.name,
                    "description": data.description,
                    "rules": [rule.model_dump(mode="json") for rule in data.rules],
                    "version": 1,
                })
                .execute()
            )
        except Exception as e:
            logger.error("create_mapping_template_failed", error=str(e))
            raise DatabaseError("insert", str(e))

        template = MappingTemplateResponse(**result.data[0])
        logger.info("mapping_template_created", template_id=template.id)
        return template

    def update(self, template_id: str, data: MappingTemplateUpdate) -> MappingTemplateResponse:
        """
        Update a template. New rules bump the version.

        Raises:
            TemplateNotFoundError: If template doesn't exist
        """
        current = self.get_by_id(template_id)

        update_data = data.model_dump(exclude_unset=True, exclude={"rules"})
        if data.rules is not None:
            self.validator.check_rules(data.rules)
            update_data["rules"] = [rule.model_dump(mode="json") for rule in data.rules]
            update_data["version"] = current.version + 1

        if not update_data:
            return current

        logger.info(
            "updating_mapping_template",
            template_id=template_id,
            fields=sorted(update_data),
            version=update_data.get("version", current.version)
        )

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", template_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_mapping_template_failed", template_id=template_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise TemplateNotFoundError(template_id)

        return MappingTemplateResponse(**result.data[0])

    def delete(self, template_id: str) -> None:
        """
        Delete a template.

        Raises:
            TemplateNotFoundError: If template doesn't exist
            TemplateInUseError: If an unfinished session uses it
        """
        self.get_by_id(template_id)

        try:
            sessions = (
                self.db.table(self.sessions_table)
                .select("id, status")
                .eq("field_mapping_id", template_id)
                .execute()
            )
            open_sessions = [
                row["id"] for row in sessions.data
                if ImportStatus(row["status"]) not in TERMINAL_STATUSES
            ]
        except Exception as e:
            logger.error("template_usage_check_failed", template_id=template_id, error=str(e))
            raise DatabaseError("select", str(e))

        if open_sessions:
            raise TemplateInUseError(template_id, open_sessions)

        try:
            self.db.table(self.table).delete().eq("id", template_id).execute()
        except Exception as e:
            logger.error("delete_mapping_template_failed", template_id=template_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("mapping_template_deleted", template_id=template_id)

    def upload_sample(
        self,
        template_id: str,
        content: bytes,
        file_name: str,
        storage: Optional[StorageService] = None
    ) -> SampleUploadResponse:
        """
        Store a sample file for a template and return its preview.

        The preview carries alias-based suggestions for unmapped columns.
        """
        template = self.get_by_id(template_id)
        parsed = parse_spreadsheet(content, file_name)

        storage = storage or get_storage_service()
        key = storage.upload(StorageService.build_sample_key(template_id, file_name), content)

        try:
            result = (
                self.db.table(self.table)
                .update({"sample_file_key": key})
                .eq("id", template_id)
                .execute()
            )
        except Exception as e:
            logger.error("sample_key_update_failed", template_id=template_id, error=str(e))
            raise DatabaseError("update", str(e))

        if result.data:
            template = MappingTemplateResponse(**result.data[0])

        preview = parsed.to_preview_dict()
        mapped = {rule.source_field for rule in template.rules if rule.source_field}
        suggestions = self.validator.suggest_mapping(
            [h for h in parsed.fields if h not in mapped]
        )

        logger.info(
            "template_sample_uploaded",
            template_id=template_id,
            key=key,
            columns=len(parsed.fields),
            suggestions=len(suggestions)
        )

        return SampleUploadResponse(
            template=template,
            fields=preview["fields"],
            rows=preview["rows"],
            total_rows=preview["total_rows"],
            preview_rows=preview["preview_rows"],
            suggestions=suggestions,
        )

    def get_catalog(self) -> CatalogResponse:
        """Target fields and processing functions for the template editor."""
        return CatalogResponse(
            fields=[
                TargetFieldInfo(
                    key=f.key,
                    label=f.label,
                    field_type=f.field_type.value,
                    allowed_processing=sorted(p.value for p in f.allowed_processing),
                )
                for f in self.catalog.fields.values()
            ],
            functions=[
                ProcessingFunctionDescription(
                    function=info.function.value,
                    label=info.label,
                    params=list(info.params),
                )
                for info in self.catalog.functions.values()
            ],
        )


# Singleton instance
_mapping_template_service: Optional[MappingTemplateService] = None


def get_mapping_template_service() -> MappingTemplateService:
    """Get or create MappingTemplateService instance."""
    global _mapping_template_service
    if _mapping_template_service is None:
        _mapping_template_service = MappingTemplateService()
    return _mapping_template_service
