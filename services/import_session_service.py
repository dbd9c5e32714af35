"""
Import lifecycle service.

Owns the import_sessions table: it is the only code that writes session
status and counters. Each stage/commit call claims the session first
(busy flag plus version compare-and-set) and releases it with its final
write, so overlapping calls on one session get SessionBusyError.

Flow:
    initiate -> stage (upload, parse, validate, preview) -> commit
"""

from datetime import datetime, timezone
from typing import Any, Optional
import structlog

from config import get_supabase_client
from config.field_catalog import FieldCatalog, get_field_catalog
from exceptions import (
    AppError,
    ClientNotFoundError,
    DatabaseError,
    InvalidStatusTransitionError,
    SessionBusyError,
    SessionNotFoundError,
    StorageError,
    TemplateMismatchError,
    TemplateRequiredError,
    ValidationError,
)
from models.base import Pagination
from models.import_session import (
    CommitResponse,
    CommitStatistics,
    ImportStatus,
    SessionEvent,
    SessionListResponse,
    SessionSummary,
    StageResponse,
    StageStatistics,
    can_transition,
    next_status,
)
from models.mapping_template import FieldRule
from parsers.spreadsheet_parser import check_size, parse_spreadsheet
from services.mapping_template_service import MappingTemplateService
from services.order_service import OrderService
from services.rule_engine import RuleEngine
from services.storage_service import StorageService, get_storage_service
from services.template_validator import TemplateValidator

logger = structlog.get_logger(__name__)

SORTABLE_FIELDS = ("created_at", "updated_at", "custom_name", "file_name", "status")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ImportSessionService:
    """
    Import session lifecycle.

    Collaborators (storage, order writer, templates) can be passed in;
    defaults are the process-wide instances.
    """

    def __init__(
        self,
        catalog: Optional[FieldCatalog] = None,
        storage: Optional[StorageService] = None,
        orders: Optional[OrderService] = None,
        templates: Optional[MappingTemplateService] = None,
    ):
        self.db = get_supabase_client()
        self.table = "import_sessions"
        self.clients_table = "clients"
        self.catalog = catalog or get_field_catalog()
        self.engine = RuleEngine(self.catalog)
        self.validator = TemplateValidator(self.catalog)
        self.templates = templates or MappingTemplateService(self.catalog)
        self._storage = storage
        self._orders = orders

    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = get_storage_service()
        return self._storage

    @property
    def orders(self) -> OrderService:
        if self._orders is None:
            self._orders = OrderService(self.catalog)
        return self._orders

    # ===================
    # PERSISTENCE HELPERS
    # ===================

    def _fetch(self, session_id: str) -> dict:
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", session_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_import_session_failed", session_id=session_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise SessionNotFoundError(session_id)
        return result.data[0]

    @staticmethod
    def _summary(row: dict) -> SessionSummary:
        return SessionSummary(**row)

    def _session_context(self, row: dict) -> dict:
        return self._summary(row).model_dump(mode="json")

    def _claim(self, row: dict) -> dict:
        """
        Mark the session busy if nobody else holds it.

        Raises:
            SessionBusyError: If the session is busy or changed underneath
        """
        session_id = row["id"]
        if row.get("busy"):
            raise SessionBusyError(session_id)

        version = row.get("version") or 0
        try:
            result = (
                self.db.table(self.table)
                .update({
                    "busy": True,
                    "version": version + 1,
                    "processing_started_at": _now(),
                    "processing_finished_at": None,
                })
                .eq("id", session_id)
                .eq("version", version)
                .eq("busy", False)
                .execute()
            )
        except Exception as e:
            logger.error("claim_import_session_failed", session_id=session_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            logger.warning("import_session_busy", session_id=session_id, version=version)
            raise SessionBusyError(session_id)

        return result.data[0]

    def _release(self, session_id: str, version: int, data: dict[str, Any]) -> dict:
        """Write the call's final state and clear the busy flag."""
        payload = {
            **data,
            "busy": False,
            "version": version + 1,
            "processing_finished_at": _now(),
        }
        try:
            result = (
                self.db.table(self.table)
                .update(payload)
                .eq("id", session_id)
                .eq("version", version)
                .execute()
            )
        except Exception as e:
            logger.error("release_import_session_failed", session_id=session_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise DatabaseError("update", "import session changed while it was being processed",
                                details={"session_id": session_id})
        return result.data[0]

    def _fail(
        self,
        session_id: str,
        version: int,
        status: ImportStatus,
        error: Exception,
        extra: Optional[dict] = None
    ) -> dict:
        message = error.message if isinstance(error, AppError) else "Unexpected error while processing the file"
        logger.error(
            "import_stage_failed",
            session_id=session_id,
            status=status.value,
            error=str(error),
            error_type=type(error).__name__
        )
        return self._release(session_id, version, {
            "status": status.value,
            "status_details": message,
            **(extra or {}),
        })

    def _discard_replaced_file(self, previous_key: Optional[str], key: Optional[str]) -> None:
        """Delete the superseded upload once the session points at a new one."""
        if not previous_key or not key or previous_key == key:
            return
        try:
            self.storage.delete(previous_key)
        except StorageError as e:
            logger.warning("previous_import_file_not_deleted", key=previous_key, error=e.message)

    # ===================
    # READ OPERATIONS
    # ===================

    def get_session(self, session_id: str) -> SessionSummary:
        """
        Get a session summary.

        Raises:
            SessionNotFoundError: If session doesn't exist
        """
        return self._summary(self._fetch(session_id))

    def list_sessions(
        self,
        client_id: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10
    ) -> SessionListResponse:
        """
        List sessions with search, sort and pagination.

        Args:
            client_id: Only this tenant's sessions
            search: Case-insensitive match on custom_name or file_name
            sort_by: One of SORTABLE_FIELDS
            sort_order: "asc" or "desc"
            page: Page number (1-indexed)
            limit: Items per page
        """
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Cannot sort by {sort_by}",
                code="INVALID_SORT_FIELD",
                details={"sort_by": sort_by, "allowed": list(SORTABLE_FIELDS)}
            )

        logger.info(
            "listing_import_sessions",
            client_id=client_id,
            search=search,
            sort_by=sort_by,
            page=page
        )

        try:
            query = self.db.table(self.table).select("*", count="exact")
            if client_id:
                query = query.eq("client_id", client_id)
            term = "".join(c for c in (search or "") if c not in ",()").strip()
            if term:
                query = query.or_(f"custom_name.ilike.%{term}%,file_name.ilike.%{term}%")

            offset = (page - 1) * limit
            result = (
                query
                .order(sort_by, desc=sort_order.lower() != "asc")
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            logger.error("list_import_sessions_failed", error=str(e))
            raise DatabaseError("select", str(e))

        items = [self._summary(row) for row in result.data]
        total = result.count if result.count is not None else len(items)

        return SessionListResponse(
            items=items,
            pagination=Pagination.create(total_items=total, page=page, limit=limit),
        )

    # ===================
    # LIFECYCLE
    # ===================

    def initiate(
        self,
        client_id: str,
        template_id: str,
        user_id: Optional[str] = None,
        custom_name: Optional[str] = None
    ) -> SessionSummary:
        """
        Start an import session.

        Raises:
            ClientNotFoundError: If the tenant doesn't exist
            TemplateNotFoundError: If the template doesn't exist
            ValidationError: If the template belongs to another tenant
        """
        logger.info("initiating_import", client_id=client_id, template_id=template_id, user_id=user_id)

        try:
            client = (
                self.db.table(self.clients_table)
                .select("id")
                .eq("id", client_id)
                .execute()
            )
        except Exception as e:
            logger.error("client_lookup_failed", client_id=client_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not client.data:
            raise ClientNotFoundError(client_id)

        template = self.templates.get_by_id(template_id)
        if template.client_id != client_id:
            raise ValidationError(
                "Mapping template does not belong to this client",
                code="TEMPLATE_CLIENT_MISMATCH",
                details={"client_id": client_id, "field_mapping_id": template_id}
            )

        try:
            result = (
                self.db.table(self.table)
                .insert({
                    "client_id": client_id,
                    "user_id": user_id,
                    "field_mapping_id": template_id,
                    "template_version": template.version,
                    "custom_name": custom_name,
                    "status": ImportStatus.INITIATED.value,
                    "status_details": "Import initiated",
                    "total_rows_in_file": 0,
                    "rows_successfully_previewed": 0,
                    "rows_failed_preview": 0,
                    "rows_successfully_imported": 0,
                    "rows_failed": 0,
                    "rows_skipped": 0,
                    "version": 0,
                    "busy": False,
                })
                .execute()
            )
        except Exception as e:
            logger.error("create_import_session_failed", error=str(e))
            raise DatabaseError("insert", str(e))

        session = self._summary(result.data[0])
        logger.info("import_initiated", session_id=session.id, client_id=client_id)
        return session

    def stage(self, session_id: str, content: bytes, file_name: str) -> StageResponse:
        """
        Upload, parse, validate and preview a file for the session.

        The size check runs before anything else; an oversized file
        leaves the session untouched.

        Raises:
            SessionNotFoundError: If session doesn't exist
            SizeLimitError: If the file is over the cap
            InvalidStatusTransitionError: If the session cannot be staged
            TemplateRequiredError: If no template is selected
            SessionBusyError: If another call holds the session
            StorageError, SpreadsheetParseError, TemplateMismatchError:
                Session moves to processing_failed
        """
        logger.info("staging_import_file", session_id=session_id, file_name=file_name, size=len(content))

        row = self._fetch(session_id)
        status = ImportStatus(row["status"])

        try:
            check_size(content)
            if not can_transition(status, SessionEvent.STAGE_SUCCEEDED):
                raise InvalidStatusTransitionError(status.value, "stage_file")
            if not row.get("field_mapping_id"):
                raise TemplateRequiredError(session_id)
            template = self.templates.get_by_id(row["field_mapping_id"])
            claimed = self._claim(row)
        except AppError as e:
            raise e.attach(session=self._session_context(row))

        version = claimed["version"]
        previous_key = row.get("storage_key")
        key = None

        try:
            key = self.storage.upload(
                StorageService.build_key(row["client_id"], session_id, file_name),
                content,
            )
            parsed = parse_spreadsheet(content, file_name)

            validation = self.validator.validate(template.rules, parsed.fields)
            if not validation.all_required_found:
                raise TemplateMismatchError(
                    [m.model_dump() for m in validation.missing_fields],
                    validation.error_messages,
                )

            preview = self.engine.run_preview(parsed.preview, template.rules)

        except Exception as e:
            failed = self._fail(
                session_id, version, next_status(status, SessionEvent.STAGE_FAILED), e,
                {"file_name": file_name, "storage_key": key or previous_key},
            )
            self._discard_replaced_file(previous_key, key)
            if isinstance(e, AppError):
                raise e.attach(session=self._session_context(failed))
            raise

        updated = self._release(session_id, version, {
            "status": next_status(status, SessionEvent.STAGE_SUCCEEDED).value,
            "status_details": (
                f"Preview ready: {preview.rows_ok} of {parsed.preview_rows} preview rows normalized"
            ),
            "file_name": file_name,
            "storage_key": key,
            "template_version": template.version,
            "total_rows_in_file": parsed.total_rows,
            "rows_successfully_previewed": preview.rows_ok,
            "rows_failed_preview": preview.rows_failed,
            "rows_successfully_imported": 0,
            "rows_failed": 0,
            "rows_skipped": 0,
            "error_summary": preview.error_summary.model_dump(mode="json"),
        })

        self._discard_replaced_file(previous_key, key)

        session = self._summary(updated)
        logger.info(
            "import_file_staged",
            session_id=session_id,
            total_rows=parsed.total_rows,
            rows_ok=preview.rows_ok,
            rows_failed=preview.rows_failed
        )

        return StageResponse(
            message="File processed, preview ready",
            statistics=StageStatistics(
                total_rows_in_file=parsed.total_rows,
                rows_successfully_previewed=preview.rows_ok,
                rows_failed_preview=preview.rows_failed,
                sample_rows=preview.sample_rows,
                error_summary=preview.error_summary,
                file_headers=parsed.fields,
                validation=validation,
            ),
            session=session,
        )

    def commit(self, session_id: str, finalized_rules: Optional[list[FieldRule]] = None) -> CommitResponse:
        """
        Import every row of the staged file with the finalized rules.

        Clean rows are inserted even when others fail; the session ends
        completed, partial or failed.

        Raises:
            SessionNotFoundError: If session doesn't exist
            InvalidStatusTransitionError: If no preview is ready
            ValidationError: If the rules do not fit the catalog, or the
                template changed since the preview (TEMPLATE_CHANGED)
            SessionBusyError: If another call holds the session
            StorageError: If the file or the orders table is unreachable
        """
        logger.info("committing_import", session_id=session_id, custom_rules=finalized_rules is not None)

        row = self._fetch(session_id)
        status = ImportStatus(row["status"])

        try:
            if not can_transition(status, SessionEvent.COMMIT_COMPLETED):
                raise InvalidStatusTransitionError(status.value, "commit")
            if not row.get("storage_key"):
                raise ValidationError(
                    "Upload a file before importing",
                    code="FILE_REQUIRED",
                    details={"session_id": session_id}
                )
            if finalized_rules is None:
                if not row.get("field_mapping_id"):
                    raise TemplateRequiredError(session_id)
                template = self.templates.get_by_id(row["field_mapping_id"])
                staged_version = row.get("template_version")
                if staged_version is not None and template.version != staged_version:
                    raise ValidationError(
                        "Mapping template changed after the preview; send finalized_rules to import",
                        code="TEMPLATE_CHANGED",
                        details={
                            "field_mapping_id": template.id,
                            "previewed_version": staged_version,
                            "current_version": template.version,
                        }
                    )
                rules = template.rules
            else:
                rules = finalized_rules
            self.validator.check_rules(rules)
            claimed = self._claim(row)
        except AppError as e:
            raise e.attach(session=self._session_context(row))

        version = claimed["version"]
        failed_status = next_status(status, SessionEvent.COMMIT_FAILED)

        try:
            content = self.storage.download(row["storage_key"])
            parsed = parse_spreadsheet(content, row.get("file_name") or row["storage_key"])
            outcomes = self.engine.run_commit(parsed.rows, rules)

            collector = self.engine.new_collector()
            clean = []
            rows_failed = 0
            rows_skipped = 0
            for outcome in outcomes:
                if outcome.failed:
                    collector.add(outcome.errors)
                    rows_failed += 1
                elif outcome.is_empty:
                    rows_skipped += 1
                else:
                    clean.append(outcome)

            inserted = self.orders.insert_outcomes(clean, session_id, row["client_id"])

        except Exception as e:
            failed = self._fail(session_id, version, failed_status, e)
            if isinstance(e, AppError):
                raise e.attach(session=self._session_context(failed))
            raise

        for error in inserted.errors:
            collector.add([error])
        rows_failed += inserted.failed_rows

        if inserted.storage_unavailable or (inserted.inserted == 0 and rows_failed > 0):
            event = SessionEvent.COMMIT_FAILED
        elif rows_failed == 0:
            event = SessionEvent.COMMIT_COMPLETED
        else:
            event = SessionEvent.COMMIT_PARTIAL

        error_summary = collector.summary()
        new_status = next_status(status, event)
        updated = self._release(session_id, version, {
            "status": new_status.value,
            "status_details": (
                f"Imported {inserted.inserted} of {len(outcomes)} rows; "
                f"{rows_failed} failed, {rows_skipped} skipped"
            ),
            "rows_successfully_imported": inserted.inserted,
            "rows_failed": rows_failed,
            "rows_skipped": rows_skipped,
            "error_summary": error_summary.model_dump(mode="json"),
            "applied_rules": [rule.model_dump(mode="json") for rule in rules],
        })
        session = self._summary(updated)

        logger.info(
            "import_committed",
            session_id=session_id,
            status=new_status.value,
            imported=inserted.inserted,
            failed=rows_failed,
            skipped=rows_skipped
        )

        if inserted.storage_unavailable:
            raise StorageError(
                "insert",
                inserted.last_error or "orders table unavailable",
                details={"session": session.model_dump(mode="json")}
            )

        messages = {
            ImportStatus.COMPLETED: "Import completed",
            ImportStatus.PARTIAL: "Import completed with errors",
            ImportStatus.FAILED: "Import failed: no rows could be imported",
        }

        return CommitResponse(
            message=messages[new_status],
            imported_count=inserted.inserted,
            total_processed_rows=len(outcomes),
            session=session,
            statistics=CommitStatistics(
                total_processed_rows=len(outcomes),
                rows_successfully_imported=inserted.inserted,
                rows_failed=rows_failed,
                rows_skipped=rows_skipped,
                error_summary=error_summary,
            ),
        )


# Singleton instance
_import_session_service: Optional[ImportSessionService] = None


def get_import_session_service() -> ImportSessionService:
    """Get or create ImportSessionService instance."""
    global _import_session_service
    if _import_session_service is None:
        _import_session_service = ImportSessionService()
    return _import_session_service
