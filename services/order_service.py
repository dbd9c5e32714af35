"""
Order writer for committed imports.

Converts normalized records to the orders table's column types and
inserts them in batches. A failed batch marks its rows as failed; rows
already inserted stay.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import structlog

from config import get_supabase_client, settings
from config.field_catalog import FieldCatalog, get_field_catalog
from models.import_session import RowError, RowErrorType
from services.rule_engine import RowOutcome
from utils.value_types import coerce_value, to_serializable

logger = structlog.get_logger(__name__)


@dataclass
class InsertResult:
    """Outcome of writing committed rows."""
    inserted: int = 0
    failed_rows: int = 0
    errors: list[RowError] = field(default_factory=list)
    batches_total: int = 0
    batches_failed: int = 0
    last_error: Optional[str] = None

    @property
    def storage_unavailable(self) -> bool:
        """Every batch failed, nothing reached the table."""
        return self.batches_total > 0 and self.batches_failed == self.batches_total


class OrderService:
    """Writes normalized import rows into orders."""

    def __init__(self, catalog: Optional[FieldCatalog] = None, batch_size: Optional[int] = None):
        self.db = get_supabase_client()
        self.table = "orders"
        self.catalog = catalog or get_field_catalog()
        self.batch_size = batch_size or settings.commit_batch_size

    def build_record(self, outcome: RowOutcome, session_id: str, client_id: str) -> dict[str, Any]:
        """
        Convert a row's values to column types.

        Raises:
            ValueError: If a value does not convert
        """
        record: dict[str, Any] = {}
        for key, value in outcome.record.items():
            target = self.catalog.get(key)
            if target is not None:
                value = coerce_value(value, target.field_type)
            record[key] = to_serializable(value)
        record["session_id"] = session_id
        record["client_id"] = client_id
        return record

    def insert_outcomes(
        self,
        outcomes: list[RowOutcome],
        session_id: str,
        client_id: str
    ) -> InsertResult:
        """
        Insert clean rows in batches.

        Args:
            outcomes: Rows that passed the rule engine
            session_id: Import session tagging the rows
            client_id: Tenant owning the rows

        Returns:
            InsertResult with inserted/failed counts and per-row errors
        """
        result = InsertResult()
        pending: list[tuple[RowOutcome, dict]] = []

        for outcome in outcomes:
            try:
                pending.append((outcome, self.build_record(outcome, session_id, client_id)))
            except (ValueError, TypeError, OverflowError) as e:
                result.failed_rows += 1
                result.errors.append(RowError(
                    row_number_in_file=outcome.row_number,
                    field_name="*",
                    error_type=RowErrorType.TYPE_MISMATCH,
                    error_message=f"Row could not be converted for storage: {e}",
                ))

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            result.batches_total += 1
            try:
                self.db.table(self.table).insert([record for _, record in batch]).execute()
                result.inserted += len(batch)
            except Exception as e:
                result.batches_failed += 1
                result.failed_rows += len(batch)
                result.last_error = str(e)
                logger.error(
                    "order_batch_insert_failed",
                    session_id=session_id,
                    batch_start=start,
                    batch_size=len(batch),
                    error=str(e)
                )
                for outcome, _ in batch:
                    result.errors.append(RowError(
                        row_number_in_file=outcome.row_number,
                        field_name="*",
                        error_type=RowErrorType.STORAGE_ERROR,
                        error_message="Row was not saved: database insert failed",
                    ))

        logger.info(
            "orders_inserted",
            session_id=session_id,
            inserted=result.inserted,
            failed=result.failed_rows,
            batches=result.batches_total,
            batches_failed=result.batches_failed
        )

        return result

