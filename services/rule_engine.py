"""
Field-mapping rule engine.

Evaluates a template's rules against spreadsheet rows. Each rule reads
one source cell, applies its processing function and type-checks the
result against the target field. A failing cell becomes a RowError; the
rest of the row is still resolved, and nothing raised here escapes
evaluate_row().
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Iterable, Optional, assert_never
import re
import structlog

from config import settings
from config.field_catalog import FieldCatalog, FieldType
from models.import_session import ErrorSummary, RowError, RowErrorType
from models.mapping_template import (
    FieldRule,
    Processing,
    NoneProcessing,
    LeftProcessing,
    RightProcessing,
    SubstringProcessing,
    ExtractDateProcessing,
    ExtractDateTimeProcessing,
    SplitProcessing,
    ReplaceProcessing,
    RegexpProcessing,
)
from parsers.spreadsheet_parser import SpreadsheetRow
from utils.date_formats import parse_datetime
from utils.text_utils import is_blank
from utils.value_types import coerce_value, to_serializable, to_string

logger = structlog.get_logger(__name__)


class RowTransformError(Exception):
    """A single cell could not be transformed. Caught per field."""

    def __init__(self, error_type: RowErrorType, message: str):
        self.error_type = error_type
        self.message = message
        super().__init__(message)


@dataclass
class RowOutcome:
    """Normalized record for one row plus the errors hit building it."""
    row_number: int
    record: dict[str, Any]
    errors: list[RowError] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    @property
    def is_empty(self) -> bool:
        """No bound field produced a value."""
        return all(is_blank(v) for v in self.record.values())


@dataclass
class PreviewResult:
    """Preview pass over the capped rows."""
    sample_rows: list[dict[str, Any]]
    rows_ok: int
    rows_failed: int
    error_summary: ErrorSummary


class ErrorCollector:
    """Aggregates row errors into an ErrorSummary with a bounded sample."""

    def __init__(self, sample_limit: int):
        self.sample_limit = sample_limit
        self.total_errors = 0
        self.rows_with_errors = 0
        self.by_type: Counter = Counter()
        self.detailed: list[RowError] = []

    def add(self, errors: list[RowError]) -> None:
        if not errors:
            return
        self.rows_with_errors += 1
        for error in errors:
            self.total_errors += 1
            self.by_type[error.error_type.value] += 1
            if len(self.detailed) < self.sample_limit:
                self.detailed.append(error)

    def summary(self) -> ErrorSummary:
        return ErrorSummary(
            total_errors=self.total_errors,
            rows_with_errors=self.rows_with_errors,
            errors_by_type=dict(self.by_type),
            detailed_errors=list(self.detailed),
        )


# ===================
# PROCESSING FUNCTIONS
# ===================

@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _text(value: Any) -> str:
    return to_string(value)


def _parse_date(value: Any, fmt: Optional[str]) -> datetime:
    parsed = parse_datetime(value, fmt)
    if parsed is None:
        expected = f" (expected format {fmt})" if fmt else ""
        raise RowTransformError(
            RowErrorType.FORMAT_ERROR,
            f"Could not read a date from '{value}'{expected}"
        )
    return parsed


def apply_processing(value: Any, processing: Processing) -> Any:
    """
    Apply one processing function to a non-blank cell value.

    Raises:
        RowTransformError: If the value does not fit the function
    """
    match processing:
        case NoneProcessing():
            return value

        case LeftProcessing(params=params):
            return _text(value)[:params.length]

        case RightProcessing(params=params):
            text = _text(value)
            return text[-params.length:] if params.length else ""

        case SubstringProcessing(params=params):
            text = _text(value)
            if params.start >= len(text):
                raise RowTransformError(
                    RowErrorType.OUT_OF_RANGE,
                    f"Start position {params.start} is past the end of '{text}'"
                )
            return text[params.start:params.start + params.length]

        case SplitProcessing(params=params):
            parts = _text(value).split(params.delimiter)
            if params.part > len(parts):
                raise RowTransformError(
                    RowErrorType.OUT_OF_RANGE,
                    f"Part {params.part} requested but '{value}' has {len(parts)} "
                    f"part(s) when split on '{params.delimiter}'"
                )
            return parts[params.part - 1].strip()

        case ReplaceProcessing(params=params):
            text = _text(value)
            if not params.search:
                return text
            return text.replace(params.search, params.replace, 1)

        case RegexpProcessing(params=params):
            compiled = _compile(params.pattern)
            if params.group > compiled.groups:
                raise RowTransformError(
                    RowErrorType.OUT_OF_RANGE,
                    f"Group {params.group} requested but pattern has {compiled.groups} group(s)"
                )
            found = compiled.search(_text(value))
            if found is None or found.group(params.group) is None:
                raise RowTransformError(
                    RowErrorType.NO_MATCH,
                    f"Value '{value}' does not match pattern {params.pattern}"
                )
            return found.group(params.group)

        case ExtractDateProcessing(params=params):
            return _parse_date(value, params.format).date()

        case ExtractDateTimeProcessing(params=params):
            return _parse_date(value, params.format)

        case _:
            assert_never(processing)


# ===================
# ENGINE
# ===================

class RuleEngine:
    """
    Evaluates field rules against rows.

    The catalog is passed in; the engine never looks it up itself.
    """

    def __init__(
        self,
        catalog: FieldCatalog,
        error_sample_limit: Optional[int] = None,
        sample_size: Optional[int] = None,
    ):
        self.catalog = catalog
        self.error_sample_limit = (
            settings.error_sample_limit if error_sample_limit is None else error_sample_limit
        )
        self.sample_size = settings.preview_sample_size if sample_size is None else sample_size

    def _check_type(self, value: Any, target_field: str) -> None:
        target = self.catalog.get(target_field)
        if target is None or target.field_type == FieldType.STRING or is_blank(value):
            return
        try:
            coerce_value(value, target.field_type)
        except (ValueError, TypeError, OverflowError) as e:
            raise RowTransformError(
                RowErrorType.TYPE_MISMATCH,
                f"'{value}' is not a valid {target.field_type.value.lower()} for {target.label}: {e}"
            ) from e

    def _resolve(self, raw: Any, rule: FieldRule) -> Any:
        if is_blank(raw):
            if rule.default_value is None:
                return None
            value = rule.default_value
        else:
            value = apply_processing(raw, rule.processing)
        self._check_type(value, rule.target_field)
        return value

    def evaluate_row(self, row: SpreadsheetRow, rules: Iterable[FieldRule]) -> RowOutcome:
        """
        Normalize one row.

        Target fields without a bound rule are left out of the record.
        A failed field is recorded as None next to its RowError.
        """
        outcome = RowOutcome(row_number=row.row_number, record={})

        for rule in rules:
            if not rule.target_field or not rule.is_bound:
                continue

            raw = row.get(rule.source_field) if rule.source_field else None
            try:
                outcome.record[rule.target_field] = self._resolve(raw, rule)
            except RowTransformError as e:
                outcome.record[rule.target_field] = None
                outcome.errors.append(RowError(
                    row_number_in_file=row.row_number,
                    field_name=rule.target_field,
                    original_value=to_serializable(raw),
                    error_type=e.error_type,
                    error_message=e.message,
                ))

        return outcome

    def run_preview(self, rows: list[SpreadsheetRow], rules: list[FieldRule]) -> PreviewResult:
        """Evaluate preview rows; keep a sample of clean records."""
        collector = ErrorCollector(self.error_sample_limit)
        sample: list[dict[str, Any]] = []
        rows_ok = 0
        rows_failed = 0

        for row in rows:
            outcome = self.evaluate_row(row, rules)
            collector.add(outcome.errors)
            if outcome.failed:
                rows_failed += 1
                continue
            rows_ok += 1
            if len(sample) < self.sample_size:
                sample.append({k: to_serializable(v) for k, v in outcome.record.items()})

        logger.info(
            "preview_evaluated",
            rows=len(rows),
            rows_ok=rows_ok,
            rows_failed=rows_failed,
            total_errors=collector.total_errors
        )

        return PreviewResult(
            sample_rows=sample,
            rows_ok=rows_ok,
            rows_failed=rows_failed,
            error_summary=collector.summary(),
        )

    def run_commit(self, rows: list[SpreadsheetRow], rules: list[FieldRule]) -> list[RowOutcome]:
        """Evaluate every row for persistence."""
        outcomes = [self.evaluate_row(row, rules) for row in rows]
        logger.info(
            "commit_evaluated",
            rows=len(outcomes),
            rows_failed=sum(1 for o in outcomes if o.failed)
        )
        return outcomes

    def new_collector(self) -> ErrorCollector:
        return ErrorCollector(self.error_sample_limit)
