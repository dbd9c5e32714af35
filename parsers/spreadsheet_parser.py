"""
Spreadsheet tabulator for order imports.

Turns uploaded bytes into a header row plus data rows keyed by header.
Only the first sheet is read. Noise rows (section separators, footers
with a label in the first column only) are dropped before anything
downstream sees them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Optional
import math
import re
import structlog

import pandas as pd

from config import settings
from exceptions import SizeLimitError, SpreadsheetParseError
from utils.text_utils import clean_header, is_blank

logger = structlog.get_logger(__name__)

EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}
CSV_EXTENSIONS = {".csv"}
SUPPORTED_EXTENSIONS = EXCEL_EXTENSIONS | CSV_EXTENSIONS

CSV_ENCODINGS = ("utf-8-sig", "cp1251")
CSV_SEPARATORS = (",", ";", "\t")
_QUOTED = re.compile(r"\"[^\"]*\"")


@dataclass
class SpreadsheetRow:
    """Data row with its position in the file (header is row 1)."""
    row_number: int
    values: dict[str, Any]

    def get(self, header: str) -> Any:
        return self.values.get(header)


@dataclass
class ParsedSpreadsheet:
    """Result of tabulating a file."""
    fields: list[str]
    rows: list[SpreadsheetRow] = field(default_factory=list)
    preview_limit: int = 100
    dropped_rows: int = 0

    @property
    def total_rows(self) -> int:
        """Rows after noise filtering, before the preview cap."""
        return len(self.rows)

    @property
    def preview(self) -> list[SpreadsheetRow]:
        return self.rows[:self.preview_limit]

    @property
    def preview_rows(self) -> int:
        return len(self.preview)

    def to_preview_dict(self) -> dict:
        """Convert to the preview payload shown while authoring templates."""
        return {
            "fields": self.fields,
            "rows": [row.values for row in self.preview],
            "total_rows": self.total_rows,
            "preview_rows": self.preview_rows,
        }


# ===================
# VALIDATION
# ===================

def check_size(content: bytes, max_size_bytes: Optional[int] = None) -> None:
    """
    Reject files above the upload cap.

    Raises:
        SizeLimitError: If content is larger than the cap
    """
    limit = max_size_bytes if max_size_bytes is not None else settings.max_upload_size_bytes
    if len(content) > limit:
        logger.warning("spreadsheet_too_large", size=len(content), limit=limit)
        raise SizeLimitError(len(content), limit)


def is_noise_row(values: list[Any]) -> bool:
    """
    True if a row carries nothing past its first column.

    Single-column files keep every row that has a value.
    """
    if len(values) <= 1:
        return all(is_blank(v) for v in values)
    return all(is_blank(v) for v in values[1:])


# ===================
# LOADING
# ===================

def _load_excel(content: bytes) -> pd.DataFrame:
    return pd.read_excel(
        BytesIO(content),
        sheet_name=0,
        header=None,
        dtype=object,
        engine="openpyxl",
    )


def _detect_separator(text: str) -> str:
    """Pick the candidate separator used most in the header line."""
    header_line = next((line for line in text.splitlines() if line.strip()), "")
    header_line = _QUOTED.sub("", header_line)
    best = max(CSV_SEPARATORS, key=header_line.count)
    return best if header_line.count(best) else CSV_SEPARATORS[0]


def _load_csv(content: bytes) -> pd.DataFrame:
    """
    Load CSV, trying known encodings.

    The separator is taken from the header line so that a row with extra
    fields is reported instead of collapsing the file into one column.
    """
    last_error: Optional[Exception] = None

    for enc in CSV_ENCODINGS:
        try:
            text = content.decode(enc)
        except UnicodeDecodeError as e:
            last_error = e
            continue

        sep = _detect_separator(text)
        try:
            df = pd.read_csv(
                StringIO(text),
                sep=sep,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
        except pd.errors.ParserError as e:
            logger.warning("csv_rows_misaligned", encoding=enc, separator=sep, error=str(e))
            raise SpreadsheetParseError(
                message="CSV rows do not line up with the header row",
                details={"separator": sep, "original_error": str(e)}
            ) from e

        logger.debug("csv_loaded", encoding=enc, separator=sep, columns=len(df.columns))
        return df

    raise SpreadsheetParseError(
        message="Could not read CSV file",
        details={"original_error": str(last_error) if last_error else None}
    )


def _normalize_cell(value: Any) -> Any:
    """Map pandas/openpyxl cell values to plain Python values."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        return value
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()  # numpy scalar
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, str):
        return value if value.strip() else None
    return value


def _dedupe_headers(headers: list[str]) -> list[str]:
    """Suffix repeated headers with .1, .2 and so on, skipping names already taken."""
    taken = set(headers)
    counters: dict[str, int] = {}
    result = []
    for header in headers:
        if header not in counters:
            counters[header] = 0
            result.append(header)
            continue
        suffix = counters[header]
        while True:
            suffix += 1
            candidate = f"{header}.{suffix}"
            if candidate not in taken:
                break
        counters[header] = suffix
        taken.add(candidate)
        result.append(candidate)
    return result


# ===================
# PUBLIC API
# ===================

def parse_spreadsheet(
    content: bytes,
    file_name: str,
    max_size_bytes: Optional[int] = None,
    preview_limit: Optional[int] = None,
) -> ParsedSpreadsheet:
    """
    Tabulate a spreadsheet.

    Args:
        content: Raw file bytes
        file_name: Original name, used to pick the reader
        max_size_bytes: Override for the upload cap
        preview_limit: Override for the preview row cap

    Returns:
        ParsedSpreadsheet with headers, filtered rows and counts

    Raises:
        SizeLimitError: If the file is over the cap (checked before parsing)
        SpreadsheetParseError: If the file is not a readable table
    """
    check_size(content, max_size_bytes)

    extension = Path(file_name or "").suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise SpreadsheetParseError(
            message=f"Unsupported file type: {extension or 'none'}",
            details={"file_name": file_name, "supported": sorted(SUPPORTED_EXTENSIONS)}
        )

    logger.info("parsing_spreadsheet", file_name=file_name, size=len(content))

    try:
        if extension in EXCEL_EXTENSIONS:
            df = _load_excel(content)
        else:
            df = _load_csv(content)
    except SpreadsheetParseError:
        raise
    except Exception as e:
        logger.error("spreadsheet_read_failed", file_name=file_name, error=str(e))
        raise SpreadsheetParseError(
            message="File is not a readable spreadsheet",
            details={"file_name": file_name, "original_error": str(e)}
        ) from e

    if df.empty:
        raise SpreadsheetParseError(
            message="Spreadsheet is empty",
            details={"file_name": file_name}
        )

    raw_headers = [_normalize_cell(v) for v in df.iloc[0].tolist()]
    headers = _dedupe_headers([clean_header(v, i) for i, v in enumerate(raw_headers)])

    rows: list[SpreadsheetRow] = []
    dropped = 0
    for position, raw in enumerate(df.iloc[1:].itertuples(index=False, name=None)):
        values = [_normalize_cell(v) for v in raw]
        if is_noise_row(values):
            dropped += 1
            continue
        rows.append(SpreadsheetRow(
            row_number=position + 2,
            values=dict(zip(headers, values)),
        ))

    result = ParsedSpreadsheet(
        fields=headers,
        rows=rows,
        preview_limit=preview_limit if preview_limit is not None else settings.preview_row_limit,
        dropped_rows=dropped,
    )

    logger.info(
        "spreadsheet_parsed",
        file_name=file_name,
        columns=len(headers),
        total_rows=result.total_rows,
        dropped_rows=dropped
    )

    return result
