"""
Date format handling for EXTRACT_DATE / EXTRACT_DATETIME rules.

Templates declare formats with display tokens ("DD.MM.YYYY HH:mm:ss")
because that is what users see in the editor. These are translated to
strptime directives. Formats that already contain "%" are used as-is.
"""

import re
from datetime import date, datetime
from functools import lru_cache
from typing import Optional

import pandas as pd

_TOKEN = re.compile(r"YYYY|YY|MM|M|DD|D|HH|H|hh|h|mm|m|ss|s|A")

_TOKEN_TO_DIRECTIVE = {
    "YYYY": "%Y",
    "YY": "%y",
    "MM": "%m",
    "M": "%m",
    "DD": "%d",
    "D": "%d",
    "HH": "%H",
    "H": "%H",
    "hh": "%I",
    "h": "%I",
    "mm": "%M",
    "m": "%M",
    "ss": "%S",
    "s": "%S",
    "A": "%p",
}

_DIRECTIVE_PATTERN = {
    "%Y": r"\d{4}",
    "%y": r"\d{2}",
    "%m": r"\d{1,2}",
    "%d": r"\d{1,2}",
    "%H": r"\d{1,2}",
    "%I": r"\d{1,2}",
    "%M": r"\d{1,2}",
    "%S": r"\d{1,2}",
    "%f": r"\d{1,6}",
    "%p": r"[AaPp][Mm]",
    "%b": r"[^\W\d_]+",
    "%B": r"[^\W\d_]+",
    "%%": "%",
}

# Formats seen in CRM and 1C exports, most specific first
DEFAULT_FORMATS: tuple[str, ...] = (
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y.%m.%d %H.%M.%S",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y",
)


@lru_cache(maxsize=256)
def to_strptime(fmt: str) -> str:
    """
    Translate a display-token format into a strptime format.

    >>> to_strptime("DD.MM.YYYY H:mm:ss")
    '%d.%m.%Y %H:%M:%S'
    """
    if "%" in fmt:
        return fmt

    parts = []
    position = 0
    for match in _TOKEN.finditer(fmt):
        parts.append(fmt[position:match.start()])
        parts.append(_TOKEN_TO_DIRECTIVE[match.group(0)])
        position = match.end()
    parts.append(fmt[position:])
    return "".join(parts)


@lru_cache(maxsize=256)
def _search_pattern(strptime_fmt: str) -> re.Pattern:
    """Regex that finds a substring shaped like strptime_fmt."""
    pieces = []
    i = 0
    while i < len(strptime_fmt):
        if strptime_fmt[i] == "%" and i + 1 < len(strptime_fmt):
            directive = strptime_fmt[i:i + 2]
            pieces.append(_DIRECTIVE_PATTERN.get(directive, r".+?"))
            i += 2
        elif strptime_fmt[i].isspace():
            pieces.append(r"\s+")
            i += 1
        else:
            pieces.append(re.escape(strptime_fmt[i]))
            i += 1
    return re.compile(r"(?<!\d)" + "".join(pieces) + r"(?!\d)")


def _parse_exact(text: str, strptime_fmt: str) -> Optional[datetime]:
    try:
        return datetime.strptime(text, strptime_fmt)
    except ValueError:
        return None


def _parse_embedded(text: str, strptime_fmt: str) -> Optional[datetime]:
    for match in _search_pattern(strptime_fmt).finditer(text):
        candidate = re.sub(r"\s+", " ", match.group(0))
        parsed = _parse_exact(candidate, re.sub(r"\s+", " ", strptime_fmt))
        if parsed is not None:
            return parsed
    return None


def parse_datetime(value: object, fmt: Optional[str] = None) -> Optional[datetime]:
    """
    Parse a cell value into a datetime.

    Tries the whole value first, then the first embedded substring that
    matches the format ("Заказ от 01.02.2024 10:00:00"). Without a format
    the common export formats are tried, then whatever pandas recognizes
    (ISO-8601, "15 Mar 2024" and the like).

    Returns:
        datetime, or None if nothing matched
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if value is None:
        return None

    text = str(value).strip()
    if not text:
        return None

    formats = (to_strptime(fmt),) if fmt else DEFAULT_FORMATS

    for candidate in formats:
        parsed = _parse_exact(text, candidate)
        if parsed is not None:
            return parsed

    for candidate in formats:
        parsed = _parse_embedded(text, candidate)
        if parsed is not None:
            return parsed

    if fmt:
        return None

    # bare counts and serials are not dates
    if text.isdigit() and len(text) < 8:
        return None
    try:
        parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()
