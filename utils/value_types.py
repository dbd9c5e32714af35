"""
Conversion of normalized values into target field types.

Spreadsheet exports write numbers as "1 200,50" and dates as text, so
conversion is lenient about separators but strict about the result.
"""

from datetime import date, datetime
from decimal import Decimal
import re
from typing import Any

from config.field_catalog import FieldType
from utils.date_formats import parse_datetime

_THOUSANDS_GROUPED = re.compile(r"^[+-]?\d{1,3}(,\d{3})+$")

_SPACES = (" ", " ", " ")


def _compact(text: str) -> str:
    for space in _SPACES:
        text = text.replace(space, "")
    return text


def to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        if value != int(value):
            raise ValueError(f"{value} is not a whole number")
        return int(value)

    # "1,000" groups thousands; any other comma is a decimal separator
    text = _compact(str(value))
    if _THOUSANDS_GROUPED.match(text):
        text = text.replace(",", "")
    else:
        text = text.replace(",", ".")
    if not text:
        raise ValueError("empty value")
    try:
        return int(text)
    except ValueError:
        number = float(text)
        if not number.is_integer():
            raise ValueError(f"{value} is not a whole number")
        return int(number)


def to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float, Decimal)):
        return float(value)

    text = _compact(str(value)).replace(",", ".")
    if not text:
        raise ValueError("empty value")
    return float(text)


def to_datetime(value: Any) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"{value!r} is not a recognizable date")
    return parsed


def to_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return to_datetime(value).date()


def to_string(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


_CONVERTERS = {
    FieldType.STRING: to_string,
    FieldType.INTEGER: to_integer,
    FieldType.FLOAT: to_float,
    FieldType.DATE: to_date,
    FieldType.DATETIME: to_datetime,
}


def coerce_value(value: Any, field_type: FieldType) -> Any:
    """
    Convert a normalized value to the field's type.

    Raises:
        ValueError: If the value cannot represent the type
    """
    if value is None:
        return None
    return _CONVERTERS[field_type](value)


def to_serializable(value: Any) -> Any:
    """Make a value safe for JSON payloads (session summaries, inserts)."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value
