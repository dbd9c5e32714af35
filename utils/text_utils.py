"""
Text utilities for spreadsheet headers and cell values.

Headers exported by 1C, Excel and Google Sheets differ in case,
spacing and the occasional accented or ё/е spelling; comparison
goes through normalize_header.
"""

import re
import unicodedata
from typing import Any, Optional

_WHITESPACE = re.compile(r"\s+")


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty or whitespace-only."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def normalize_header(name: Optional[str]) -> Optional[str]:
    """
    Normalize a column header for comparison.

    - "  Дата  Заказа " → "дата заказа"
    - "Ёмкость" → "емкость"
    - "Décor" → "decor"

    Args:
        name: Header text as it appears in the file or template

    Returns:
        Lowercase, accent-free string with single spaces, or None if empty
    """
    if not name:
        return None

    name = _WHITESPACE.sub(" ", str(name)).strip()
    if not name:
        return None

    # NFD splits base letters from combining marks (accents, breves)
    normalized = unicodedata.normalize("NFD", name)
    stripped = "".join(
        c for c in normalized
        if unicodedata.category(c) != "Mn"
    )
    return stripped.casefold()


def clean_header(value: Any, position: int) -> str:
    """
    Header text for storage and display.

    Blank header cells get a positional name so every column stays
    addressable by a template rule.
    """
    if is_blank(value):
        return f"column_{position + 1}"
    return _WHITESPACE.sub(" ", str(value)).strip()
