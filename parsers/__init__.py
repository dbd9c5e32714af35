"""
Spreadsheet parsers module.
"""

from parsers.spreadsheet_parser import (
    parse_spreadsheet,
    check_size,
    ParsedSpreadsheet,
    SpreadsheetRow,
)

__all__ = [
    "parse_spreadsheet",
    "check_size",
    "ParsedSpreadsheet",
    "SpreadsheetRow",
]
