"""Identifier normalization and cell value resolution helpers."""

import re
from typing import Any, List

from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.worksheet.formula import ArrayFormula, DataTableFormula

# Whitespace (newlines included) plus ASCII and full-width list delimiters.
SEPARATOR_CHARS = r"\s,;:/|，；、"
SEPARATOR_PATTERN = re.compile(f"[{SEPARATOR_CHARS}]+")
SEPARATOR_SPLIT_PATTERN = re.compile(f"([{SEPARATOR_CHARS}]+)")

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def resolve_cell_value(cell: Any) -> Any:
    """Extract a plain scalar from a cell or a raw cell value.

    Formula cells yield their cached result (workbooks are loaded with
    ``data_only=True``), hyperlink cells their display text, rich text cells
    the concatenated text of their runs. Anything else is returned as-is and
    ``None`` becomes an empty string.
    """
    is_cell = hasattr(cell, "value") and hasattr(cell, "data_type")
    value = cell.value if is_cell else cell

    if value is None:
        if is_cell and getattr(cell, "hyperlink", None) is not None:
            hyperlink = cell.hyperlink
            return hyperlink.display or hyperlink.target or ""
        return ""

    # Formula without a cached result
    if isinstance(value, (ArrayFormula, DataTableFormula)):
        return ""
    if is_cell and cell.data_type == "f":
        return ""

    if isinstance(value, CellRichText):
        return "".join(
            run.text if isinstance(run, TextBlock) else str(run) for run in value
        )

    return value


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(resolve_cell_value(value))


def normalize_token(value: Any) -> str:
    """Canonicalize cell content into a comparable key.

    Keeps ASCII letters and digits only, uppercased. Applying it twice is the
    same as applying it once.
    """
    return _NON_ALPHANUMERIC.sub("", _to_text(value)).upper()


def split_identifier(text: Any, keep_separators: bool = False) -> List[str]:
    """Split free-text identifier content into tokens.

    With ``keep_separators`` the separator runs are returned as segments of
    their own, so joining the result gives back the original text.
    """
    text = _to_text(text)
    if not text:
        return []

    pattern = SEPARATOR_SPLIT_PATTERN if keep_separators else SEPARATOR_PATTERN
    return [part for part in pattern.split(text) if part]


def is_separator(segment: str) -> bool:
    """Check whether a segment consists solely of separator characters."""
    return bool(segment) and SEPARATOR_PATTERN.fullmatch(segment) is not None


def is_empty_cell_value(value: Any) -> bool:
    """Check if cell value should be considered empty."""
    if value is None:
        return True

    if isinstance(value, str):
        return not value.strip()

    if isinstance(value, (int, float)):
        return value != value  # NaN from pandas

    return not bool(value)
