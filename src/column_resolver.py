"""Locate the header row and semantic columns of the reference sheet."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from openpyxl.worksheet.worksheet import Worksheet

from .models import ColumnMap, HeaderLocation
from .utils.exceptions import ConfigurationError
from .utils.normalization import resolve_cell_value

logger = logging.getLogger(__name__)

DEFAULT_HEADER_SCAN_ROWS = 20

DEFAULT_COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "identifier": ["OEM", "OE", "原厂编号", "零件号"],
    "auxiliary_code": ["XX CODE", "XX编码", "公司编号"],
    "application": ["Application", "适用车型", "车型"],
    "year": ["Year", "年份", "年度"],
    "drive": ["Drive", "驱动", "左/右"],
    "price": ["广州", "Price", "价格", "单价"],
}

OPTIONAL_FIELDS = ("auxiliary_code", "application", "year", "drive", "price")


def find_column_index(headers: Optional[Sequence[Any]], names: Sequence[str]) -> int:
    """Return the first zero-based position whose header contains any name.

    Matching is a case-insensitive substring test on the trimmed header text.
    Returns -1 when nothing matches.
    """
    if not headers:
        return -1

    upper_names = [name.upper() for name in names]
    for idx, header in enumerate(headers):
        text = str(resolve_cell_value(header)).strip().upper()
        if not text:
            continue
        if any(name in text for name in upper_names):
            return idx
    return -1


def _row_values(worksheet: Worksheet, row_number: int) -> List[Any]:
    return [
        resolve_cell_value(cell)
        for cell in next(
            worksheet.iter_rows(min_row=row_number, max_row=row_number), ()
        )
    ]


def resolve_columns(
    worksheet: Worksheet,
    candidates: Optional[Dict[str, List[str]]] = None,
    max_header_rows: int = DEFAULT_HEADER_SCAN_ROWS,
) -> HeaderLocation:
    """Find the header row and map each semantic field to its column.

    Only rows ``1..max_header_rows`` are considered. The first row holding an
    identifier-like header wins; the remaining fields are resolved on that
    same row and left as ``None`` when absent.

    Raises:
        ConfigurationError: No identifier column within the scanned rows.
    """
    names = dict(DEFAULT_COLUMN_CANDIDATES)
    if candidates:
        names.update(candidates)

    last_row = min(max_header_rows, worksheet.max_row or 0)
    for row_number in range(1, last_row + 1):
        headers = _row_values(worksheet, row_number)
        identifier_idx = find_column_index(headers, names["identifier"])
        if identifier_idx == -1:
            continue

        resolved = {}
        for field in OPTIONAL_FIELDS:
            idx = find_column_index(headers, names[field])
            resolved[field] = idx if idx != -1 else None

        columns = ColumnMap(identifier=identifier_idx, **resolved)
        logger.info(f"Header row found at row {row_number}: {columns}")
        return HeaderLocation(header_row=row_number, columns=columns)

    raise ConfigurationError(
        "reference sheet missing identifier column: no header matching "
        f"{', '.join(names['identifier'])} in rows 1-{max_header_rows}",
        error_code="MISSING_IDENTIFIER_COLUMN",
    )
