"""Read query identifiers and match them against the reference index."""

import io
import logging
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Union

import pandas as pd

from .column_resolver import find_column_index
from .models import ResultRow
from .reference_processor import ReferenceIndex
from .utils.exceptions import ExcelProcessingError
from .utils.normalization import is_empty_cell_value, normalize_token

logger = logging.getLogger(__name__)

QUERY_HEADER_CANDIDATES = ["OE", "OEM", "零件"]
QUERY_COLUMN_CANDIDATES = ["OE", "OEM", "查询", "输入"]

DEFAULT_LABELS = {"matched": "matched", "no_image": "no image"}


def _clean_query_cell(value: Any) -> Any:
    if is_empty_cell_value(value) and not isinstance(value, str):
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def read_query_rows(
    file_input: Union[str, BinaryIO], filename: Optional[str] = None
) -> List[List[Any]]:
    """Read the first sheet of a query file as raw rows.

    No header inference happens here; row 1 comes back as data so the matcher
    can decide whether it is a header.
    """
    name = filename or (file_input if isinstance(file_input, str) else "")
    is_csv = Path(str(name)).suffix.lower() == ".csv"

    try:
        source = file_input
        if not isinstance(file_input, str):
            if hasattr(file_input, "seek"):
                file_input.seek(0)
            source = io.BytesIO(file_input.read())

        if is_csv:
            frame = pd.read_csv(source, header=None, dtype=object, skip_blank_lines=False)
        else:
            frame = pd.read_excel(source, sheet_name=0, header=None, dtype=object)
    except Exception as e:
        raise ExcelProcessingError(f"Invalid query file format: {e}")

    rows = [[_clean_query_cell(value) for value in row] for row in frame.itertuples(index=False)]
    logger.info(f"Read {len(rows)} rows from query file")
    return rows


def detect_query_layout(
    query_rows: Sequence[Sequence[Any]],
    header_candidates: Optional[List[str]] = None,
    column_candidates: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Decide whether row 1 is a header and which column holds identifiers."""
    if not query_rows:
        return {"has_header": False, "column": 0}

    first_row = query_rows[0]
    has_header = (
        find_column_index(first_row, header_candidates or QUERY_HEADER_CANDIDATES) != -1
    )
    column = find_column_index(first_row, column_candidates or QUERY_COLUMN_CANDIDATES)
    if column == -1:
        logger.debug("No identifier header in query row 1, reading column 0")
        column = 0
    return {"has_header": has_header, "column": column}


def match_queries(
    query_rows: Sequence[Sequence[Any]],
    index: ReferenceIndex,
    labels: Optional[Dict[str, str]] = None,
    header_candidates: Optional[List[str]] = None,
    column_candidates: Optional[List[str]] = None,
) -> List[ResultRow]:
    """Produce one result per non-empty query identifier, in input order."""
    labels = {**DEFAULT_LABELS, **(labels or {})}
    layout = detect_query_layout(query_rows, header_candidates, column_candidates)
    column = layout["column"]
    start = 1 if layout["has_header"] else 0

    results: List[ResultRow] = []
    matched = 0
    skipped = 0
    for row in query_rows[start:]:
        value = row[column] if row and column < len(row) else None
        input_identifier = "" if value is None else str(value).strip()
        if not input_identifier:
            if any(not is_empty_cell_value(cell) for cell in row or []):
                skipped += 1
            continue

        record = index.get(normalize_token(input_identifier))
        if record is None:
            results.append(ResultRow(input_identifier=input_identifier))
            continue

        matched += 1
        results.append(
            ResultRow(
                input_identifier=input_identifier,
                auxiliary_code=record.auxiliary_code,
                application=record.application,
                year=record.year,
                matched_identifier=record.identifier_text,
                drive=record.drive,
                image_label=labels["matched"] if record.image else labels["no_image"],
                image=record.image,
                price=record.price,
            )
        )

    if skipped:
        logger.warning(
            f"Skipped {skipped} query rows with an empty identifier in column {column}"
        )
    logger.info(f"Matched {matched} of {len(results)} query identifiers")
    return results
