"""High level entry points: match a query file and export the results."""

import logging
import os
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Union

from .excel_exporter import ExcelExporter
from .models import ResultRow
from .query_matcher import match_queries, read_query_rows
from .column_resolver import DEFAULT_HEADER_SCAN_ROWS
from .reference_processor import DEFAULT_MIN_TOKEN_LENGTH, ReferenceProcessor
from .utils.validation import ensure_xlsx_filename

logger = logging.getLogger(__name__)

FileInput = Union[str, BinaryIO]


def process_files(
    reference_file: FileInput,
    query_file: FileInput,
    config: Optional[Dict[str, Any]] = None,
    query_filename: Optional[str] = None,
) -> List[ResultRow]:
    """Match every identifier of the query file against the reference file.

    Args:
        reference_file: Path or binary stream of the reference workbook.
        query_file: Path or binary stream of the query workbook or CSV.
        config: Optional matching configuration (see ``ConfigManager``).
        query_filename: Original name of a streamed query file, used to tell
            CSV uploads from workbooks.

    Returns:
        One result row per non-empty query identifier, in query order.

    Raises:
        ConfigurationError: The reference sheet has no identifier column.
        ExcelProcessingError: Either file cannot be read.
    """
    config = config or {}
    reference_config = config.get("reference", {})
    query_config = config.get("query", {})

    processor = ReferenceProcessor(
        reference_file,
        header_scan_rows=reference_config.get("header_scan_rows", DEFAULT_HEADER_SCAN_ROWS),
        column_candidates=reference_config.get("column_candidates"),
        min_token_length=config.get("matching", {}).get(
            "min_token_length", DEFAULT_MIN_TOKEN_LENGTH
        ),
    )
    try:
        index = processor.build_index()
    finally:
        processor.close()

    query_rows = read_query_rows(query_file, query_filename)
    results = match_queries(
        query_rows,
        index,
        labels=config.get("labels"),
        header_candidates=query_config.get("header_candidates"),
        column_candidates=query_config.get("column_candidates"),
    )
    return results


def export_to_excel(
    results: Sequence[ResultRow],
    output_file_name: Optional[str] = None,
    layout: Optional[Dict[str, Any]] = None,
) -> bytes:
    """Render results to xlsx bytes, also writing them to disk when named."""
    content = ExcelExporter(layout).render(results)

    if output_file_name:
        directory, name = os.path.split(output_file_name)
        output_path = os.path.join(directory, ensure_xlsx_filename(name))
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, "wb") as file:
            file.write(content)
        logger.info(f"Wrote export file: {output_path}")

    return content
