"""Reference workbook loading and identifier index construction."""

import io
import logging
import os
from typing import Any, BinaryIO, Dict, List, Optional, Union

from openpyxl import load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from .column_resolver import DEFAULT_HEADER_SCAN_ROWS, resolve_columns
from .image_associator import associate_images, load_drawings
from .models import ColumnMap, EmbeddedImage, ReferenceRecord
from .utils.exceptions import ExcelProcessingError
from .utils.normalization import normalize_token, resolve_cell_value, split_identifier

logger = logging.getLogger(__name__)

DEFAULT_MIN_TOKEN_LENGTH = 3

ReferenceIndex = Dict[str, ReferenceRecord]


def _column_text(row: tuple, idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    value = resolve_cell_value(row[idx])
    return str(value) if value not in (None, "") else ""


def _column_value(row: tuple, idx: Optional[int]) -> Any:
    if idx is None:
        return None
    if idx >= len(row):
        return ""
    return resolve_cell_value(row[idx])


def build_reference_index(
    worksheet: Worksheet,
    header_row: int,
    columns: ColumnMap,
    image_map: Dict[int, EmbeddedImage],
    min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH,
) -> ReferenceIndex:
    """Index every data row below the header by its identifier tokens.

    All tokens of one row map to the same record object. Tokens shorter than
    ``min_token_length`` after normalization are dropped. A token seen again
    on a later row replaces the earlier entry.
    """
    index: ReferenceIndex = {}
    rows_indexed = 0

    for row in worksheet.iter_rows(min_row=header_row + 1):
        if columns.identifier >= len(row):
            continue

        identifier_cell = row[columns.identifier]
        raw_identifier = resolve_cell_value(identifier_cell)
        if raw_identifier in (None, ""):
            continue

        row_number = identifier_cell.row
        tokens = [normalize_token(token) for token in split_identifier(raw_identifier)]
        tokens = [token for token in tokens if len(token) >= min_token_length]
        if not tokens:
            continue

        record = ReferenceRecord(
            auxiliary_code=_column_text(row, columns.auxiliary_code),
            application=_column_text(row, columns.application),
            year=_column_text(row, columns.year),
            identifier_text=str(raw_identifier),
            drive=_column_text(row, columns.drive),
            price=_column_value(row, columns.price),
            image=image_map.get(row_number),
            row_number=row_number,
        )

        for token in tokens:
            if token in index:
                logger.debug(
                    f"Token {token} from row {row_number} replaces row {index[token].row_number}"
                )
            index[token] = record
        rows_indexed += 1

    logger.info(f"Indexed {len(index)} identifier tokens from {rows_indexed} rows")
    return index


class ReferenceProcessor:
    """Loads a reference workbook and builds its identifier index."""

    def __init__(
        self,
        file_input: Union[str, BinaryIO],
        header_scan_rows: int = DEFAULT_HEADER_SCAN_ROWS,
        column_candidates: Optional[Dict[str, List[str]]] = None,
        min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH,
    ) -> None:
        """Initialize with a file path or file-like object."""
        self.file_input = file_input
        self.header_scan_rows = header_scan_rows
        self.column_candidates = column_candidates
        self.min_token_length = min_token_length
        self.workbook = None
        self._drawings: List[Dict[str, Any]] = []

        if isinstance(file_input, str):
            self._load_from_path(file_input)
        else:
            self._load_from_memory()

    def _load_from_path(self, file_path: str) -> None:
        if not os.path.exists(file_path):
            raise ExcelProcessingError(f"Reference file not found: {file_path}")

        try:
            self.workbook = load_workbook(file_path, data_only=True, rich_text=True)
        except Exception as e:
            raise ExcelProcessingError(f"Invalid reference file format: {e}")

        logger.info(f"Loaded reference file: {file_path}")
        self._drawings = load_drawings(self.worksheet)

    def _load_from_memory(self) -> None:
        try:
            if hasattr(self.file_input, "seek"):
                self.file_input.seek(0)
            memory_file = io.BytesIO(self.file_input.read())
            self.workbook = load_workbook(memory_file, data_only=True, rich_text=True)
        except Exception as e:
            raise ExcelProcessingError(f"Invalid reference file format from memory: {e}")

        logger.info("Loaded reference file from memory")
        self._drawings = load_drawings(self.worksheet)

    @property
    def worksheet(self) -> Worksheet:
        """First worksheet of the workbook; other sheets are ignored."""
        if not self.workbook:
            raise ExcelProcessingError("Reference workbook is closed")
        return self.workbook.worksheets[0]

    def build_index(self) -> ReferenceIndex:
        """Resolve columns, attach images and index the reference rows.

        Raises:
            ConfigurationError: The sheet has no identifier column.
        """
        worksheet = self.worksheet
        location = resolve_columns(
            worksheet, self.column_candidates, self.header_scan_rows
        )
        image_map = associate_images(worksheet, self._drawings)
        return build_reference_index(
            worksheet,
            location.header_row,
            location.columns,
            image_map,
            self.min_token_length,
        )

    def close(self) -> None:
        """Close the workbook and free resources."""
        if self.workbook:
            self.workbook.close()
            self.workbook = None
        self._drawings = []
