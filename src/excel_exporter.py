"""Render match results into a new workbook with embedded images."""

import io
import logging
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.cell.text import InlineFont
from openpyxl.drawing.image import Image as ExcelImage
from openpyxl.drawing.spreadsheet_drawing import AnchorMarker, OneCellAnchor
from openpyxl.drawing.xdr import XDRPositiveSize2D
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.styles.colors import Color
from openpyxl.utils import get_column_letter
from openpyxl.utils.units import pixels_to_EMU
from openpyxl.worksheet.worksheet import Worksheet
from PIL import Image as PILImage

from .models import ResultRow, RichTextRun
from .utils.exceptions import ExcelProcessingError
from .utils.normalization import is_separator, normalize_token, split_identifier

logger = logging.getLogger(__name__)

# Output column keys, in sheet order.
COLUMN_KEYS = [
    "input_identifier",
    "auxiliary_code",
    "application",
    "year",
    "matched_identifier",
    "drive",
    "image",
    "price",
]

# Formats openpyxl stores without conversion.
NATIVE_IMAGE_FORMATS = ("png", "jpeg", "jpg", "gif")

# Geometry at 96 DPI: an 81 px tall image fills a 61 pt row, and a width 34
# column is about 251 px, leaving (251 - 227) / 2 = 12 px on either side.
DEFAULT_LAYOUT: Dict[str, Any] = {
    "sheet_title": "Match Results",
    "headers": {
        "input_identifier": "Input OE",
        "auxiliary_code": "XX Code",
        "application": "Application",
        "year": "Year",
        "matched_identifier": "OEM",
        "drive": "Drive",
        "image": "Picture",
        "price": "Price",
    },
    "column_widths": {
        "default": 15,
        "application": 35,
        "matched_identifier": 35,
        "image": 34,
    },
    "header_row_height": 25,
    "row_height": 61,
    "image_box": {"width": 227, "height": 81},
    "image_offset_px": {"x": 12, "y": 0},
    "header_fill": "FFF1F5F9",
    "highlight_color": "FFFF0000",
}


def build_rich_text_runs(matched_text: str, input_identifier: str) -> List[RichTextRun]:
    """Split matched identifier text into plain and highlighted runs.

    Separators stay as plain runs of their own; a token is highlighted when
    its normalized form equals the normalized input identifier.
    """
    target = normalize_token(input_identifier)
    runs = []
    for segment in split_identifier(matched_text, keep_separators=True):
        if is_separator(segment):
            runs.append(RichTextRun(segment))
        else:
            runs.append(RichTextRun(segment, highlighted=normalize_token(segment) == target))
    return runs


class ExcelExporter:
    """Writes result rows to an xlsx workbook."""

    def __init__(self, layout: Optional[Dict[str, Any]] = None) -> None:
        self.layout = {**DEFAULT_LAYOUT, **(layout or {})}
        for key in ("headers", "column_widths", "image_box", "image_offset_px"):
            self.layout[key] = {**DEFAULT_LAYOUT[key], **self.layout.get(key, {})}

        self.embedded_images = 0
        self.failed_images = 0

    def render(self, results: Sequence[ResultRow]) -> bytes:
        """Render results and return the workbook as xlsx bytes."""
        self.embedded_images = 0
        self.failed_images = 0

        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.layout["sheet_title"]

        self._write_header(worksheet)
        for idx, result in enumerate(results):
            self._write_row(worksheet, idx + 2, result)

        try:
            buffer = io.BytesIO()
            workbook.save(buffer)
        except Exception as e:
            raise ExcelProcessingError(f"Failed to write export workbook: {e}")
        finally:
            workbook.close()

        logger.info(
            f"Exported {len(results)} rows with {self.embedded_images} images "
            f"({self.failed_images} failed)"
        )
        return buffer.getvalue()

    def _write_header(self, worksheet: Worksheet) -> None:
        widths = self.layout["column_widths"]
        fill = PatternFill(
            fill_type="solid",
            start_color=self.layout["header_fill"],
            end_color=self.layout["header_fill"],
        )

        for col_idx, key in enumerate(COLUMN_KEYS, start=1):
            cell = worksheet.cell(row=1, column=col_idx, value=self.layout["headers"][key])
            cell.font = Font(bold=True)
            cell.fill = fill
            cell.alignment = Alignment(horizontal="center", vertical="center")
            worksheet.column_dimensions[get_column_letter(col_idx)].width = widths.get(
                key, widths["default"]
            )

        worksheet.row_dimensions[1].height = self.layout["header_row_height"]

    def _write_row(self, worksheet: Worksheet, row_number: int, result: ResultRow) -> None:
        worksheet.row_dimensions[row_number].height = self.layout["row_height"]
        centered = Alignment(horizontal="center", vertical="center")

        for col_idx, key in enumerate(COLUMN_KEYS, start=1):
            cell = worksheet.cell(row=row_number, column=col_idx)
            cell.alignment = centered

            if key == "image":
                if result.image is not None:
                    self._embed_image(worksheet, row_number, col_idx, result)
                    cell.value = None
                else:
                    cell.value = result.image_label
            elif key == "matched_identifier":
                cell.alignment = Alignment(
                    horizontal="center", vertical="center", wrap_text=True
                )
                cell.value = self._matched_identifier_value(result)
            else:
                cell.value = getattr(result, key)

            # Result text is written literally, never as a formula.
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"

    def _matched_identifier_value(self, result: ResultRow) -> Any:
        if not result.matched_identifier or not result.input_identifier:
            return result.matched_identifier

        highlight = InlineFont(b=True, color=Color(rgb=self.layout["highlight_color"]))
        blocks = []
        for run in build_rich_text_runs(result.matched_identifier, result.input_identifier):
            blocks.append(TextBlock(highlight, run.text) if run.highlighted else run.text)
        return CellRichText(blocks)

    def _prepare_image_data(self, result: ResultRow) -> bytes:
        """Image bytes in a format the workbook can store, converting to PNG."""
        if result.image.extension.lower() in NATIVE_IMAGE_FORMATS:
            return result.image.data

        with PILImage.open(io.BytesIO(result.image.data)) as pil_img:
            buffer = io.BytesIO()
            pil_img.save(buffer, format="PNG")
        return buffer.getvalue()

    def _embed_image(
        self, worksheet: Worksheet, row_number: int, col_idx: int, result: ResultRow
    ) -> None:
        """Anchor the result image inside its cell; failures only drop the image."""
        box = self.layout["image_box"]
        offset = self.layout["image_offset_px"]
        try:
            excel_img = ExcelImage(io.BytesIO(self._prepare_image_data(result)))
            excel_img.width = box["width"]
            excel_img.height = box["height"]

            marker = AnchorMarker(
                col=col_idx - 1,
                colOff=pixels_to_EMU(offset["x"]),
                row=row_number - 1,
                rowOff=pixels_to_EMU(offset["y"]),
            )
            size = XDRPositiveSize2D(
                pixels_to_EMU(box["width"]), pixels_to_EMU(box["height"])
            )
            excel_img.anchor = OneCellAnchor(_from=marker, ext=size)
            worksheet.add_image(excel_img)
            self.embedded_images += 1
        except Exception as e:
            self.failed_images += 1
            logger.warning(
                f"Could not embed image for {result.input_identifier} at row {row_number}: {e}"
            )
