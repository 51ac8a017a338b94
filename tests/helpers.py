"""Workbook and image builders shared by the test modules."""

import io
import re
import zipfile

from openpyxl import Workbook
from openpyxl.drawing.image import Image as ExcelImage
from PIL import Image as PILImage


def image_bytes(color: str = "red", size=(40, 20), fmt: str = "PNG") -> bytes:
    """Solid-colour image encoded in the given format."""
    buffer = io.BytesIO()
    PILImage.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def pixel_color(data: bytes):
    """RGB value of the top-left pixel of an encoded image."""
    with PILImage.open(io.BytesIO(data)) as img:
        return img.convert("RGB").getpixel((0, 0))


def workbook_bytes(rows, images=None, title: str = "Sheet1") -> bytes:
    """Build an xlsx file from rows (starting at row 1) and anchored images.

    ``images`` is a list of ``(cell_reference, image_bytes)`` pairs, added in
    order.
    """
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = title
    for row in rows:
        worksheet.append(list(row))

    for cell_ref, data in images or []:
        excel_img = ExcelImage(io.BytesIO(data))
        excel_img.anchor = cell_ref
        worksheet.add_image(excel_img)

    buffer = io.BytesIO()
    workbook.save(buffer)
    workbook.close()
    return buffer.getvalue()


def with_cached_formula(content: bytes, cell_ref: str, formula: str, cached: str) -> bytes:
    """Replace one cell of the first sheet with a formula carrying a cached result.

    openpyxl never writes cached values, so the cell XML is patched directly,
    the way a workbook saved by Excel would store it.
    """
    sheet_path = "xl/worksheets/sheet1.xml"
    source = zipfile.ZipFile(io.BytesIO(content))
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as target:
        for item in source.infolist():
            data = source.read(item.filename)
            if item.filename == sheet_path:
                cell_xml = f'<c r="{cell_ref}" t="str"><f>{formula}</f><v>{cached}</v></c>'
                data, count = re.subn(
                    rf'<c r="{cell_ref}"[^>]*?(?:/>|>.*?</c>)',
                    cell_xml,
                    data.decode("utf-8"),
                    flags=re.DOTALL,
                )
                assert count == 1, f"cell {cell_ref} not found in {sheet_path}"
                data = data.encode("utf-8")
            target.writestr(item, data)
    source.close()
    return buffer.getvalue()
