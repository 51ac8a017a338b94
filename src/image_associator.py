"""Map embedded drawings of a worksheet to the row they are anchored to."""

import io
import logging
from typing import Any, Dict, List, Optional

from openpyxl.worksheet.worksheet import Worksheet
from PIL import Image as PILImage

from .models import EmbeddedImage

logger = logging.getLogger(__name__)


def detect_image_format(image_data: bytes, fallback: Optional[str] = None) -> str:
    """Detect image format from binary data, e.g. ``png`` or ``jpeg``."""
    try:
        with io.BytesIO(image_data) as image_stream:
            pil_image = PILImage.open(image_stream)
            if pil_image.format:
                return pil_image.format.lower()
    except Exception as e:
        logger.debug(f"Could not detect image format: {e}")

    return (fallback or "png").lower()


def anchor_row(image: Any) -> Optional[int]:
    """1-based row of the drawing's top-left anchor, ``None`` if uncelled."""
    anchor = getattr(image, "anchor", None)
    marker = getattr(anchor, "_from", None)
    if marker is None:
        return None
    return marker.row + 1


def load_drawings(worksheet: Worksheet) -> List[Dict[str, Any]]:
    """Read the payload of every drawing while the source stream is open.

    openpyxl closes the underlying stream after the first read of an image,
    so payloads are pulled exactly once here. Drawings that cannot be read
    keep a ``None`` payload to preserve enumeration order.
    """
    drawings = []
    for idx, image in enumerate(getattr(worksheet, "_images", [])):
        try:
            data = image._data()
        except Exception as e:
            logger.debug(f"Cannot read image {idx} in sheet {worksheet.title}: {e}")
            data = None

        drawings.append(
            {
                "data": data,
                "format": getattr(image, "format", None),
                "row": anchor_row(image),
            }
        )
    return drawings


def associate_images(
    worksheet: Worksheet, drawings: Optional[List[Dict[str, Any]]] = None
) -> Dict[int, EmbeddedImage]:
    """Build a row number to image mapping for a worksheet.

    When several drawings anchor to the same row the last one in enumeration
    order is kept. Drawings without a payload or without a cell anchor are
    skipped.
    """
    if drawings is None:
        drawings = load_drawings(worksheet)

    image_map: Dict[int, EmbeddedImage] = {}
    for idx, drawing in enumerate(drawings):
        if not drawing.get("data"):
            logger.debug(f"Skipping image {idx}: no media payload")
            continue
        if drawing.get("row") is None:
            logger.debug(f"Skipping image {idx}: not anchored to a cell")
            continue

        image_map[drawing["row"]] = EmbeddedImage(
            data=drawing["data"],
            extension=detect_image_format(drawing["data"], drawing.get("format")),
        )

    logger.info(
        f"Associated {len(image_map)} of {len(drawings)} images in sheet {worksheet.title}"
    )
    return image_map
