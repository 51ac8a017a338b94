"""Domain models shared by the reference index, matcher and exporter."""

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

IMAGE_MIME_TYPES = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "webp": "image/webp",
}


@dataclass(frozen=True)
class EmbeddedImage:
    """Raw image payload lifted from a reference sheet drawing."""

    data: bytes
    extension: str

    @property
    def mime_type(self) -> str:
        return IMAGE_MIME_TYPES.get(self.extension.lower(), "image/png")

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("utf-8")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class ColumnMap:
    """Zero-based column positions of the semantic fields in a header row.

    Only ``identifier`` is guaranteed; the other fields are ``None`` when no
    header cell matched them.
    """

    identifier: int
    auxiliary_code: Optional[int] = None
    application: Optional[int] = None
    year: Optional[int] = None
    drive: Optional[int] = None
    price: Optional[int] = None


@dataclass(frozen=True)
class HeaderLocation:
    """1-based header row number plus the columns resolved on it."""

    header_row: int
    columns: ColumnMap


@dataclass(frozen=True)
class ReferenceRecord:
    """Metadata extracted from one reference row."""

    auxiliary_code: str
    application: str
    year: str
    identifier_text: str
    drive: str
    price: Any = None
    image: Optional[EmbeddedImage] = None
    row_number: Optional[int] = None


@dataclass(frozen=True)
class ResultRow:
    """One output row per query identifier, matched or not."""

    input_identifier: str
    auxiliary_code: Optional[str] = None
    application: Optional[str] = None
    year: Optional[str] = None
    matched_identifier: Optional[str] = None
    drive: Optional[str] = None
    image_label: Optional[str] = None
    image: Optional[EmbeddedImage] = None
    price: Any = None

    @property
    def is_match(self) -> bool:
        return self.matched_identifier is not None

    def to_dict(self, include_image_data: bool = False) -> Dict[str, Any]:
        """JSON-friendly view of the row; image bytes become a data URI."""
        result = {
            "input_identifier": self.input_identifier,
            "auxiliary_code": self.auxiliary_code,
            "application": self.application,
            "year": self.year,
            "matched_identifier": self.matched_identifier,
            "drive": self.drive,
            "image_label": self.image_label,
            "price": self.price,
        }
        if include_image_data:
            result["image"] = self.image.to_data_uri() if self.image else None
        return result


@dataclass(frozen=True)
class RichTextRun:
    """Segment of a rich text cell; highlighted runs mark the matched token."""

    text: str
    highlighted: bool = False
