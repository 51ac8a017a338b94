"""Input validation utilities for the OE matcher."""

import re
from pathlib import Path
from typing import Any, Dict, List
from jsonschema import validate, ValidationError as JsonSchemaValidationError

from .exceptions import ValidationError

_STRING_LIST = {"type": "array", "items": {"type": "string", "minLength": 1}}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "version": {"type": "string"},
        "reference": {
            "type": "object",
            "properties": {
                "header_scan_rows": {"type": "integer", "minimum": 1},
                "column_candidates": {
                    "type": "object",
                    "properties": {
                        "identifier": {**_STRING_LIST, "minItems": 1},
                        "auxiliary_code": _STRING_LIST,
                        "application": _STRING_LIST,
                        "year": _STRING_LIST,
                        "drive": _STRING_LIST,
                        "price": _STRING_LIST,
                    },
                    "additionalProperties": False,
                },
            },
        },
        "query": {
            "type": "object",
            "properties": {
                "header_candidates": _STRING_LIST,
                "column_candidates": _STRING_LIST,
            },
        },
        "matching": {
            "type": "object",
            "properties": {"min_token_length": {"type": "integer", "minimum": 1}},
        },
        "labels": {
            "type": "object",
            "properties": {
                "matched": {"type": "string"},
                "no_image": {"type": "string"},
            },
        },
        "export": {
            "type": "object",
            "properties": {
                "sheet_title": {"type": "string", "minLength": 1, "maxLength": 31},
                "headers": {"type": "object"},
                "column_widths": {"type": "object"},
                "header_row_height": {"type": "number", "minimum": 0},
                "row_height": {"type": "number", "minimum": 0},
                "image_box": {
                    "type": "object",
                    "properties": {
                        "width": {"type": "integer", "minimum": 1},
                        "height": {"type": "integer", "minimum": 1},
                    },
                },
                "image_offset_px": {
                    "type": "object",
                    "properties": {
                        "x": {"type": "integer", "minimum": 0},
                        "y": {"type": "integer", "minimum": 0},
                    },
                },
                "header_fill": {"type": "string", "pattern": "^[0-9A-Fa-f]{8}$"},
                "highlight_color": {"type": "string", "pattern": "^[0-9A-Fa-f]{8}$"},
            },
        },
    },
    "required": ["version", "reference"],
}


def validate_json_schema(data: Dict[str, Any], schema: Dict[str, Any]) -> None:
    """Validate data against JSON schema."""
    try:
        validate(instance=data, schema=schema)
    except JsonSchemaValidationError as e:
        raise ValidationError(f"Schema validation failed: {e.message}")


def validate_config_structure(config: Dict[str, Any]) -> None:
    """Validate configuration structure."""
    validate_json_schema(config, CONFIG_SCHEMA)


def validate_file_extension(filename: str, allowed_extensions: List[str]) -> bool:
    """Validate file extension against allowed list."""
    if not filename:
        return False

    extension = Path(filename).suffix.lower().lstrip(".")
    return extension in [ext.lower().lstrip(".") for ext in allowed_extensions]


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe file system usage."""
    if not filename:
        return "unnamed_file"

    sanitized = re.sub(r'[<>:"/\\|?*]', "_", filename)
    sanitized = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", sanitized)
    sanitized = sanitized[:255]

    return sanitized or "unnamed_file"


def ensure_xlsx_filename(filename: str) -> str:
    """Sanitize an output name and make sure it ends in ``.xlsx``."""
    sanitized = sanitize_filename(filename)
    if not sanitized.lower().endswith(".xlsx"):
        sanitized = f"{sanitized}.xlsx"
    return sanitized
