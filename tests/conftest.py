"""Shared fixtures: in-memory workbooks and images."""

import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tests.helpers import image_bytes, workbook_bytes  # noqa: E402


@pytest.fixture
def red_png():
    return image_bytes("red")


@pytest.fixture
def blue_png():
    return image_bytes("blue")


@pytest.fixture
def reference_rows():
    """Reference sheet with a title row and the header on row 2."""
    return [
        ["Catalogue"],
        ["XX CODE", "Application", "Year", "OEM", "Drive", "Price", "Picture"],
        ["XX-001", "Model X", "2020", "1234-ABC / 5678DEF", "L", 120.5],
        ["XX-002", "Model Y", "2021", "ZZ-777，A1", "R", 99],
        ["XX-003", "Model Z", "2019", None, "L", 10],
    ]


@pytest.fixture
def reference_file(reference_rows, red_png):
    """Reference workbook bytes with one image anchored on row 3."""
    return workbook_bytes(reference_rows, images=[("G3", red_png)])
