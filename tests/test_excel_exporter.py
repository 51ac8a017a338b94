"""Tests for the export renderer."""

import io

import pytest
from openpyxl import load_workbook
from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.utils.units import pixels_to_EMU

from src.excel_exporter import ExcelExporter, build_rich_text_runs
from src.models import EmbeddedImage, ResultRow, RichTextRun
from tests.helpers import image_bytes


def _load(content):
    workbook = load_workbook(io.BytesIO(content), rich_text=True)
    return workbook.worksheets[0]


@pytest.fixture
def matched_row(red_png):
    return ResultRow(
        input_identifier="1234abc",
        auxiliary_code="XX-001",
        application="Model X",
        year="2020",
        matched_identifier="1234-ABC / 5678DEF",
        drive="L",
        image_label="matched",
        image=EmbeddedImage(red_png, "png"),
        price=120.5,
    )


class TestBuildRichTextRuns:
    """Test cases for build_rich_text_runs."""

    def test_highlights_only_matching_token(self):
        runs = build_rich_text_runs("1234-ABC / 5678DEF", "1234abc")

        assert runs == [
            RichTextRun("1234-ABC", highlighted=True),
            RichTextRun(" / "),
            RichTextRun("5678DEF"),
        ]

    def test_no_matching_token(self):
        runs = build_rich_text_runs("AAA111，BBB222", "CCC333")

        assert [run.highlighted for run in runs] == [False, False, False]
        assert "".join(run.text for run in runs) == "AAA111，BBB222"

    def test_every_equal_token_is_highlighted(self):
        runs = build_rich_text_runs("X-100 X100", "x100")
        assert [run.highlighted for run in runs] == [True, False, True]


class TestExcelExporter:
    """Test cases for ExcelExporter."""

    def test_header_layout(self, matched_row):
        worksheet = _load(ExcelExporter().render([matched_row]))

        headers = [cell.value for cell in worksheet[1]]
        assert headers == [
            "Input OE",
            "XX Code",
            "Application",
            "Year",
            "OEM",
            "Drive",
            "Picture",
            "Price",
        ]
        assert worksheet["A1"].font.b
        assert worksheet["A1"].fill.fgColor.rgb == "FFF1F5F9"
        assert worksheet["A1"].alignment.horizontal == "center"
        assert worksheet.row_dimensions[1].height == 25
        assert worksheet.column_dimensions["A"].width == 15
        assert worksheet.column_dimensions["C"].width == 35
        assert worksheet.column_dimensions["E"].width == 35
        assert worksheet.column_dimensions["G"].width == 34

    def test_matched_row_values(self, matched_row):
        worksheet = _load(ExcelExporter().render([matched_row]))

        assert worksheet["A2"].value == "1234abc"
        assert worksheet["B2"].value == "XX-001"
        assert worksheet["C2"].value == "Model X"
        assert worksheet["D2"].value == "2020"
        assert worksheet["F2"].value == "L"
        assert worksheet["G2"].value is None
        assert worksheet["H2"].value == 120.5
        assert worksheet.row_dimensions[2].height == 61
        assert worksheet["E2"].alignment.wrap_text

    def test_matched_identifier_is_rich_text(self, matched_row):
        worksheet = _load(ExcelExporter().render([matched_row]))
        value = worksheet["E2"].value

        assert isinstance(value, CellRichText)
        assert str(value) == "1234-ABC / 5678DEF"
        highlighted = [block for block in value if isinstance(block, TextBlock)]
        assert [block.text for block in highlighted] == ["1234-ABC"]
        assert highlighted[0].font.b
        assert highlighted[0].font.color.rgb == "FFFF0000"

    def test_image_anchored_with_offset(self, matched_row):
        exporter = ExcelExporter()
        worksheet = _load(exporter.render([matched_row]))

        assert exporter.embedded_images == 1
        assert len(worksheet._images) == 1
        anchor = worksheet._images[0].anchor
        assert anchor._from.col == 6
        assert anchor._from.row == 1
        assert anchor._from.colOff == pixels_to_EMU(12)
        assert anchor._from.rowOff == 0
        assert anchor.ext.width == pixels_to_EMU(227)
        assert anchor.ext.height == pixels_to_EMU(81)

    def test_miss_row_has_only_input_identifier(self):
        exporter = ExcelExporter()
        worksheet = _load(exporter.render([ResultRow(input_identifier="9999ZZZ")]))

        values = [cell.value for cell in worksheet[2]]
        assert values == ["9999ZZZ", None, None, None, None, None, None, None]
        assert worksheet._images == []
        assert exporter.embedded_images == 0

    def test_no_image_label_written_as_text(self):
        row = ResultRow(
            input_identifier="zz777",
            matched_identifier="ZZ-777",
            image_label="no image",
        )
        worksheet = _load(ExcelExporter().render([row]))

        assert worksheet["G2"].value == "no image"

    def test_broken_image_degrades_to_row_without_image(self, matched_row):
        broken = ResultRow(
            input_identifier="5678def",
            matched_identifier="1234-ABC / 5678DEF",
            image_label="matched",
            image=EmbeddedImage(b"not an image", "png"),
        )
        exporter = ExcelExporter()
        worksheet = _load(exporter.render([broken, matched_row]))

        assert exporter.failed_images == 1
        assert exporter.embedded_images == 1
        assert len(worksheet._images) == 1
        assert worksheet._images[0].anchor._from.row == 2
        assert worksheet["A2"].value == "5678def"
        assert worksheet["G2"].value is None

    def test_non_native_format_is_converted(self):
        row = ResultRow(
            input_identifier="1234abc",
            matched_identifier="1234-ABC",
            image=EmbeddedImage(image_bytes("blue", fmt="BMP"), "bmp"),
        )
        exporter = ExcelExporter()
        worksheet = _load(exporter.render([row]))

        assert exporter.embedded_images == 1
        assert worksheet._images[0].format == "png"

    def test_custom_layout(self, matched_row):
        layout = {"sheet_title": "匹配结果", "headers": {"image": "图片"}, "row_height": 40}
        worksheet = _load(ExcelExporter(layout).render([matched_row]))

        assert worksheet.title == "匹配结果"
        assert worksheet["G1"].value == "图片"
        assert worksheet["A1"].value == "Input OE"
        assert worksheet.row_dimensions[2].height == 40

    def test_rows_follow_result_order(self):
        rows = [ResultRow(input_identifier=f"Q{i}") for i in range(5)]
        worksheet = _load(ExcelExporter().render(rows))

        assert [worksheet.cell(row=i + 2, column=1).value for i in range(5)] == [
            "Q0",
            "Q1",
            "Q2",
            "Q3",
            "Q4",
        ]

    def test_text_starting_with_equals_stays_literal(self):
        rows = [
            ResultRow(
                input_identifier="=A1-B2",
                application="=Model X",
                matched_identifier="=SUM(1,2)",
                image_label="=no image",
            ),
            ResultRow(input_identifier="=HYPERLINK(\"x\")"),
        ]
        worksheet = _load(ExcelExporter().render(rows))

        assert worksheet["A2"].value == "=A1-B2"
        assert worksheet["A2"].data_type == "s"
        assert worksheet["C2"].value == "=Model X"
        assert worksheet["C2"].data_type == "s"
        assert worksheet["G2"].value == "=no image"
        assert worksheet["G2"].data_type == "s"
        assert worksheet["A3"].value == '=HYPERLINK("x")'
        assert worksheet["A3"].data_type == "s"
