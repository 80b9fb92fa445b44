"""
Unit tests for import template generation.

Run: pytest tests/unit/test_import_template_service.py -v
"""

import json
from io import BytesIO

import pytest
from openpyxl import load_workbook

from services.import_template_service import (
    TEMPLATE_HEADERS,
    TEMPLATE_EXAMPLE_ROW,
    generate_import_template,
    template_filename,
)
from services.product_import_service import ProductImportService
from models.product_import import ImportFormat
from exceptions import UnsupportedFormatError


class TestGenerateImportTemplate:
    """Tests for generate_import_template()"""

    def test_delimited_template_quotes_commas(self):
        content = generate_import_template(ImportFormat.DELIMITED).decode("utf-8")
        header_line, example_line = content.strip().split("\n")

        assert header_line.split(",") == list(TEMPLATE_HEADERS)
        assert '"Notebook Dell Inspiron 15, Intel Core i5, 8GB RAM, 256GB SSD"' in example_line

    def test_spreadsheet_template_sheet(self):
        content = generate_import_template(ImportFormat.SPREADSHEET)

        wb = load_workbook(BytesIO(content))
        ws = wb.active

        assert ws.title == "Produtos"
        assert [cell.value for cell in ws[1]] == list(TEMPLATE_HEADERS)
        assert [cell.value for cell in ws[2]] == list(TEMPLATE_EXAMPLE_ROW)

    def test_structured_template_is_array_of_one_object(self):
        data = json.loads(generate_import_template("structured"))

        assert len(data) == 1
        assert list(data[0].keys()) == list(TEMPLATE_HEADERS)
        assert data[0]["sku"] == "NTB-DLL-001"

    @pytest.mark.parametrize("import_format", list(ImportFormat))
    def test_every_template_imports_cleanly(self, import_format):
        """The example row maps every column and validates without findings."""
        content = generate_import_template(import_format)

        result = ProductImportService().run(content, import_format)

        assert result.mapped.unmapped_columns == []
        assert len(result.mapped.mapping) == len(TEMPLATE_HEADERS)
        assert result.report.valid == 1
        assert result.outcomes[0].warnings == []
        assert result.ready_rows == [1]

    def test_unknown_format_raises(self):
        with pytest.raises(UnsupportedFormatError):
            generate_import_template("pdf")


class TestTemplateFilename:
    """Tests for template_filename()"""

    @pytest.mark.parametrize("import_format,expected", [
        (ImportFormat.DELIMITED, "template_importacao_produtos.csv"),
        (ImportFormat.SPREADSHEET, "template_importacao_produtos.xlsx"),
        ("structured", "template_importacao_produtos.json"),
    ])
    def test_filenames(self, import_format, expected):
        assert template_filename(import_format) == expected
