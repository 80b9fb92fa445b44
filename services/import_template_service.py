"""
Import template service: starter files for bulk product imports.

Every template holds the pt-BR header row plus one filled example row, so
a user can see the expected value format for each column.
"""

import json
from io import BytesIO
from typing import Union

from openpyxl import Workbook
from openpyxl.styles import Font
import structlog

from models.product_import import ImportFormat
from parsers.product_import_parser import FIELD_SEPARATOR, coerce_import_format

logger = structlog.get_logger(__name__)

TEMPLATE_SHEET_NAME = "Produtos"
TEMPLATE_BASENAME = "template_importacao_produtos"

TEMPLATE_HEADERS = (
    "nome",
    "descrição",
    "sku",
    "código_barras",
    "categoria",
    "preço",
    "custo",
    "estoque",
    "estoque_minimo",
    "unidade",
    "peso",
    "dimensões",
    "marca",
    "fornecedor",
    "ncm",
    "cest",
    "cfop",
    "aliquota_icms",
    "aliquota_pis",
    "aliquota_cofins",
    "ativo",
    "observações",
)

TEMPLATE_EXAMPLE_ROW = (
    "Notebook Dell Inspiron",
    "Notebook Dell Inspiron 15, Intel Core i5, 8GB RAM, 256GB SSD",
    "NTB-DLL-001",
    "7891234567890",
    "Informática",
    "3500.00",
    "2800.00",
    "15",
    "5",
    "un",
    "2.5",
    "35x25x2",
    "Dell",
    "Dell Brasil",
    "84713011",
    "0105600",
    "5102",
    "12.00",
    "1.65",
    "7.60",
    "sim",
    "Produto com garantia de 1 ano",
)

EXTENSIONS = {
    ImportFormat.DELIMITED: "csv",
    ImportFormat.SPREADSHEET: "xlsx",
    ImportFormat.STRUCTURED: "json",
}

MEDIA_TYPES = {
    ImportFormat.DELIMITED: "text/csv; charset=utf-8",
    ImportFormat.SPREADSHEET: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ImportFormat.STRUCTURED: "application/json",
}


def _quote_field(value: str) -> str:
    """Quote a delimited field when it holds the separator or a quote."""
    if FIELD_SEPARATOR in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def _delimited_template() -> bytes:
    lines = [
        FIELD_SEPARATOR.join(_quote_field(v) for v in TEMPLATE_HEADERS),
        FIELD_SEPARATOR.join(_quote_field(v) for v in TEMPLATE_EXAMPLE_ROW),
    ]
    return ("\n".join(lines) + "\n").encode("utf-8")


def _spreadsheet_template() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = TEMPLATE_SHEET_NAME

    ws.append(list(TEMPLATE_HEADERS))
    ws.append(list(TEMPLATE_EXAMPLE_ROW))

    bold_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = bold_font
        ws.column_dimensions[cell.column_letter].width = max(12, len(str(cell.value)) + 4)

    # Save to BytesIO
    output = BytesIO()
    wb.save(output)
    output.seek(0)

    return output.getvalue()


def _structured_template() -> bytes:
    example = dict(zip(TEMPLATE_HEADERS, TEMPLATE_EXAMPLE_ROW))
    return json.dumps([example], ensure_ascii=False, indent=2).encode("utf-8")


def generate_import_template(import_format: Union[ImportFormat, str]) -> bytes:
    """
    Build a starter import file.

    Args:
        import_format: delimited, spreadsheet or structured

    Returns:
        File content as bytes

    Raises:
        UnsupportedFormatError: If the format is unknown
    """
    import_format = coerce_import_format(import_format)

    if import_format == ImportFormat.DELIMITED:
        content = _delimited_template()
    elif import_format == ImportFormat.SPREADSHEET:
        content = _spreadsheet_template()
    else:
        content = _structured_template()

    logger.info(
        "import_template_generated",
        format=import_format.value,
        size_bytes=len(content)
    )

    return content


def template_filename(import_format: Union[ImportFormat, str]) -> str:
    """Download filename, e.g. template_importacao_produtos.xlsx."""
    return f"{TEMPLATE_BASENAME}.{EXTENSIONS[coerce_import_format(import_format)]}"


def template_media_type(import_format: Union[ImportFormat, str]) -> str:
    return MEDIA_TYPES[coerce_import_format(import_format)]
