"""
Container decoder for bulk product imports.

Turns raw upload bytes into a DecodedTable (headers + string rows) so the
mapping and validation stages never need to know which container the data
came from. Three containers are supported:

- delimited text (comma separated, double-quote quoting)
- spreadsheet (first worksheet of an .xlsx workbook)
- structured records (JSON array of flat objects)

Any failure here is fatal for the import and raised as an ImportDecodeError.
"""

import json
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from pathlib import PurePath
from typing import Optional, Union
import structlog

import pandas as pd

from config.settings import settings
from exceptions import (
    TooFewRowsError,
    NoSheetsError,
    NotAnArrayError,
    EmptyImportError,
    NotAnObjectError,
    UnreadableFileError,
    UnsupportedFormatError,
    ImportFileRejectedError,
)
from models.product_import import ImportFormat

logger = structlog.get_logger(__name__)

FIELD_SEPARATOR = ","
QUOTE = '"'

# File extension -> container format
EXTENSION_FORMATS = {
    "csv": ImportFormat.DELIMITED,
    "txt": ImportFormat.DELIMITED,
    "xlsx": ImportFormat.SPREADSHEET,
    "xlsm": ImportFormat.SPREADSHEET,
    "json": ImportFormat.STRUCTURED,
}

MAX_FILENAME_LENGTH = 255


@dataclass(frozen=True)
class DecodedTable:
    """Uniform tabular shape produced by every container decoder."""
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    source_format: ImportFormat

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def overflow_rows(self) -> list[int]:
        """1-based numbers of rows with more cells than headers."""
        return [
            number for number, row in enumerate(self.rows, start=1)
            if len(row) > len(self.headers)
        ]

    def preview(self, limit: int = 5) -> list[list[str]]:
        """First rows of the table, for display before validation."""
        return [list(row) for row in self.rows[:limit]]

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "headers": list(self.headers),
            "rows": [list(row) for row in self.rows],
            "total_rows": self.total_rows,
            "format": self.source_format.value,
        }


def decode_import_file(
    content: bytes,
    import_format: Union[ImportFormat, str],
) -> DecodedTable:
    """
    Decode an uploaded file into a DecodedTable.

    Args:
        content: Raw file bytes
        import_format: Declared container format

    Returns:
        DecodedTable with headers and string rows

    Raises:
        ImportDecodeError: If the container is malformed or too short
    """
    import_format = coerce_import_format(import_format)

    logger.info(
        "decoding_import_file",
        format=import_format.value,
        size_bytes=len(content)
    )

    if import_format == ImportFormat.DELIMITED:
        table = _decode_delimited(content)
    elif import_format == ImportFormat.SPREADSHEET:
        table = _decode_spreadsheet(content)
    else:
        table = _decode_structured(content)

    logger.info(
        "import_decoded",
        format=import_format.value,
        header_count=len(table.headers),
        row_count=table.total_rows
    )

    return table


# ===================
# DELIMITED TEXT
# ===================

def parse_csv_line(line: str, separator: str = FIELD_SEPARATOR) -> list[str]:
    """
    Split one delimited line into trimmed fields.

    A quote toggles the quoted state, a doubled quote inside quotes is a
    literal quote, and a separator inside quotes is plain text.

    'a,"b, c","say ""hi"" now"' -> ['a', 'b, c', 'say "hi" now']
    """
    fields = []
    current = []
    in_quotes = False
    i = 0

    while i < len(line):
        char = line[i]

        if char == QUOTE:
            if in_quotes and i + 1 < len(line) and line[i + 1] == QUOTE:
                current.append(QUOTE)
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == separator and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def _decode_delimited(content: bytes) -> DecodedTable:
    """Decode comma separated text."""
    text = _decode_text(content)
    lines = [line for line in text.splitlines() if line.strip()]

    if len(lines) < 2:
        raise TooFewRowsError(ImportFormat.DELIMITED.value, len(lines))

    headers = parse_csv_line(lines[0])
    rows = []

    for line in lines[1:]:
        rows.append(tuple(parse_csv_line(line)))

    table = DecodedTable(
        headers=tuple(headers),
        rows=tuple(rows),
        source_format=ImportFormat.DELIMITED,
    )

    # Rows wider than the header are kept as-is; the mapper decides
    if table.overflow_rows:
        logger.debug(
            "delimited_rows_overflow",
            rows=table.overflow_rows
        )

    return table


def _decode_text(content: bytes) -> str:
    """Decode bytes as UTF-8 (BOM tolerated), falling back to Latin-1."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("import_text_not_utf8", fallback="latin-1")
        return content.decode("latin-1")


# ===================
# SPREADSHEET
# ===================

def _decode_spreadsheet(content: bytes) -> DecodedTable:
    """Decode the first worksheet of an .xlsx workbook."""
    try:
        excel = pd.ExcelFile(BytesIO(content), engine="openpyxl")
    except Exception as e:
        logger.error("spreadsheet_read_failed", error=str(e))
        raise UnreadableFileError(ImportFormat.SPREADSHEET.value, str(e))

    if not excel.sheet_names:
        raise NoSheetsError()

    sheet_name = excel.sheet_names[0]

    try:
        df = excel.parse(sheet_name, header=None, dtype=object)
    except Exception as e:
        logger.error("spreadsheet_sheet_read_failed", sheet=sheet_name, error=str(e))
        raise UnreadableFileError(ImportFormat.SPREADSHEET.value, str(e))

    all_rows = [
        [_cell_to_str(value) for value in row]
        for row in df.itertuples(index=False, name=None)
    ]

    # Trailing/intermediate rows with every cell blank are skipped silently
    non_blank = [row for row in all_rows if any(cell.strip() for cell in row)]
    skipped = len(all_rows) - len(non_blank)

    if len(non_blank) < 2:
        raise TooFewRowsError(ImportFormat.SPREADSHEET.value, len(non_blank))

    # Columns without a header cell are dropped from every row
    columns = [i for i, cell in enumerate(non_blank[0]) if cell.strip()]
    headers = [non_blank[0][i].strip() for i in columns]

    logger.debug(
        "spreadsheet_sheet_parsed",
        sheet=sheet_name,
        sheet_count=len(excel.sheet_names),
        blank_rows_skipped=skipped
    )

    return DecodedTable(
        headers=tuple(headers),
        rows=tuple(tuple(row[i] for i in columns) for row in non_blank[1:]),
        source_format=ImportFormat.SPREADSHEET,
    )


# ===================
# STRUCTURED RECORDS
# ===================

def _decode_structured(content: bytes) -> DecodedTable:
    """Decode a JSON array of objects."""
    try:
        data = json.loads(_decode_text(content))
    except ValueError as e:
        logger.error("json_read_failed", error=str(e))
        raise UnreadableFileError(ImportFormat.STRUCTURED.value, str(e))

    if not isinstance(data, list):
        raise NotAnArrayError(_json_type(data))

    if not data:
        raise EmptyImportError()

    for index, element in enumerate(data):
        if not isinstance(element, dict):
            raise NotAnObjectError(index, _json_type(element))

    # Header order is the key order of the first object
    headers = [key for key in data[0].keys() if str(key).strip()]

    rows = [
        tuple(_cell_to_str(element.get(header)) for header in headers)
        for element in data
    ]

    return DecodedTable(
        headers=tuple(headers),
        rows=tuple(rows),
        source_format=ImportFormat.STRUCTURED,
    )


def _json_type(value) -> str:
    """JSON type name of a decoded value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


# ===================
# HELPER FUNCTIONS
# ===================

def _cell_to_str(value) -> str:
    """
    Render one spreadsheet/JSON cell as the string the mapper expects.

    None/NaN -> "", True -> "true", 15.0 -> "15", dates -> ISO format.
    """
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if pd.isna(value):
        return ""
    if isinstance(value, float):
        if math.isinf(value):
            return str(value)
        if value.is_integer():
            return str(int(value))
        # Positional notation, never "1e-05"
        return format(Decimal(str(value)), "f")
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def coerce_import_format(import_format: Union[ImportFormat, str]) -> ImportFormat:
    """Accept an ImportFormat or its string value; raise UnsupportedFormatError otherwise."""
    if isinstance(import_format, ImportFormat):
        return import_format
    try:
        return ImportFormat(str(import_format).lower())
    except ValueError:
        raise UnsupportedFormatError(str(import_format))


def detect_import_format(filename: str) -> ImportFormat:
    """
    Pick the container format from a file name.

    Raises:
        UnsupportedFormatError: If the extension is not supported
    """
    extension = PurePath(filename or "").suffix.lstrip(".").lower()
    import_format = EXTENSION_FORMATS.get(extension)

    if import_format is None:
        raise UnsupportedFormatError(extension or "(none)")

    return import_format


def validate_import_file(
    filename: Optional[str],
    size_bytes: int,
    max_size_bytes: Optional[int] = None,
) -> None:
    """
    Caller-level checks before decoding: size cap, extension, file name.

    Raises:
        ImportFileRejectedError: Listing every problem found
    """
    if max_size_bytes is None:
        max_size_bytes = settings.import_max_file_size_bytes

    problems = []

    if size_bytes > max_size_bytes:
        max_mb = max_size_bytes / (1024 * 1024)
        problems.append(f"File too large. Maximum size: {max_mb:g}MB")

    extension = PurePath(filename or "").suffix.lstrip(".").lower()
    if extension not in EXTENSION_FORMATS:
        problems.append("Invalid file format. Accepted formats: CSV, Excel (.xlsx), JSON")

    if not filename or len(filename) > MAX_FILENAME_LENGTH:
        problems.append("Invalid file name")

    if problems:
        logger.warning(
            "import_file_rejected",
            filename=filename,
            size_bytes=size_bytes,
            problems=problems
        )
        raise ImportFileRejectedError(filename or "", problems)


def estimate_import_time(size_bytes: int, row_count: int) -> tuple[int, str]:
    """
    Rough import duration for operator feedback.

    1s base + 2s per MB + 3s per 1000 rows.

    Returns:
        (estimated milliseconds, bucketed message)
    """
    size_mb = size_bytes / (1024 * 1024)
    estimated_ms = int(1000 + size_mb * 2000 + (row_count / 1000) * 3000)

    if estimated_ms < 5000:
        message = "Fast import (under 5 seconds)"
    elif estimated_ms < 15000:
        message = "Moderate import (5-15 seconds)"
    elif estimated_ms < 30000:
        message = "Slow import (15-30 seconds)"
    else:
        message = "Very slow import (over 30 seconds)"

    return estimated_ms, message
