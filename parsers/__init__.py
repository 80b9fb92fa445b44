"""
Import file parsers module.

Container decoding and column mapping for bulk product imports.
"""

from parsers.product_import_parser import (
    decode_import_file,
    detect_import_format,
    coerce_import_format,
    validate_import_file,
    estimate_import_time,
    parse_csv_line,
    DecodedTable,
)
from parsers.column_mapping import (
    COLUMN_SYNONYMS,
    infer_column_mapping,
    resolve_column_mapping,
    find_unmapped_columns,
    apply_column_mapping,
    map_import_rows,
    lookup_header,
    fit_row_to_headers,
    RowShape,
    MappedImport,
)

__all__ = [
    "decode_import_file",
    "detect_import_format",
    "coerce_import_format",
    "validate_import_file",
    "estimate_import_time",
    "parse_csv_line",
    "DecodedTable",
    "COLUMN_SYNONYMS",
    "infer_column_mapping",
    "resolve_column_mapping",
    "find_unmapped_columns",
    "apply_column_mapping",
    "map_import_rows",
    "lookup_header",
    "fit_row_to_headers",
    "RowShape",
    "MappedImport",
]
