"""
Column mapping for bulk product imports.

Maps free-text headers (Portuguese or English) onto the closed set of
CanonicalField values, and joins decoded rows against that mapping.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Mapping, Union
import structlog

from exceptions import InvalidColumnMappingError
from models.product_import import CanonicalField, ColumnMapping, RawImportRecord
from utils.text_utils import normalize_header, fold_header, clean_cell

logger = structlog.get_logger(__name__)


# Normalized (lowercase, trimmed) header -> canonical field
COLUMN_SYNONYMS: dict[str, CanonicalField] = {
    # name
    "nome": CanonicalField.NAME,
    "name": CanonicalField.NAME,
    "produto": CanonicalField.NAME,
    "product": CanonicalField.NAME,
    "nome do produto": CanonicalField.NAME,
    "product name": CanonicalField.NAME,
    # description
    "descrição": CanonicalField.DESCRIPTION,
    "descricao": CanonicalField.DESCRIPTION,
    "description": CanonicalField.DESCRIPTION,
    # sku
    "sku": CanonicalField.SKU,
    "código": CanonicalField.SKU,
    "codigo": CanonicalField.SKU,
    "code": CanonicalField.SKU,
    "referência": CanonicalField.SKU,
    "referencia": CanonicalField.SKU,
    # barcode
    "código_barras": CanonicalField.BARCODE,
    "codigo_barras": CanonicalField.BARCODE,
    "código de barras": CanonicalField.BARCODE,
    "codigo de barras": CanonicalField.BARCODE,
    "ean": CanonicalField.BARCODE,
    "gtin": CanonicalField.BARCODE,
    "gtin/ean": CanonicalField.BARCODE,
    "barcode": CanonicalField.BARCODE,
    # category
    "categoria": CanonicalField.CATEGORY,
    "category": CanonicalField.CATEGORY,
    # price
    "preço": CanonicalField.PRICE,
    "preco": CanonicalField.PRICE,
    "preço de venda": CanonicalField.PRICE,
    "preco de venda": CanonicalField.PRICE,
    "price": CanonicalField.PRICE,
    "valor": CanonicalField.PRICE,
    "sale price": CanonicalField.PRICE,
    # cost
    "custo": CanonicalField.COST,
    "preço de custo": CanonicalField.COST,
    "preco de custo": CanonicalField.COST,
    "cost": CanonicalField.COST,
    # stock
    "estoque": CanonicalField.STOCK,
    "quantidade": CanonicalField.STOCK,
    "stock": CanonicalField.STOCK,
    "quantity": CanonicalField.STOCK,
    # minStock
    "estoque_minimo": CanonicalField.MIN_STOCK,
    "estoque_mínimo": CanonicalField.MIN_STOCK,
    "estoque mínimo": CanonicalField.MIN_STOCK,
    "estoque minimo": CanonicalField.MIN_STOCK,
    "min_stock": CanonicalField.MIN_STOCK,
    "minstock": CanonicalField.MIN_STOCK,
    "minimum stock": CanonicalField.MIN_STOCK,
    # unit
    "unidade": CanonicalField.UNIT,
    "unidade de medida": CanonicalField.UNIT,
    "unit": CanonicalField.UNIT,
    # weight
    "peso": CanonicalField.WEIGHT,
    "peso (kg)": CanonicalField.WEIGHT,
    "weight": CanonicalField.WEIGHT,
    # dimensions
    "dimensões": CanonicalField.DIMENSIONS,
    "dimensoes": CanonicalField.DIMENSIONS,
    "dimensions": CanonicalField.DIMENSIONS,
    # brand
    "marca": CanonicalField.BRAND,
    "brand": CanonicalField.BRAND,
    # supplier
    "fornecedor": CanonicalField.SUPPLIER,
    "supplier": CanonicalField.SUPPLIER,
    # fiscal
    "ncm": CanonicalField.NCM,
    "cest": CanonicalField.CEST,
    "cfop": CanonicalField.CFOP,
    "aliquota_icms": CanonicalField.ICMS_RATE,
    "alíquota_icms": CanonicalField.ICMS_RATE,
    "alíquota icms": CanonicalField.ICMS_RATE,
    "icms": CanonicalField.ICMS_RATE,
    "icms_rate": CanonicalField.ICMS_RATE,
    "icmsrate": CanonicalField.ICMS_RATE,
    "aliquota_pis": CanonicalField.PIS_RATE,
    "alíquota_pis": CanonicalField.PIS_RATE,
    "alíquota pis": CanonicalField.PIS_RATE,
    "pis": CanonicalField.PIS_RATE,
    "pis_rate": CanonicalField.PIS_RATE,
    "pisrate": CanonicalField.PIS_RATE,
    "aliquota_cofins": CanonicalField.COFINS_RATE,
    "alíquota_cofins": CanonicalField.COFINS_RATE,
    "alíquota cofins": CanonicalField.COFINS_RATE,
    "cofins": CanonicalField.COFINS_RATE,
    "cofins_rate": CanonicalField.COFINS_RATE,
    "cofinsrate": CanonicalField.COFINS_RATE,
    # active
    "ativo": CanonicalField.ACTIVE,
    "active": CanonicalField.ACTIVE,
    "situação": CanonicalField.ACTIVE,
    "situacao": CanonicalField.ACTIVE,
    # notes
    "observações": CanonicalField.NOTES,
    "observacoes": CanonicalField.NOTES,
    "observação": CanonicalField.NOTES,
    "observacao": CanonicalField.NOTES,
    "obs": CanonicalField.NOTES,
    "notes": CanonicalField.NOTES,
}

# Second-chance lookup: accents stripped, spaces/hyphens folded to "_"
_FOLDED_SYNONYMS: dict[str, CanonicalField] = {
    fold_header(synonym): canonical
    for synonym, canonical in COLUMN_SYNONYMS.items()
}


# An unquoted decimal comma ("29,90") can split one of these into two cells
DECIMAL_FIELDS = frozenset({
    CanonicalField.PRICE,
    CanonicalField.COST,
    CanonicalField.WEIGHT,
    CanonicalField.ICMS_RATE,
    CanonicalField.PIS_RATE,
    CanonicalField.COFINS_RATE,
})

_DIGITS = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class RowShape:
    """A row with more cells than the header row."""
    cells: int
    expected: int

    # Set when the one extra cell was rejoined into a decimal last column
    folded_into: Optional[CanonicalField] = None

    @property
    def folded(self) -> bool:
        return self.folded_into is not None


@dataclass
class MappedImport:
    """Decoded rows joined against a column mapping."""
    mapping: ColumnMapping
    unmapped_columns: list[str]
    records: list[RawImportRecord] = field(default_factory=list)
    inferred: bool = True

    # 1-based row number -> shape, only for rows wider than the header
    row_shapes: dict[int, RowShape] = field(default_factory=dict)

    @property
    def mapped_fields(self) -> set[CanonicalField]:
        return set(self.mapping.values())


def lookup_header(header: Optional[str]) -> Optional[CanonicalField]:
    """Canonical field for one header, or None if it has no synonym."""
    canonical = COLUMN_SYNONYMS.get(normalize_header(header))
    if canonical is None:
        canonical = _FOLDED_SYNONYMS.get(fold_header(header))
    return canonical


def infer_column_mapping(headers: Sequence[str]) -> ColumnMapping:
    """
    Infer header -> canonical field from the synonym table.

    Headers with no synonym are left out of the mapping.
    """
    mapping: ColumnMapping = {}

    for header in headers:
        canonical = lookup_header(header)
        if canonical is not None:
            mapping[header] = canonical

    logger.debug(
        "column_mapping_inferred",
        header_count=len(headers),
        mapped_count=len(mapping)
    )

    return mapping


def resolve_column_mapping(
    headers: Sequence[str],
    override: Optional[Mapping[str, Union[CanonicalField, str]]] = None,
) -> tuple[ColumnMapping, bool]:
    """
    Use the caller's mapping when given, otherwise infer one.

    The override replaces inference entirely. Values may be CanonicalField
    members or their string ids; the caller's mapping is copied, not mutated.

    Returns:
        (mapping, inferred)

    Raises:
        InvalidColumnMappingError: If an override value is not a known field
    """
    if override is None:
        return infer_column_mapping(headers), True

    mapping: ColumnMapping = {}
    invalid: dict[str, str] = {}

    for header, target in override.items():
        if target is None or target == "":
            continue
        try:
            mapping[header] = CanonicalField(target)
        except ValueError:
            invalid[header] = str(target)

    if invalid:
        raise InvalidColumnMappingError(
            invalid,
            [canonical.value for canonical in CanonicalField]
        )

    logger.debug("column_mapping_overridden", mapped_count=len(mapping))

    return mapping, False


def find_unmapped_columns(headers: Sequence[str], mapping: Mapping[str, CanonicalField]) -> list[str]:
    """Headers the mapping does not cover, in file order."""
    return [header for header in headers if header not in mapping]


def apply_column_mapping(
    row: Sequence[str],
    headers: Sequence[str],
    mapping: Mapping[str, CanonicalField],
) -> RawImportRecord:
    """
    Join one row's cells against the headers through the mapping.

    Blank cells become absent fields. When two columns map to the same
    field, the first non-blank cell wins.
    """
    record: RawImportRecord = {}

    for index, header in enumerate(headers):
        canonical = mapping.get(header)
        if canonical is None or index >= len(row):
            continue

        value = clean_cell(row[index])
        if value is None:
            continue

        record.setdefault(canonical, value)

    return record


def fit_row_to_headers(
    row: Sequence[str],
    headers: Sequence[str],
    mapping: Mapping[str, CanonicalField],
) -> tuple[Sequence[str], Optional[RowShape]]:
    """
    Check a row's width against the header row.

    A row with exactly one extra cell is rejoined only when the last column
    maps to a decimal field and both pieces are plain digits
    ("Mouse,29,90" -> "Mouse", "29,90"). Any other overflow is returned
    untouched with an unfolded RowShape, so the row can be rejected instead
    of shifting values into the wrong fields.

    Returns:
        (row to map, RowShape or None when the width matches)
    """
    extra = len(row) - len(headers)
    if extra <= 0 or not headers:
        return row, None

    last_field = mapping.get(headers[-1])
    whole, fraction = row[len(headers) - 1], row[-1]

    if (
        extra == 1
        and last_field in DECIMAL_FIELDS
        and _DIGITS.match(whole)
        and _DIGITS.match(fraction)
    ):
        folded = list(row[:len(headers) - 1]) + [f"{whole},{fraction}"]
        return folded, RowShape(len(row), len(headers), folded_into=last_field)

    return row, RowShape(len(row), len(headers))


def map_import_rows(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    override: Optional[Mapping[str, Union[CanonicalField, str]]] = None,
) -> MappedImport:
    """Resolve the mapping and apply it to every row."""
    mapping, inferred = resolve_column_mapping(headers, override)
    unmapped = find_unmapped_columns(headers, mapping)

    records = []
    row_shapes: dict[int, RowShape] = {}

    for row_number, row in enumerate(rows, start=1):
        row, shape = fit_row_to_headers(row, headers, mapping)
        if shape is not None:
            row_shapes[row_number] = shape
        records.append(apply_column_mapping(row, headers, mapping))

    if unmapped:
        logger.info(
            "import_columns_unmapped",
            unmapped=unmapped
        )

    if row_shapes:
        logger.info(
            "import_rows_overflow",
            folded=[n for n, s in row_shapes.items() if s.folded],
            rejected=[n for n, s in row_shapes.items() if not s.folded]
        )

    return MappedImport(
        mapping=mapping,
        unmapped_columns=unmapped,
        records=records,
        inferred=inferred,
        row_shapes=row_shapes,
    )
