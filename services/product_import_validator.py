"""
Record validator for bulk product imports.

Checks every mapped row against structural, numeric and fiscal rules.
Problems are collected on a ValidationOutcome instead of raised, so one
malformed row never aborts the batch:

- errors block the row from insertion
- warnings are advisory and never change is_valid

Decimal fields accept either "." or "," as the decimal separator
("19,90" == "19.90"); identifiers such as sku and ncm are never rewritten.
"""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence
import structlog

from config.settings import settings
from exceptions import InvalidImportRecordError
from models.product_import import CanonicalField, RawImportRecord
from parsers.column_mapping import RowShape
from utils.text_utils import only_digits

logger = structlog.get_logger(__name__)

MIN_NAME_LENGTH = 2
MIN_SKU_LENGTH = 2
PRICE_WARNING_THRESHOLD = Decimal("999999.99")
STOCK_WARNING_THRESHOLD = 999999
WEIGHT_WARNING_THRESHOLD_KG = Decimal("1000")
NCM_DIGITS = 8
RATE_MIN = Decimal("0")
RATE_MAX = Decimal("100")
MAX_CATEGORY_LENGTH = 50
MAX_BRAND_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 500

# Optional sign, up to 15 integer digits, optional "." or "," fraction
MAX_INTEGER_DIGITS = 15
MAX_FRACTION_DIGITS = 10
_PLAIN_NUMBER = re.compile(
    rf"^[+-]?[0-9]{{1,{MAX_INTEGER_DIGITS}}}(?:[.,][0-9]{{1,{MAX_FRACTION_DIGITS}}})?$"
)

VALID_UNITS = ("un", "kg", "g", "l", "ml", "m", "cm", "mm", "caixa", "pacote", "par", "dúzia")

TRUE_TOKENS = frozenset({"sim", "yes", "true", "1"})
FALSE_TOKENS = frozenset({"não", "nao", "no", "false", "0"})

TAX_RATE_FIELDS = (
    CanonicalField.ICMS_RATE,
    CanonicalField.PIS_RATE,
    CanonicalField.COFINS_RATE,
)

# Canonical field -> products table column
CATALOG_COLUMNS: dict[CanonicalField, str] = {
    CanonicalField.NAME: "name",
    CanonicalField.DESCRIPTION: "description",
    CanonicalField.SKU: "sku",
    CanonicalField.BARCODE: "barcode",
    CanonicalField.CATEGORY: "category",
    CanonicalField.PRICE: "price",
    CanonicalField.COST: "cost",
    CanonicalField.STOCK: "stock",
    CanonicalField.MIN_STOCK: "min_stock",
    CanonicalField.UNIT: "unit",
    CanonicalField.WEIGHT: "weight",
    CanonicalField.DIMENSIONS: "dimensions",
    CanonicalField.BRAND: "brand",
    CanonicalField.SUPPLIER: "supplier",
    CanonicalField.NCM: "ncm",
    CanonicalField.CEST: "cest",
    CanonicalField.CFOP: "cfop",
    CanonicalField.ICMS_RATE: "icms_rate",
    CanonicalField.PIS_RATE: "pis_rate",
    CanonicalField.COFINS_RATE: "cofins_rate",
    CanonicalField.ACTIVE: "active",
    CanonicalField.NOTES: "notes",
}


@dataclass
class ValidationOutcome:
    """Validation result for one import row."""
    data: RawImportRecord
    row_number: int
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    # Parsed values for every field that passed its rule
    normalized: dict[CanonicalField, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        """True if no blocking error was found."""
        return len(self.errors) == 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "row_number": self.row_number,
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "data": {canonical.value: value for canonical, value in self.data.items()},
        }


# ===================
# NUMBER PARSING
# ===================

def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a plain decimal, accepting "," as the decimal separator.

    Only digits with an optional sign and fraction are accepted, so exponents
    ("1e400"), digit separators ("1_000") and special values ("inf") come
    back as None, as does blank or non-numeric input.
    """
    if value is None:
        return None

    text = str(value).strip()
    if not _PLAIN_NUMBER.match(text):
        return None

    return Decimal(text.replace(",", "."))


def parse_integer(value: Optional[str]) -> Optional[int]:
    """Parse a whole number ("15", "15.0"); None for fractions or junk."""
    number = parse_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def parse_active(value: Optional[str]) -> Optional[bool]:
    """Map sim/não, yes/no, true/false, 1/0 to a bool; None if unrecognized."""
    if value is None:
        return None
    token = value.strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    return None


# ===================
# VALIDATION
# ===================

def validate_import_record(
    record: RawImportRecord,
    row_number: int,
    shape: Optional[RowShape] = None,
) -> ValidationOutcome:
    """
    Apply every field rule to one mapped row.

    All rules run; the outcome lists every problem found.

    Args:
        record: Mapped row (absent fields are missing keys)
        row_number: 1-based data row number, for display
        shape: Set when the source row was wider than the header row

    Returns:
        ValidationOutcome (never raises for bad data)
    """
    outcome = ValidationOutcome(data=record, row_number=row_number)
    errors = outcome.errors
    warnings = outcome.warnings
    normalized = outcome.normalized

    # Row width
    if shape is not None:
        if shape.folded:
            warnings.append(
                f"row has {shape.cells} cells, expected {shape.expected}; "
                f"the last two were joined as a decimal comma into {shape.folded_into.value}"
            )
        else:
            errors.append(
                f"row has {shape.cells} cells, expected {shape.expected}; "
                "quote values that contain commas"
            )

    # Required text fields
    name = _text(record, CanonicalField.NAME)
    if name is None or len(name) < MIN_NAME_LENGTH:
        errors.append("name is required and must have at least 2 characters")
    else:
        normalized[CanonicalField.NAME] = name

    sku = _text(record, CanonicalField.SKU)
    if sku is None or len(sku) < MIN_SKU_LENGTH:
        errors.append("sku is required and must have at least 2 characters")
    else:
        normalized[CanonicalField.SKU] = sku

    # Price
    price = None
    if _present(record, CanonicalField.PRICE):
        price = parse_decimal(record[CanonicalField.PRICE])
        if price is None or price <= 0:
            errors.append("price must be a valid number greater than 0")
        else:
            normalized[CanonicalField.PRICE] = price
            if price > PRICE_WARNING_THRESHOLD:
                warnings.append("price is unusually high, check that it is correct")
    else:
        errors.append("price is required")

    # Cost
    if _present(record, CanonicalField.COST):
        cost = parse_decimal(record[CanonicalField.COST])
        if cost is None or cost < 0:
            errors.append("cost must be a valid number greater than or equal to 0")
        else:
            normalized[CanonicalField.COST] = cost
            if price is not None and cost > price:
                warnings.append("cost is greater than price, check the margin")

    # Stock levels
    stock = None
    if _present(record, CanonicalField.STOCK):
        stock = parse_integer(record[CanonicalField.STOCK])
        if stock is None or stock < 0:
            errors.append("stock must be a whole number greater than or equal to 0")
            stock = None
        else:
            normalized[CanonicalField.STOCK] = stock
            if stock > STOCK_WARNING_THRESHOLD:
                warnings.append("stock is unusually high, check that it is correct")

    if _present(record, CanonicalField.MIN_STOCK):
        min_stock = parse_integer(record[CanonicalField.MIN_STOCK])
        if min_stock is None or min_stock < 0:
            errors.append("minStock must be a whole number greater than or equal to 0")
        else:
            normalized[CanonicalField.MIN_STOCK] = min_stock
            if stock is not None and min_stock > stock:
                warnings.append("minStock is greater than stock")

    # Weight
    if _present(record, CanonicalField.WEIGHT):
        weight = parse_decimal(record[CanonicalField.WEIGHT])
        if weight is None or weight <= 0:
            errors.append("weight must be a valid number greater than 0")
        else:
            normalized[CanonicalField.WEIGHT] = weight
            if weight > WEIGHT_WARNING_THRESHOLD_KG:
                warnings.append("weight is above 1000kg, check the unit")

    # Unit (advisory only)
    unit = _text(record, CanonicalField.UNIT)
    if unit is not None:
        if unit.lower() not in VALID_UNITS:
            warnings.append("unit not recognized, common units: un, kg, g, l, ml, m, cm, mm")
        normalized[CanonicalField.UNIT] = unit.lower()

    # Fiscal
    if _present(record, CanonicalField.NCM):
        ncm = only_digits(record[CanonicalField.NCM])
        if len(ncm) != NCM_DIGITS:
            errors.append("ncm must have 8 digits")
        else:
            normalized[CanonicalField.NCM] = ncm

    for rate_field in TAX_RATE_FIELDS:
        if not _present(record, rate_field):
            continue
        rate = parse_decimal(record[rate_field])
        if rate is None or rate < RATE_MIN or rate > RATE_MAX:
            errors.append(f"{rate_field.value} must be a number between 0 and 100")
        else:
            normalized[rate_field] = rate

    # Active flag (advisory only)
    if _present(record, CanonicalField.ACTIVE):
        active = parse_active(record[CanonicalField.ACTIVE])
        if active is None:
            warnings.append('active must be sim/não, yes/no, true/false or 1/0')
        else:
            normalized[CanonicalField.ACTIVE] = active

    # Free-text lengths (advisory only)
    _check_length(record, CanonicalField.CATEGORY, MAX_CATEGORY_LENGTH, warnings, normalized)
    _check_length(record, CanonicalField.BRAND, MAX_BRAND_LENGTH, warnings, normalized)
    _check_length(record, CanonicalField.DESCRIPTION, MAX_DESCRIPTION_LENGTH, warnings, normalized)

    # Pass-through fields
    barcode = only_digits(record.get(CanonicalField.BARCODE))
    if barcode:
        normalized[CanonicalField.BARCODE] = barcode

    for passthrough in (
        CanonicalField.DIMENSIONS,
        CanonicalField.SUPPLIER,
        CanonicalField.CEST,
        CanonicalField.CFOP,
        CanonicalField.NOTES,
    ):
        value = _text(record, passthrough)
        if value is not None:
            normalized[passthrough] = value

    return outcome


def validate_import_records(
    records: Sequence[RawImportRecord],
    max_workers: Optional[int] = None,
    parallel_threshold: Optional[int] = None,
    row_shapes: Optional[Mapping[int, RowShape]] = None,
) -> list[ValidationOutcome]:
    """
    Validate every row, numbering them from 1.

    Large batches fan out over a thread pool when more than one worker is
    configured. Outcomes are always returned in original row order.
    row_shapes carries the width problems found while mapping, keyed by
    row number.
    """
    if max_workers is None:
        max_workers = settings.import_validation_workers
    if parallel_threshold is None:
        parallel_threshold = settings.import_parallel_threshold
    if row_shapes is None:
        row_shapes = {}

    numbered = list(enumerate(records, start=1))
    parallel = max_workers > 1 and len(numbered) >= parallel_threshold

    logger.info(
        "import_validation_started",
        row_count=len(numbered),
        workers=max_workers if parallel else 1
    )

    if parallel:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(
                lambda item: validate_import_record(item[1], item[0], row_shapes.get(item[0])),
                numbered
            ))
    else:
        outcomes = [
            validate_import_record(record, row, row_shapes.get(row))
            for row, record in numbered
        ]

    logger.info(
        "import_validation_completed",
        row_count=len(outcomes),
        valid=sum(1 for o in outcomes if o.is_valid),
        invalid=sum(1 for o in outcomes if not o.is_valid)
    )

    return outcomes


def to_catalog_row(outcome: ValidationOutcome) -> dict:
    """
    Build the products table row for a valid outcome.

    Raises:
        InvalidImportRecordError: If the outcome has blocking errors
    """
    if not outcome.is_valid:
        raise InvalidImportRecordError(outcome.row_number, outcome.errors)

    row = {}
    for canonical, value in outcome.normalized.items():
        if isinstance(value, Decimal):
            value = float(value)
        row[CATALOG_COLUMNS[canonical]] = value

    # Absent "active" means active
    row.setdefault("active", True)

    return row


# ===================
# HELPER FUNCTIONS
# ===================

def _present(record: RawImportRecord, canonical: CanonicalField) -> bool:
    value = record.get(canonical)
    return value is not None and value.strip() != ""


def _text(record: RawImportRecord, canonical: CanonicalField) -> Optional[str]:
    """Trimmed value, or None when absent/blank."""
    value = record.get(canonical)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _check_length(
    record: RawImportRecord,
    canonical: CanonicalField,
    max_length: int,
    warnings: list[str],
    normalized: dict,
) -> None:
    value = _text(record, canonical)
    if value is None:
        return
    if len(value) > max_length:
        warnings.append(f"{canonical.value} is too long, must be at most {max_length} characters")
    normalized[canonical] = value
