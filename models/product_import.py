"""
Product import schemas.

Closed enums shared by every pipeline stage, the catalog snapshot entry,
and the API response models.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import BaseSchema, ResponseSchema


class ImportFormat(str, Enum):
    """Container formats accepted by the importer."""
    DELIMITED = "delimited"
    SPREADSHEET = "spreadsheet"
    STRUCTURED = "structured"


class CanonicalField(str, Enum):
    """Product attributes the importer understands."""
    NAME = "name"
    DESCRIPTION = "description"
    SKU = "sku"
    BARCODE = "barcode"
    CATEGORY = "category"
    PRICE = "price"
    COST = "cost"
    STOCK = "stock"
    MIN_STOCK = "minStock"
    UNIT = "unit"
    WEIGHT = "weight"
    DIMENSIONS = "dimensions"
    BRAND = "brand"
    SUPPLIER = "supplier"
    NCM = "ncm"
    CEST = "cest"
    CFOP = "cfop"
    ICMS_RATE = "icmsRate"
    PIS_RATE = "pisRate"
    COFINS_RATE = "cofinsRate"
    ACTIVE = "active"
    NOTES = "notes"


# Raw header string -> canonical field
ColumnMapping = dict[str, CanonicalField]

# One row after mapping; absent fields are missing keys, never ""
RawImportRecord = dict[CanonicalField, str]


class CatalogProduct(BaseSchema):
    """
    Existing catalog entry as seen by duplicate detection.

    Only the three matching keys are needed; the snapshot is read-only.
    """

    id: Optional[str] = Field(None, description="Catalog product UUID")
    sku: Optional[str] = Field(None, description="Product SKU")
    barcode: Optional[str] = Field(None, description="EAN/GTIN barcode")
    name: Optional[str] = Field(None, description="Product name")


# ===================
# API RESPONSES
# ===================

class TopErrorResponse(ResponseSchema):
    message: str
    count: int


class ImportReportResponse(ResponseSchema):
    """Aggregate over all validated rows."""

    total: int
    valid: int
    invalid: int
    with_warnings: int
    top_errors: list[TopErrorResponse]
    estimated_revenue: Decimal
    total_cost: Decimal
    summary: str


class ValidationOutcomeResponse(ResponseSchema):
    """Per-row validation result."""

    row_number: int
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    data: dict[str, str]
    duplicate: bool = False


class DuplicateMatchResponse(ResponseSchema):
    row_number: int
    matched_by: str
    value: str
    source: str
    existing_id: Optional[str] = None


class ImportEstimateResponse(ResponseSchema):
    estimated_time_ms: int
    message: str


class ImportPreviewResponse(ResponseSchema):
    """Response for POST /api/products/import/preview."""

    format: ImportFormat
    headers: list[str]
    total_rows: int
    preview: list[list[str]]
    mapping: dict[str, str]
    unmapped_columns: list[str]
    report: ImportReportResponse
    outcomes: list[ValidationOutcomeResponse]
    duplicates: list[DuplicateMatchResponse]
    conflicts: list[int]
    ready_rows: list[int]
    estimate: ImportEstimateResponse


class ImportCommitResponse(ResponseSchema):
    """Response for POST /api/products/import/commit."""

    success: bool
    records_created: int
    skipped_invalid: list[int]
    skipped_duplicates: list[int]
    report: ImportReportResponse
    message: str


class CanonicalFieldInfo(ResponseSchema):
    field: CanonicalField
    synonyms: list[str]
