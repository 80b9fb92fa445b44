"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, ResponseSchema
from models.product_import import (
    ImportFormat,
    CanonicalField,
    ColumnMapping,
    RawImportRecord,
    CatalogProduct,
    TopErrorResponse,
    ImportReportResponse,
    ValidationOutcomeResponse,
    DuplicateMatchResponse,
    ImportEstimateResponse,
    ImportPreviewResponse,
    ImportCommitResponse,
    CanonicalFieldInfo,
)

__all__ = [
    "BaseSchema",
    "ResponseSchema",
    "ImportFormat",
    "CanonicalField",
    "ColumnMapping",
    "RawImportRecord",
    "CatalogProduct",
    "TopErrorResponse",
    "ImportReportResponse",
    "ValidationOutcomeResponse",
    "DuplicateMatchResponse",
    "ImportEstimateResponse",
    "ImportPreviewResponse",
    "ImportCommitResponse",
    "CanonicalFieldInfo",
]
