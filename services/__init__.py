"""
Business logic services.

Each service handles one stage of the product import.
"""

from services.product_store import ProductStore, SupabaseProductStore, get_product_store
from services.product_import_validator import (
    ValidationOutcome,
    validate_import_record,
    validate_import_records,
    to_catalog_row,
)
from services.product_import_service import (
    ProductImportService,
    ImportPipelineResult,
    ImportReport,
    DuplicatePartition,
    DuplicateMatch,
    TopError,
    partition_duplicates,
    build_catalog_snapshot,
    build_import_report,
)
from services.import_template_service import generate_import_template, template_filename

__all__ = [
    "ProductStore",
    "SupabaseProductStore",
    "get_product_store",
    "ValidationOutcome",
    "validate_import_record",
    "validate_import_records",
    "to_catalog_row",
    "ProductImportService",
    "ImportPipelineResult",
    "ImportReport",
    "DuplicatePartition",
    "DuplicateMatch",
    "TopError",
    "partition_duplicates",
    "build_catalog_snapshot",
    "build_import_report",
    "generate_import_template",
    "template_filename",
]
