"""
Product import service.

Runs the import chain end to end:

    bytes -> DecodedTable -> records -> ValidationOutcomes -> partition + report

Duplicate detection is advisory: it reads a point-in-time snapshot of the
catalog and the catalog still enforces uniqueness when rows are inserted.
The service never writes to the catalog itself.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional, Sequence, Union
import structlog

from models.product_import import (
    CanonicalField,
    CatalogProduct,
    ImportFormat,
    RawImportRecord,
)
from parsers.column_mapping import MappedImport, map_import_rows
from parsers.product_import_parser import DecodedTable, decode_import_file
from services.product_import_validator import (
    ValidationOutcome,
    parse_decimal,
    to_catalog_row,
    validate_import_records,
)
from services.product_store import ProductStore
from utils.text_utils import only_digits

logger = structlog.get_logger(__name__)

TOP_ERRORS_LIMIT = 5

# Match keys, strongest first
MATCH_SKU = "sku"
MATCH_BARCODE = "barcode"
MATCH_NAME = "name"
MATCH_PRECEDENCE = (MATCH_SKU, MATCH_BARCODE, MATCH_NAME)

SOURCE_CATALOG = "catalog"
SOURCE_BATCH = "batch"


# ===================
# DATA CLASSES
# ===================

@dataclass
class DuplicateMatch:
    """Why one incoming record was classified as a duplicate."""
    index: int
    matched_by: str
    value: str
    source: str
    existing_id: Optional[str] = None


@dataclass
class DuplicatePartition:
    """Incoming records split into already-known and new."""
    duplicates: list[int] = field(default_factory=list)
    unique: list[RawImportRecord] = field(default_factory=list)
    matches: list[DuplicateMatch] = field(default_factory=list)

    # Records whose keys point at more than one existing product
    conflicts: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "duplicates": list(self.duplicates),
            "unique_count": len(self.unique),
            "matches": [
                {
                    "index": m.index,
                    "matched_by": m.matched_by,
                    "value": m.value,
                    "source": m.source,
                    "existing_id": m.existing_id,
                }
                for m in self.matches
            ],
            "conflicts": list(self.conflicts),
        }


@dataclass
class TopError:
    message: str
    count: int


@dataclass
class ImportReport:
    """Aggregate over every ValidationOutcome of one import run."""
    total: int = 0
    valid: int = 0
    invalid: int = 0
    with_warnings: int = 0
    top_errors: list[TopError] = field(default_factory=list)
    estimated_revenue: Decimal = field(default_factory=lambda: Decimal("0"))
    total_cost: Decimal = field(default_factory=lambda: Decimal("0"))

    @property
    def summary(self) -> str:
        return (
            f"Total: {self.total} | Valid: {self.valid} | "
            f"Invalid: {self.invalid} | With warnings: {self.with_warnings}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "total": self.total,
            "valid": self.valid,
            "invalid": self.invalid,
            "with_warnings": self.with_warnings,
            "top_errors": [
                {"message": e.message, "count": e.count}
                for e in self.top_errors
            ],
            "estimated_revenue": self.estimated_revenue,
            "total_cost": self.total_cost,
            "summary": self.summary,
        }


@dataclass
class ImportPipelineResult:
    """Everything one import run produced, in row order."""
    table: DecodedTable
    mapped: MappedImport
    outcomes: list[ValidationOutcome]
    partition: DuplicatePartition
    report: ImportReport

    # Valid outcomes, in the order they were fed to partitioning
    valid_outcomes: list[ValidationOutcome] = field(default_factory=list)

    @property
    def invalid_rows(self) -> list[int]:
        return [o.row_number for o in self.outcomes if not o.is_valid]

    @property
    def duplicate_rows(self) -> list[int]:
        return [self.valid_outcomes[i].row_number for i in self.partition.duplicates]

    @property
    def conflict_rows(self) -> list[int]:
        return [self.valid_outcomes[i].row_number for i in self.partition.conflicts]

    @property
    def ready_outcomes(self) -> list[ValidationOutcome]:
        """Valid, non-duplicate outcomes eligible for insertion."""
        duplicates = set(self.partition.duplicates)
        return [
            outcome for i, outcome in enumerate(self.valid_outcomes)
            if i not in duplicates
        ]

    @property
    def ready_records(self) -> list[RawImportRecord]:
        return [o.data for o in self.ready_outcomes]

    @property
    def ready_rows(self) -> list[int]:
        return [o.row_number for o in self.ready_outcomes]

    def catalog_rows(self) -> list[dict]:
        """Rows ready for ProductStore.bulk_insert."""
        return [to_catalog_row(outcome) for outcome in self.ready_outcomes]


# ===================
# DUPLICATE DETECTION
# ===================

def _sku_key(value: Optional[str]) -> str:
    return value.strip().lower() if value else ""


def _name_key(value: Optional[str]) -> str:
    return value.strip().lower() if value else ""


def _record_keys(record: RawImportRecord) -> dict[str, str]:
    return {
        MATCH_SKU: _sku_key(record.get(CanonicalField.SKU)),
        MATCH_BARCODE: only_digits(record.get(CanonicalField.BARCODE)),
        MATCH_NAME: _name_key(record.get(CanonicalField.NAME)),
    }


def _entry_keys(entry: CatalogProduct) -> dict[str, str]:
    return {
        MATCH_SKU: _sku_key(entry.sku),
        MATCH_BARCODE: only_digits(entry.barcode),
        MATCH_NAME: _name_key(entry.name),
    }


def match_record(
    record_keys: Mapping[str, str],
    entry_keys: Mapping[str, str],
) -> Optional[str]:
    """
    Compare one record with one existing product.

    The first key both sides carry decides (sku, then barcode, then name);
    keys either side lacks are skipped.

    Returns:
        The deciding key if it matched, otherwise None
    """
    for key in MATCH_PRECEDENCE:
        if record_keys[key] and entry_keys[key]:
            return key if record_keys[key] == entry_keys[key] else None
    return None


class _CatalogIndex:
    """Existing products indexed by each match key."""

    def __init__(self):
        self.entries: list[tuple[CatalogProduct, dict[str, str], str]] = []
        self._by_key: dict[str, dict[str, list[int]]] = {
            key: defaultdict(list) for key in MATCH_PRECEDENCE
        }

    def add(self, entry: CatalogProduct, source: str) -> None:
        keys = _entry_keys(entry)
        position = len(self.entries)
        self.entries.append((entry, keys, source))
        for key, value in keys.items():
            if value:
                self._by_key[key][value].append(position)

    def matches(self, record_keys: Mapping[str, str]) -> list[tuple[int, str]]:
        """(entry position, deciding key) for every entry the record matches."""
        candidates = set()
        for key, value in record_keys.items():
            if value:
                candidates.update(self._by_key[key].get(value, ()))

        found = []
        for position in sorted(candidates):
            matched_by = match_record(record_keys, self.entries[position][1])
            if matched_by is not None:
                found.append((position, matched_by))
        return found


def partition_duplicates(
    records: Sequence[RawImportRecord],
    catalog: Sequence[CatalogProduct],
) -> DuplicatePartition:
    """
    Split records into duplicates and unique ones.

    Each record is compared with the catalog snapshot and with the unique
    records accepted before it in the same batch. The strongest matching
    key wins (sku, barcode, name); a record matching several different
    products is also listed in conflicts.

    Callers should only pass records that passed validation.

    Args:
        records: Mapped records (valid only)
        catalog: Point-in-time snapshot of existing products

    Returns:
        DuplicatePartition with indexes into records
    """
    index = _CatalogIndex()
    for entry in catalog:
        index.add(entry, SOURCE_CATALOG)

    partition = DuplicatePartition()

    for position, record in enumerate(records):
        record_keys = _record_keys(record)
        found = index.matches(record_keys)

        if not found:
            partition.unique.append(record)
            index.add(
                CatalogProduct(
                    sku=record.get(CanonicalField.SKU),
                    barcode=record.get(CanonicalField.BARCODE),
                    name=record.get(CanonicalField.NAME),
                ),
                SOURCE_BATCH,
            )
            continue

        entry_position, matched_by = min(
            found,
            key=lambda item: (MATCH_PRECEDENCE.index(item[1]), item[0])
        )
        entry, _, source = index.entries[entry_position]

        partition.duplicates.append(position)
        partition.matches.append(DuplicateMatch(
            index=position,
            matched_by=matched_by,
            value=record_keys[matched_by],
            source=source,
            existing_id=entry.id,
        ))
        if len(found) > 1:
            partition.conflicts.append(position)

    logger.info(
        "duplicate_partition_completed",
        record_count=len(records),
        catalog_count=len(catalog),
        duplicates=len(partition.duplicates),
        conflicts=len(partition.conflicts)
    )

    return partition


def build_catalog_snapshot(
    records: Sequence[RawImportRecord],
    store: ProductStore,
) -> list[CatalogProduct]:
    """
    Read the existing products any record could collide with.

    Uses only the store's sku/barcode/name lookups; the result is a
    point-in-time snapshot, deduplicated by product id.
    """
    snapshot: list[CatalogProduct] = []
    seen = set()

    for record in records:
        found = []
        sku = record.get(CanonicalField.SKU)
        barcode = only_digits(record.get(CanonicalField.BARCODE))
        name = record.get(CanonicalField.NAME)

        if sku:
            found.append(store.find_by_sku(sku))
        if barcode:
            found.append(store.find_by_barcode(barcode))
        if name:
            found.append(store.find_by_name(name))

        for product in found:
            if product is None:
                continue
            identity = product.id or (product.sku, product.barcode, product.name)
            if identity in seen:
                continue
            seen.add(identity)
            snapshot.append(product)

    logger.debug("catalog_snapshot_built", record_count=len(records), product_count=len(snapshot))

    return snapshot


# ===================
# REPORTING
# ===================

def build_import_report(outcomes: Sequence[ValidationOutcome]) -> ImportReport:
    """
    Aggregate validation outcomes into an ImportReport.

    Top errors are the most frequent distinct messages, ties broken by the
    order they first appeared. Revenue and cost only count valid rows; a
    missing cost counts as zero.
    """
    error_counts = Counter()
    for outcome in outcomes:
        error_counts.update(outcome.errors)

    valid_outcomes = [o for o in outcomes if o.is_valid]

    estimated_revenue = Decimal("0")
    total_cost = Decimal("0")
    for outcome in valid_outcomes:
        estimated_revenue += parse_decimal(outcome.data.get(CanonicalField.PRICE)) or Decimal("0")
        total_cost += parse_decimal(outcome.data.get(CanonicalField.COST)) or Decimal("0")

    report = ImportReport(
        total=len(outcomes),
        valid=len(valid_outcomes),
        invalid=len(outcomes) - len(valid_outcomes),
        with_warnings=sum(1 for o in outcomes if o.has_warnings),
        # most_common keeps first-seen order among equal counts
        top_errors=[
            TopError(message=message, count=count)
            for message, count in error_counts.most_common(TOP_ERRORS_LIMIT)
        ],
        estimated_revenue=estimated_revenue,
        total_cost=total_cost,
    )

    logger.info(
        "import_report_built",
        total=report.total,
        valid=report.valid,
        invalid=report.invalid,
        with_warnings=report.with_warnings
    )

    return report


# ===================
# PIPELINE
# ===================

class ProductImportService:
    """
    Bulk product import pipeline.

    Holds no state between runs; the store is only read for the duplicate
    snapshot.
    """

    def __init__(self, store: Optional[ProductStore] = None):
        self.store = store

    def run(
        self,
        content: bytes,
        import_format: Union[ImportFormat, str],
        mapping: Optional[Mapping[str, Union[CanonicalField, str]]] = None,
    ) -> ImportPipelineResult:
        """
        Decode, map, validate, deduplicate and summarize one file.

        Args:
            content: Raw file bytes
            import_format: Declared container format
            mapping: Optional header -> field mapping replacing inference

        Returns:
            ImportPipelineResult

        Raises:
            ImportDecodeError: If the file cannot be decoded
            InvalidColumnMappingError: If the mapping names unknown fields
            DatabaseError: If the catalog snapshot cannot be read
        """
        logger.info(
            "product_import_started",
            format=str(getattr(import_format, "value", import_format)),
            size_bytes=len(content),
            custom_mapping=mapping is not None
        )

        table = decode_import_file(content, import_format)
        mapped = map_import_rows(table.headers, table.rows, mapping)
        outcomes = validate_import_records(mapped.records, row_shapes=mapped.row_shapes)

        valid_outcomes = [o for o in outcomes if o.is_valid]
        valid_records = [o.data for o in valid_outcomes]

        catalog = build_catalog_snapshot(valid_records, self.store) if self.store else []
        partition = partition_duplicates(valid_records, catalog)
        report = build_import_report(outcomes)

        result = ImportPipelineResult(
            table=table,
            mapped=mapped,
            outcomes=outcomes,
            partition=partition,
            report=report,
            valid_outcomes=valid_outcomes,
        )

        logger.info(
            "product_import_completed",
            total=report.total,
            ready=len(result.ready_rows),
            duplicates=len(partition.duplicates),
            invalid=report.invalid
        )

        return result
