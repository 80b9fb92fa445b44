"""
Product catalog store.

The importer only reads the catalog (three point lookups used for
duplicate detection); inserting accepted rows is left to the caller through
bulk_insert. The catalog enforces its own uniqueness at write time.
"""

from typing import Optional, Protocol
import structlog

from config import get_supabase_client
from config.settings import settings
from exceptions import DatabaseError
from models.product_import import CatalogProduct
from utils.text_utils import only_digits

logger = structlog.get_logger(__name__)

CATALOG_KEY_COLUMNS = "id, sku, barcode, name"


class ProductStore(Protocol):
    """Catalog capability required by the import pipeline."""

    def find_by_sku(self, sku: str) -> Optional[CatalogProduct]:
        ...

    def find_by_barcode(self, barcode: str) -> Optional[CatalogProduct]:
        ...

    def find_by_name(self, name: str) -> Optional[CatalogProduct]:
        ...

    def bulk_insert(self, rows: list[dict]) -> int:
        ...


class SupabaseProductStore:
    """
    ProductStore backed by the Supabase products table.

    SKU and name lookups are case-insensitive; barcodes are stored and
    compared digit-only.
    """

    def __init__(self, client=None, table: Optional[str] = None):
        self.db = client or get_supabase_client()
        self.table = table or settings.products_table

    # ===================
    # READ OPERATIONS
    # ===================

    def find_by_sku(self, sku: str) -> Optional[CatalogProduct]:
        """Case-insensitive exact SKU lookup."""
        if not sku or not sku.strip():
            return None
        return self._find_one("sku", _escape_like(sku.strip()), case_insensitive=True)

    def find_by_barcode(self, barcode: str) -> Optional[CatalogProduct]:
        """Digit-only barcode lookup."""
        digits = only_digits(barcode)
        if not digits:
            return None
        return self._find_one("barcode", digits)

    def find_by_name(self, name: str) -> Optional[CatalogProduct]:
        """Case-insensitive exact name lookup."""
        if not name or not name.strip():
            return None
        return self._find_one("name", _escape_like(name.strip()), case_insensitive=True)

    def _find_one(
        self,
        column: str,
        value: str,
        case_insensitive: bool = False
    ) -> Optional[CatalogProduct]:
        logger.debug("catalog_lookup", column=column)

        try:
            query = self.db.table(self.table).select(CATALOG_KEY_COLUMNS)
            if case_insensitive:
                query = query.ilike(column, value)
            else:
                query = query.eq(column, value)
            result = query.limit(1).execute()

            if not result.data:
                return None

            return CatalogProduct(**result.data[0])

        except Exception as e:
            logger.error(
                "catalog_lookup_failed",
                column=column,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def bulk_insert(self, rows: list[dict]) -> int:
        """
        Insert catalog rows in one request.

        Returns:
            Number of rows inserted

        Raises:
            DatabaseError: If the insert fails (including uniqueness conflicts)
        """
        if not rows:
            return 0

        logger.info("bulk_inserting_products", count=len(rows))

        try:
            result = self.db.table(self.table).insert(rows).execute()
            inserted = len(result.data or [])

            logger.info("products_bulk_inserted", inserted=inserted)

            return inserted

        except Exception as e:
            logger.error(
                "bulk_insert_products_failed",
                count=len(rows),
                error=str(e)
            )
            raise DatabaseError("insert", str(e))


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike behaves as case-insensitive equality."""
    return (
        value.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )


# Singleton instance for convenience
_product_store: Optional[SupabaseProductStore] = None

def get_product_store() -> SupabaseProductStore:
    """Get or create SupabaseProductStore instance."""
    global _product_store
    if _product_store is None:
        _product_store = SupabaseProductStore()
    return _product_store
