"""
Unit tests for SupabaseProductStore.

Run: pytest tests/unit/test_product_store.py -v
"""

import pytest

from services.product_store import SupabaseProductStore, _escape_like
from models.product_import import CatalogProduct
from exceptions import DatabaseError


class TestSupabaseProductStoreLookups:
    """Tests for find_by_sku(), find_by_barcode(), find_by_name()"""

    def test_find_by_sku_is_case_insensitive(self, mock_db, mock_supabase, sample_catalog_rows):
        # Arrange
        mock_supabase.set_table_data("products", sample_catalog_rows)
        store = SupabaseProductStore()

        # Act
        product = store.find_by_sku(" ntb-dll-001 ")

        # Assert
        assert isinstance(product, CatalogProduct)
        assert product.id == "uuid-1"

    def test_find_by_sku_not_found(self, mock_db, mock_supabase, sample_catalog_rows):
        mock_supabase.set_table_data("products", sample_catalog_rows)
        store = SupabaseProductStore()

        assert store.find_by_sku("NOPE-999") is None

    def test_find_by_barcode_strips_punctuation(self, mock_db, mock_supabase, sample_catalog_rows):
        mock_supabase.set_table_data("products", sample_catalog_rows)
        store = SupabaseProductStore()

        product = store.find_by_barcode("789-0000-00001-7")

        assert product.id == "uuid-3"
        assert product.sku is None

    def test_find_by_name_is_case_insensitive(self, mock_db, mock_supabase, sample_catalog_rows):
        mock_supabase.set_table_data("products", sample_catalog_rows)
        store = SupabaseProductStore()

        product = store.find_by_name("MOUSE LOGITECH")

        assert product.id == "uuid-2"

    def test_sku_with_wildcard_characters_matches_literally(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("products", [
            {"id": "uuid-9", "sku": "CAB_100%", "barcode": None, "name": "Cabo"},
        ])
        store = SupabaseProductStore()

        assert store.find_by_sku("cab_100%").id == "uuid-9"

    def test_blank_keys_skip_the_query(self, mock_supabase):
        mock_supabase.table("products").fail_selects = "should not be called"
        store = SupabaseProductStore(client=mock_supabase)

        assert store.find_by_sku("  ") is None
        assert store.find_by_barcode("---") is None
        assert store.find_by_name("") is None

    def test_query_failure_raises_database_error(self, mock_supabase):
        mock_supabase.table("products").fail_selects = "connection reset"
        store = SupabaseProductStore(client=mock_supabase)

        with pytest.raises(DatabaseError) as exc_info:
            store.find_by_sku("NTB-DLL-001")

        assert exc_info.value.code == "DATABASE_ERROR"
        assert "connection reset" in exc_info.value.message

    def test_custom_table(self, mock_supabase):
        mock_supabase.set_table_data("catalog_items", [
            {"id": "c1", "sku": "X1", "barcode": None, "name": "Item"},
        ])
        store = SupabaseProductStore(client=mock_supabase, table="catalog_items")

        assert store.find_by_sku("x1").id == "c1"


class TestSupabaseProductStoreBulkInsert:
    """Tests for bulk_insert()"""

    def test_inserts_rows(self, mock_db, mock_supabase):
        store = SupabaseProductStore()
        rows = [
            {"name": "Mouse", "sku": "M1", "price": 29.9, "active": True},
            {"name": "Teclado", "sku": "T1", "price": 99.0, "active": True},
        ]

        inserted = store.bulk_insert(rows)

        assert inserted == 2
        assert [row["sku"] for row in mock_supabase.table("products").inserted] == ["M1", "T1"]

    def test_empty_batch_is_a_no_op(self, mock_supabase):
        mock_supabase.table("products").fail_inserts = "should not be called"
        store = SupabaseProductStore(client=mock_supabase)

        assert store.bulk_insert([]) == 0

    def test_insert_failure_raises_database_error(self, mock_supabase):
        mock_supabase.table("products").fail_inserts = "duplicate key value violates unique constraint"
        store = SupabaseProductStore(client=mock_supabase)

        with pytest.raises(DatabaseError) as exc_info:
            store.bulk_insert([{"name": "Mouse", "sku": "M1"}])

        assert "unique constraint" in exc_info.value.message


class TestEscapeLike:
    """Tests for _escape_like()"""

    def test_escapes_wildcards(self):
        assert _escape_like("50%_off") == "50\\%\\_off"

    def test_plain_text_unchanged(self):
        assert _escape_like("NTB-001") == "NTB-001"
