"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from unittest.mock import patch
from datetime import datetime
from typing import Generator

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


def _unescape_like(pattern: str) -> str:
    """Undo LIKE escaping; the store only sends exact (wildcard-free) patterns."""
    return (
        pattern.replace("\\%", "%")
        .replace("\\_", "_")
        .replace("\\\\", "\\")
    )


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable, filtering methods."""

    def __init__(self, table: "MockSupabaseTable"):
        self._table = table
        self._data = list(table.rows)
        self._limit = None
        self._insert = None

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        if self._table.fail_inserts:
            raise RuntimeError(self._table.fail_inserts)
        if isinstance(data, dict):
            data = [data]
        inserted = []
        for item in data:
            row = dict(item)
            row.setdefault("id", f"test-uuid-{len(self._table.rows) + len(inserted) + 1}")
            row["created_at"] = datetime.utcnow().isoformat() + "Z"
            inserted.append(row)
        self._insert = inserted
        return self

    def eq(self, column, value):
        self._data = [row for row in self._data if row.get(column) == value]
        return self

    def ilike(self, column, pattern):
        expected = _unescape_like(pattern).lower()
        self._data = [
            row for row in self._data
            if row.get(column) is not None and str(row[column]).lower() == expected
        ]
        return self

    def limit(self, count):
        self._limit = count
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._table.fail_selects and self._insert is None:
            raise RuntimeError(self._table.fail_selects)
        if self._insert is not None:
            self._table.rows.extend(self._insert)
            self._table.inserted.extend(self._insert)
            return MockSupabaseResponse(data=self._insert)
        data = self._data if self._limit is None else self._data[:self._limit]
        return MockSupabaseResponse(data=data)


class MockSupabaseTable:
    """Mock Supabase table backed by a list of row dicts."""

    def __init__(self, rows: list = None):
        self.rows = list(rows or [])
        self.inserted: list[dict] = []
        self.fail_selects: str = ""
        self.fail_inserts: str = ""

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self).select(*args, **kwargs)

    def insert(self, data):
        return MockSupabaseQuery(self).insert(data)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure mock rows for a table."""
        self._tables[table_name] = MockSupabaseTable(data)

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        if name not in self._tables:
            self._tables[name] = MockSupabaseTable()
        return self._tables[name]


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("products", [
                {"id": "1", "sku": "NTB-001", "barcode": None, "name": "Notebook"}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Usage:
        def test_something(mock_db, mock_supabase):
            mock_supabase.set_table_data("products", [...])
            # Now any code using get_supabase_client() gets the mock
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.product_store.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase


@pytest.fixture
def sample_catalog_rows() -> list:
    """Existing catalog products, as stored."""
    return [
        {
            "id": "uuid-1",
            "sku": "NTB-DLL-001",
            "barcode": "7891234567890",
            "name": "Notebook Dell Inspiron",
        },
        {
            "id": "uuid-2",
            "sku": "MOU-LOG-002",
            "barcode": None,
            "name": "Mouse Logitech",
        },
        {
            "id": "uuid-3",
            "sku": None,
            "barcode": "7890000000017",
            "name": "Teclado ABNT2",
        },
    ]


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    The catalog store is disabled, so duplicates are only detected within
    the uploaded file.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/products/import/fields")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.product_import._catalog_store", return_value=None):
        yield TestClient(app)


@pytest.fixture
def test_client_with_mock_db(mock_supabase):
    """
    Create FastAPI test client whose catalog store reads the mock database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("products", [...])
            response = test_client_with_mock_db.post("/api/products/import/commit", ...)
    """
    from fastapi.testclient import TestClient
    from main import app
    from services.product_store import SupabaseProductStore

    store = SupabaseProductStore(client=mock_supabase)

    with patch("routes.product_import._catalog_store", return_value=store):
        yield TestClient(app)
