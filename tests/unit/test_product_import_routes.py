"""
Unit tests for the product import API routes.

Run: pytest tests/unit/test_product_import_routes.py -v
"""

import json
from decimal import Decimal

from tests.factories import build_csv, build_json

PREFIX = "/api/products/import"


def _upload(filename: str, content: bytes, content_type: str = "text/csv") -> dict:
    return {"file": (filename, content, content_type)}


class TestPreviewRoute:
    """Tests for POST /api/products/import/preview"""

    def test_preview_reports_rows(self, test_client):
        content = "sku,nome,cor,preço\nM1,Mouse,preto,29,90\nT1,,azul,15.00".encode("utf-8")

        response = test_client.post(f"{PREFIX}/preview", files=_upload("produtos.csv", content))

        assert response.status_code == 200
        body = response.json()
        assert body["format"] == "delimited"
        assert body["total_rows"] == 2
        assert body["unmapped_columns"] == ["cor"]
        assert body["mapping"]["preço"] == "price"
        assert body["report"]["total"] == 2
        assert body["report"]["valid"] == 1
        assert body["report"]["invalid"] == 1
        assert Decimal(str(body["report"]["estimated_revenue"])) == Decimal("29.90")
        assert body["outcomes"][0]["data"]["price"] == "29,90"
        assert body["ready_rows"] == [1]
        assert body["estimate"]["message"] == "Fast import (under 5 seconds)"
        assert body["report"]["with_warnings"] == 1
        assert "joined as a decimal comma into price" in body["outcomes"][0]["warnings"][0]

    def test_preview_single_letter_names_are_invalid(self, test_client):
        content = build_json([
            {"sku": "A1", "name": "X", "price": "10"},
            {"sku": "a1", "name": "Y", "price": "20"},
        ])

        response = test_client.post(
            f"{PREFIX}/preview",
            files=_upload("produtos.json", content, "application/json"),
        )

        body = response.json()
        assert response.status_code == 200
        assert body["report"]["valid"] == 0
        assert body["report"]["invalid"] == 2
        assert body["duplicates"] == []
        assert body["ready_rows"] == []

    def test_preview_marks_batch_duplicates(self, test_client):
        content = build_json([
            {"sku": "A1", "name": "XX", "price": "10"},
            {"sku": "a1", "name": "YY", "price": "20"},
        ])

        response = test_client.post(
            f"{PREFIX}/preview",
            files=_upload("produtos.json", content, "application/json"),
        )

        body = response.json()
        assert response.status_code == 200
        assert body["report"]["valid"] == 2
        assert [o["duplicate"] for o in body["outcomes"]] == [False, True]
        assert body["duplicates"][0]["row_number"] == 2
        assert body["duplicates"][0]["matched_by"] == "sku"
        assert body["ready_rows"] == [1]

    def test_preview_with_custom_mapping(self, test_client):
        content = build_csv(["Coluna A", "Coluna B", "Coluna C"], [["Mouse", "M1", "29.90"]])
        mapping = {"Coluna A": "name", "Coluna B": "sku", "Coluna C": "price"}

        response = test_client.post(
            f"{PREFIX}/preview",
            files=_upload("produtos.csv", content),
            data={"mapping": json.dumps(mapping)},
        )

        assert response.status_code == 200
        assert response.json()["report"]["valid"] == 1

    def test_preview_format_override(self, test_client):
        content = build_csv(["nome", "sku", "preço"], [["Mouse", "M1", "29.90"]])

        response = test_client.post(
            f"{PREFIX}/preview",
            files=_upload("produtos.txt", content, "text/plain"),
            data={"format": "delimited"},
        )

        assert response.status_code == 200
        assert response.json()["report"]["valid"] == 1

    def test_invalid_mapping_json_returns_422(self, test_client):
        content = build_csv(["nome"], [["Mouse"]])

        response = test_client.post(
            f"{PREFIX}/preview",
            files=_upload("produtos.csv", content),
            data={"mapping": "not json"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "IMPORT_INVALID_MAPPING"

    def test_rejected_extension_returns_422(self, test_client):
        response = test_client.post(
            f"{PREFIX}/preview",
            files=_upload("produtos.pdf", b"%PDF-1.4", "application/pdf"),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "IMPORT_FILE_REJECTED"

    def test_undecodable_file_returns_422(self, test_client):
        response = test_client.post(
            f"{PREFIX}/preview",
            files=_upload("produtos.json", b"{}", "application/json"),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "IMPORT_NOT_AN_ARRAY"


class TestCommitRoute:
    """Tests for POST /api/products/import/commit"""

    def test_commit_inserts_ready_rows(self, test_client_with_mock_db, mock_supabase, sample_catalog_rows):
        # Arrange
        mock_supabase.set_table_data("products", sample_catalog_rows)
        content = build_csv(
            ["sku", "nome", "preço", "custo"],
            [
                ["ntb-dll-001", "Notebook Repetido", "3500", "2800"],
                ["CAB-HDMI-2M", "Cabo HDMI 2m", "\"39,90\"", "12.50"],
                ["X", "Sem SKU valido", "10", ""],
            ],
        )

        # Act
        response = test_client_with_mock_db.post(
            f"{PREFIX}/commit",
            files=_upload("produtos.csv", content),
        )

        # Assert
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["records_created"] == 1
        assert body["skipped_duplicates"] == [1]
        assert body["skipped_invalid"] == [3]

        inserted = mock_supabase.table("products").inserted
        assert len(inserted) == 1
        assert inserted[0]["sku"] == "CAB-HDMI-2M"
        assert inserted[0]["price"] == 39.9
        assert inserted[0]["active"] is True

    def test_commit_skips_row_with_shifted_columns(self, test_client_with_mock_db, mock_supabase):
        content = "nome,preço,sku\nMouse,29,90,AB1\nTeclado,99.00,TC1".encode("utf-8")

        response = test_client_with_mock_db.post(f"{PREFIX}/commit", files=_upload("produtos.csv", content))

        assert response.status_code == 201
        body = response.json()
        assert body["records_created"] == 1
        assert body["skipped_invalid"] == [1]
        assert [row["sku"] for row in mock_supabase.table("products").inserted] == ["TC1"]

    def test_commit_without_catalog_returns_503(self, test_client):
        content = build_csv(["nome", "sku", "preço"], [["Mouse", "M1", "29.90"]])

        response = test_client.post(f"{PREFIX}/commit", files=_upload("produtos.csv", content))

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "CATALOG_UNAVAILABLE"

    def test_commit_insert_failure_returns_500(self, test_client_with_mock_db, mock_supabase):
        mock_supabase.table("products").fail_inserts = "duplicate key value"
        content = build_csv(["nome", "sku", "preço"], [["Mouse", "M1", "29.90"]])

        response = test_client_with_mock_db.post(f"{PREFIX}/commit", files=_upload("produtos.csv", content))

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "DATABASE_ERROR"


class TestTemplateRoute:
    """Tests for GET /api/products/import/template/{format}"""

    def test_download_csv_template(self, test_client):
        response = test_client.get(f"{PREFIX}/template/delimited")

        assert response.status_code == 200
        assert "template_importacao_produtos.csv" in response.headers["content-disposition"]
        assert response.content.decode("utf-8").startswith("nome,descrição,sku")

    def test_download_xlsx_template(self, test_client):
        response = test_client.get(f"{PREFIX}/template/spreadsheet")

        assert response.status_code == 200
        assert response.content[:2] == b"PK"

    def test_unknown_format_returns_422(self, test_client):
        response = test_client.get(f"{PREFIX}/template/pdf")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "IMPORT_UNSUPPORTED_FORMAT"


class TestFieldsRoute:
    """Tests for GET /api/products/import/fields"""

    def test_lists_every_canonical_field(self, test_client):
        response = test_client.get(f"{PREFIX}/fields")

        assert response.status_code == 200
        fields = {item["field"]: item["synonyms"] for item in response.json()}
        assert len(fields) == 22
        assert "nome" in fields["name"]
        assert "estoque_minimo" in fields["minStock"]
