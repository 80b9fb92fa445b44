"""
Bulk product import routes.

Upload flow:
- POST /preview: decode, map, validate and deduplicate; nothing is saved
- POST /commit: same pipeline, then insert the ready rows
- GET  /template/{format}: starter file download
- GET  /fields: canonical fields and the headers that map onto them
"""

import json
from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, UploadFile, File, Form
from fastapi.responses import JSONResponse, Response
import structlog

from config.settings import settings
from exceptions import AppError, ValidationError
from models.product_import import (
    CanonicalField,
    CanonicalFieldInfo,
    DuplicateMatchResponse,
    ImportCommitResponse,
    ImportEstimateResponse,
    ImportPreviewResponse,
    ImportReportResponse,
    TopErrorResponse,
    ValidationOutcomeResponse,
)
from parsers.column_mapping import COLUMN_SYNONYMS
from parsers.product_import_parser import (
    coerce_import_format,
    detect_import_format,
    estimate_import_time,
    validate_import_file,
)
from services.import_template_service import (
    generate_import_template,
    template_filename,
    template_media_type,
)
from services.product_import_service import (
    ImportPipelineResult,
    ImportReport,
    ProductImportService,
)
from services.product_store import ProductStore, get_product_store

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# HELPERS
# ===================

def _catalog_store() -> Optional[ProductStore]:
    """Configured catalog store, or None to deduplicate within the file only."""
    if not settings.supabase_configured:
        return None
    return get_product_store()


def _parse_mapping(mapping: Optional[str]) -> Optional[dict]:
    """Decode the optional JSON mapping form field."""
    if mapping is None or not mapping.strip():
        return None
    try:
        parsed = json.loads(mapping)
    except json.JSONDecodeError as e:
        raise ValidationError(
            "mapping must be a JSON object of header -> field",
            code="IMPORT_INVALID_MAPPING",
            details={"error": str(e)}
        )
    if not isinstance(parsed, dict):
        raise ValidationError(
            "mapping must be a JSON object of header -> field",
            code="IMPORT_INVALID_MAPPING",
            details={"found_type": type(parsed).__name__}
        )
    return parsed


async def _run_pipeline(
    file: UploadFile,
    format: Optional[str],
    mapping: Optional[str],
    store: Optional[ProductStore],
) -> tuple[ImportPipelineResult, int]:
    content = await file.read()
    validate_import_file(file.filename, len(content))

    import_format = coerce_import_format(format) if format else detect_import_format(file.filename)
    service = ProductImportService(store=store)
    result = service.run(content, import_format, _parse_mapping(mapping))

    return result, len(content)


def _report_response(report: ImportReport) -> ImportReportResponse:
    return ImportReportResponse(
        total=report.total,
        valid=report.valid,
        invalid=report.invalid,
        with_warnings=report.with_warnings,
        top_errors=[
            TopErrorResponse(message=e.message, count=e.count)
            for e in report.top_errors
        ],
        estimated_revenue=report.estimated_revenue,
        total_cost=report.total_cost,
        summary=report.summary,
    )


# ===================
# ROUTES
# ===================

@router.post("/preview", response_model=ImportPreviewResponse)
async def preview_import(
    file: UploadFile = File(..., description="CSV, Excel (.xlsx) or JSON product file"),
    format: Optional[str] = Form(None, description="delimited, spreadsheet or structured"),
    mapping: Optional[str] = Form(None, description="JSON object of header -> field"),
):
    """
    Validate an import file without saving anything.

    Raises:
        422: File rejected, undecodable, or invalid mapping
    """
    try:
        result, size_bytes = await _run_pipeline(file, format, mapping, _catalog_store())

        duplicate_rows = set(result.duplicate_rows)
        estimated_ms, estimate_message = estimate_import_time(
            size_bytes, result.table.total_rows
        )

        logger.info(
            "import_preview_created",
            filename=file.filename,
            total=result.report.total,
            ready=len(result.ready_rows)
        )

        return ImportPreviewResponse(
            format=result.table.source_format,
            headers=list(result.table.headers),
            total_rows=result.table.total_rows,
            preview=result.table.preview(settings.import_preview_rows),
            mapping={header: field.value for header, field in result.mapped.mapping.items()},
            unmapped_columns=result.mapped.unmapped_columns,
            report=_report_response(result.report),
            outcomes=[
                ValidationOutcomeResponse(
                    **outcome.to_dict(),
                    duplicate=outcome.row_number in duplicate_rows,
                )
                for outcome in result.outcomes
            ],
            duplicates=[
                DuplicateMatchResponse(
                    row_number=result.valid_outcomes[match.index].row_number,
                    matched_by=match.matched_by,
                    value=match.value,
                    source=match.source,
                    existing_id=match.existing_id,
                )
                for match in result.partition.matches
            ],
            conflicts=result.conflict_rows,
            ready_rows=result.ready_rows,
            estimate=ImportEstimateResponse(
                estimated_time_ms=estimated_ms,
                message=estimate_message,
            ),
        )

    except Exception as e:
        return handle_error(e)


@router.post("/commit", response_model=ImportCommitResponse, status_code=201)
async def commit_import(
    file: UploadFile = File(..., description="CSV, Excel (.xlsx) or JSON product file"),
    format: Optional[str] = Form(None, description="delimited, spreadsheet or structured"),
    mapping: Optional[str] = Form(None, description="JSON object of header -> field"),
):
    """
    Validate an import file and insert its valid, non-duplicate rows.

    Raises:
        422: File rejected, undecodable, or invalid mapping
        503: Catalog database not configured
        500: Insert failed
    """
    try:
        store = _catalog_store()
        if store is None:
            raise AppError(
                code="CATALOG_UNAVAILABLE",
                message="Catalog database is not configured",
                status_code=503
            )

        result, _ = await _run_pipeline(file, format, mapping, store)
        created = store.bulk_insert(result.catalog_rows())

        logger.info(
            "import_committed",
            filename=file.filename,
            created=created,
            skipped_invalid=len(result.invalid_rows),
            skipped_duplicates=len(result.duplicate_rows)
        )

        return ImportCommitResponse(
            success=True,
            records_created=created,
            skipped_invalid=result.invalid_rows,
            skipped_duplicates=result.duplicate_rows,
            report=_report_response(result.report),
            message=(
                f"{created} product(s) imported. {result.report.summary}"
            ),
        )

    except Exception as e:
        return handle_error(e)


@router.get("/template/{format}")
async def download_template(format: str):
    """
    Download a starter file with the header row and one example product.

    Raises:
        422: Unknown format
    """
    try:
        import_format = coerce_import_format(format)
        content = generate_import_template(import_format)
        filename = template_filename(import_format)

        return Response(
            content=content,
            media_type=template_media_type(import_format),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    except Exception as e:
        return handle_error(e)


@router.get("/fields", response_model=list[CanonicalFieldInfo])
async def list_fields():
    """Canonical product fields with every header recognized for each."""
    synonyms = defaultdict(list)
    for header, canonical in COLUMN_SYNONYMS.items():
        synonyms[canonical].append(header)

    return [
        CanonicalFieldInfo(field=canonical, synonyms=synonyms[canonical])
        for canonical in CanonicalField
    ]
