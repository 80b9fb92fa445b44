"""
Custom exception classes for the application.

Row-level validation problems are never raised; they are collected on the
ValidationOutcome. Only failures that stop a whole import live here.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_TOO_FEW_ROWS")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# DECODE ERRORS
# ===================

class ImportDecodeError(ValidationError):
    """
    Import file could not be decoded into a table.

    Fatal for the whole import: no row is validated and no report is built.
    """

    def __init__(
        self,
        message: str,
        code: str = "IMPORT_DECODE_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details=details
        )


class TooFewRowsError(ImportDecodeError):
    """File has no header row or no data row."""

    def __init__(self, import_format: str, line_count: int):
        super().__init__(
            code="IMPORT_TOO_FEW_ROWS",
            message="File must contain a header row and at least one data row",
            details={"format": import_format, "rows_found": line_count}
        )


class NoSheetsError(ImportDecodeError):
    """Workbook contains no worksheet."""

    def __init__(self):
        super().__init__(
            code="IMPORT_NO_SHEETS",
            message="Spreadsheet does not contain any worksheet"
        )


class NotAnArrayError(ImportDecodeError):
    """JSON root is not a list."""

    def __init__(self, found_type: str):
        super().__init__(
            code="IMPORT_NOT_AN_ARRAY",
            message="JSON file must contain an array of objects",
            details={"found": found_type}
        )


class EmptyImportError(ImportDecodeError):
    """JSON array has no elements."""

    def __init__(self):
        super().__init__(
            code="IMPORT_EMPTY",
            message="JSON file is empty"
        )


class NotAnObjectError(ImportDecodeError):
    """JSON array element is not an object."""

    def __init__(self, index: int, found_type: str):
        super().__init__(
            code="IMPORT_NOT_AN_OBJECT",
            message=f"JSON element {index} is not an object",
            details={"index": index, "found": found_type}
        )


class UnreadableFileError(ImportDecodeError):
    """Container is malformed (broken workbook, invalid JSON, ...)."""

    def __init__(self, import_format: str, original_error: str):
        super().__init__(
            code="IMPORT_UNREADABLE_FILE",
            message=f"Failed to read {import_format} file",
            details={"format": import_format, "original_error": original_error}
        )


class UnsupportedFormatError(ImportDecodeError):
    """File extension or declared format is not supported."""

    def __init__(self, provided: str):
        super().__init__(
            code="IMPORT_UNSUPPORTED_FORMAT",
            message=f"Unsupported import format: {provided}",
            details={"provided": provided, "valid": ["csv", "xlsx", "json"]}
        )


# ===================
# IMPORT ERRORS
# ===================

class ImportFileRejectedError(ValidationError):
    """Uploaded file rejected before decoding (size, extension, name)."""

    def __init__(self, filename: str, problems: list[str]):
        super().__init__(
            code="IMPORT_FILE_REJECTED",
            message="; ".join(problems),
            details={"filename": filename, "problems": problems}
        )


class InvalidColumnMappingError(ValidationError):
    """Caller-supplied column mapping names an unknown field."""

    def __init__(self, invalid: dict[str, str], valid: list[str]):
        super().__init__(
            code="IMPORT_INVALID_MAPPING",
            message=f"Unknown target fields in column mapping: {', '.join(sorted(set(invalid.values())))}",
            details={"invalid": invalid, "valid": valid}
        )


class InvalidImportRecordError(ValidationError):
    """An invalid row was about to be forwarded for insertion."""

    def __init__(self, row_number: int, errors: list[str]):
        super().__init__(
            code="IMPORT_INVALID_RECORD",
            message=f"Row {row_number} is not valid and cannot be inserted",
            details={"row": row_number, "errors": errors}
        )
