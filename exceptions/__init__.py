"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    ValidationError,
    DatabaseError,

    # Decode errors
    ImportDecodeError,
    TooFewRowsError,
    NoSheetsError,
    NotAnArrayError,
    EmptyImportError,
    NotAnObjectError,
    UnreadableFileError,
    UnsupportedFormatError,

    # Import errors
    ImportFileRejectedError,
    InvalidColumnMappingError,
    InvalidImportRecordError,
)

__all__ = [
    # Base
    "AppError",
    "ValidationError",
    "DatabaseError",

    # Decode
    "ImportDecodeError",
    "TooFewRowsError",
    "NoSheetsError",
    "NotAnArrayError",
    "EmptyImportError",
    "NotAnObjectError",
    "UnreadableFileError",
    "UnsupportedFormatError",

    # Import
    "ImportFileRejectedError",
    "InvalidColumnMappingError",
    "InvalidImportRecordError",
]
