"""
Text utilities for handling Portuguese/English import input.

Used for header normalization and identifier comparison.
"""

import re
import unicodedata
from typing import Optional

_NON_DIGITS = re.compile(r"\D")
_HEADER_SEPARATORS = re.compile(r"[\s\-]+")


def strip_accents(text: str) -> str:
    """
    Remove accent marks, keeping the base characters.

    - "Preço" → "Preco"
    - "Código de Barras" → "Codigo de Barras"
    """
    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize("NFD", text)
    return "".join(c for c in normalized if unicodedata.category(c) != "Mn")


def normalize_header(header: Optional[str]) -> str:
    """Lowercase and trim a header for synonym lookup."""
    if header is None:
        return ""
    return str(header).strip().lower()


def fold_header(header: Optional[str]) -> str:
    """
    Looser header key: accents stripped, spaces/hyphens folded to "_".

    - "  Código de Barras " → "codigo_de_barras"
    - "Estoque-Mínimo" → "estoque_minimo"
    """
    folded = strip_accents(normalize_header(header))
    return _HEADER_SEPARATORS.sub("_", folded)


def only_digits(value: Optional[str]) -> str:
    """Drop every non-digit character ("8471.30.11" → "84713011")."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", value)


def clean_cell(value: Optional[str]) -> Optional[str]:
    """
    Clean a raw cell for storage in a record.

    Returns None for empty/whitespace-only strings so blank cells read as
    absent fields downstream.
    """
    if value is None:
        return None

    value = str(value).strip()

    if not value:
        return None

    return value
