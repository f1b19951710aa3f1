"""
Validation module initialization.
"""
from invoicedesk.validation.validators import (
    MAGIC_BYTES,
    canonical_file_type,
    detect_file_type,
    file_extension,
    parse_date,
    parse_decimal,
    sanitize_filename,
)

__all__ = [
    "MAGIC_BYTES",
    "canonical_file_type",
    "detect_file_type",
    "file_extension",
    "parse_date",
    "parse_decimal",
    "sanitize_filename",
]
