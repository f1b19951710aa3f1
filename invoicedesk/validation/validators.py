"""
Input validation and sanitization utilities.

Shared by upload intake, invoice editing and review commits.
"""
import re
import unicodedata
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


# File type magic bytes signatures
MAGIC_BYTES = {
    "pdf": [b"%PDF"],
    "png": [b"\x89PNG\r\n\x1a\n"],
    "jpg": [b"\xff\xd8\xff"],
    "tiff": [b"II*\x00", b"MM\x00*"],
}

# Extension aliases that share a signature
EXTENSION_ALIASES = {"jpeg": "jpg", "tif": "tiff"}

UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

# Strips currency symbols, codes and thousands separators before Decimal parsing
AMOUNT_NOISE = re.compile(r"[\s,$€£¥]|USD|EUR|GBP", re.IGNORECASE)


def file_extension(filename: str) -> str:
    """Lower-case extension without the dot, or an empty string."""
    suffix = Path(filename).suffix
    return suffix[1:].lower() if suffix else ""


def canonical_file_type(extension: str) -> str:
    return EXTENSION_ALIASES.get(extension, extension)


def detect_file_type(file_content: bytes) -> Optional[str]:
    """
    Detect a file type from its leading magic bytes.

    Returns:
        One of the MAGIC_BYTES keys, or None if unrecognised.
    """
    for file_type, signatures in MAGIC_BYTES.items():
        for signature in signatures:
            if file_content.startswith(signature):
                return file_type
    return None


def sanitize_filename(filename: str, max_length: int = 255) -> str:
    """
    Sanitize filename to prevent path traversal and other attacks.

    Args:
        filename: Original filename
        max_length: Maximum allowed length

    Returns:
        Sanitized filename
    """
    filename = unicodedata.normalize("NFKC", filename or "")
    # Treat both separators as path separators regardless of platform
    filename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    filename = UNSAFE_FILENAME_CHARS.sub("_", filename)
    filename = filename.strip(". ")

    if not filename:
        filename = "unnamed"

    if len(filename) > max_length:
        name, ext = filename.rsplit(".", 1) if "." in filename else (filename, "")
        max_name_len = max_length - len(ext) - 1 if ext else max_length
        filename = name[:max_name_len] + ("." + ext if ext else "")

    return filename


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a number from user or extracted input.

    Accepts ints, floats, Decimals and strings such as "$1,750.50".
    Returns None when the value is not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        parsed = Decimal(str(value))
        return parsed if parsed.is_finite() else None
    text = AMOUNT_NOISE.sub("", str(value))
    if not text:
        return None
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO date (or datetime) value; None when it is not a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None
