"""
Custom exceptions for InvoiceDesk.

Provides a hierarchy of exceptions with error codes and machine-readable
kinds for consistent error handling across the pipeline and the API.
"""
from typing import Any, Dict, List, Optional


class InvoiceDeskError(Exception):
    """
    Base exception for all InvoiceDesk errors.

    Attributes:
        error_code: Unique error code (e.g., IDK-001)
        kind: Machine-readable error kind used by API clients
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "IDK-000"
    kind: str = "internal_error"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "kind": self.kind,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Validation Errors (IDK-1XX)
class ValidationError(InvoiceDeskError):
    """Input validation failed."""
    error_code = "IDK-100"
    kind = "validation_error"
    http_status = 400

    def __init__(self, message: str = "Validation failed", errors: Optional[List[dict]] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        details["errors"] = errors or []
        super().__init__(message, details=details, **kwargs)


class InvalidFileTypeError(ValidationError):
    """Uploaded file has an extension outside the allowed set."""
    error_code = "IDK-101"

    def __init__(self, filename: str, allowed: List[str], **kwargs):
        message = f"Invalid file type for '{filename}'. Allowed: {', '.join(allowed)}"
        super().__init__(
            message,
            errors=[{"field": "file", "filename": filename, "message": "extension not allowed"}],
            details={"filename": filename, "allowed_extensions": allowed},
            **kwargs,
        )


class FileTooLargeError(ValidationError):
    """File exceeds maximum size limit."""
    error_code = "IDK-102"
    http_status = 413

    def __init__(self, filename: str, size: int, max_size: int, **kwargs):
        message = f"File '{filename}' too large. Maximum size: {max_size // (1024 * 1024)}MB"
        super().__init__(
            message,
            errors=[{"field": "file", "filename": filename, "message": "file too large"}],
            details={"filename": filename, "size": size, "max_size": max_size},
            **kwargs,
        )


class EmptyFileError(ValidationError):
    """Uploaded file has no content."""
    error_code = "IDK-103"

    def __init__(self, filename: str, **kwargs):
        super().__init__(
            f"File '{filename}' is empty",
            errors=[{"field": "file", "filename": filename, "message": "file is empty"}],
            details={"filename": filename},
            **kwargs,
        )


# Lookup Errors (IDK-2XX)
class NotFoundError(InvoiceDeskError):
    """Requested entity does not exist."""
    error_code = "IDK-200"
    kind = "not_found"
    http_status = 404

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, **kwargs)


class DocumentNotFoundError(NotFoundError):
    """Document not found in database."""
    error_code = "IDK-201"

    def __init__(self, document_id: str, **kwargs):
        message = f"Document {document_id} not found"
        super().__init__(message, details={"document_id": str(document_id)}, **kwargs)


class InvoiceNotFoundError(NotFoundError):
    """Invoice not found in database."""
    error_code = "IDK-202"

    def __init__(self, invoice_id: str, **kwargs):
        message = f"Invoice {invoice_id} not found"
        super().__init__(message, details={"invoice_id": str(invoice_id)}, **kwargs)


class ClientNotFoundError(NotFoundError):
    """Client not found in database."""
    error_code = "IDK-203"

    def __init__(self, client_id: str, **kwargs):
        message = f"Client {client_id} not found"
        super().__init__(message, details={"client_id": str(client_id)}, **kwargs)


# State Errors (IDK-3XX)
class ConflictError(InvoiceDeskError):
    """Operation conflicts with the current state of an entity."""
    error_code = "IDK-300"
    kind = "conflict"
    http_status = 409

    def __init__(self, message: str = "Operation conflicts with current state", **kwargs):
        super().__init__(message, **kwargs)


class AlreadyCommittedError(ConflictError):
    """Document has already been committed into an invoice."""
    error_code = "IDK-301"

    def __init__(self, document_id: str, **kwargs):
        message = f"Document {document_id} is already committed"
        super().__init__(
            message,
            details={"document_id": str(document_id), "reason": "already-committed"},
            **kwargs,
        )


# Processing Errors (IDK-4XX)
class ExtractionError(InvoiceDeskError):
    """Field extraction from document bytes failed."""
    error_code = "IDK-400"
    kind = "extraction_error"
    http_status = 422

    def __init__(self, reason: str = "Extraction failed", **kwargs):
        self.reason = reason
        super().__init__(reason, **kwargs)


class ExtractionCancelled(ExtractionError):
    """Extraction stopped at a cancellation checkpoint."""
    error_code = "IDK-401"

    def __init__(self, **kwargs):
        super().__init__("cancelled", **kwargs)


# Storage Errors (IDK-5XX)
class StorageError(InvoiceDeskError):
    """Durable blob write or read failed. Retryable by the caller."""
    error_code = "IDK-500"
    kind = "storage_error"
    http_status = 503

    def __init__(self, message: str = "Storage operation failed", **kwargs):
        super().__init__(message, **kwargs)


class CommitError(InvoiceDeskError):
    """Commit transaction failed and was rolled back."""
    error_code = "IDK-600"
    kind = "commit_error"
    http_status = 500

    def __init__(self, message: str = "Failed to commit document", **kwargs):
        super().__init__(message, **kwargs)
