"""InvoiceDesk document ingestion and invoicing service."""

__version__ = "1.0.0"
