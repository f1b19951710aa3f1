"""Models package."""
from invoicedesk.models.client import Client
from invoicedesk.models.document import Document, DocumentStatus
from invoicedesk.models.invoice import Invoice, InvoiceStatus, LineItem

__all__ = [
    "Client",
    "Document", "DocumentStatus",
    "Invoice", "InvoiceStatus", "LineItem",
]
