"""
Shared FastAPI dependencies.

Each can be overridden through ``app.dependency_overrides``.
"""
from datetime import date

from fastapi import Request

from invoicedesk.services.storage import BlobStore, get_blob_store as _get_blob_store
from invoicedesk.services.worker import ProcessingWorker


def get_worker(request: Request) -> ProcessingWorker:
    """Processing worker owned by the running application."""
    return request.app.state.worker


def get_blob_store() -> BlobStore:
    return _get_blob_store()


def get_today() -> date:
    """Reference date for derived invoice status."""
    return date.today()
