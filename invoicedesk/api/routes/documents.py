"""
Document API routes.

Provides endpoints for:
- Batch upload of invoice documents
- Processing, cancellation and retry of extraction
- Review listing and commit into invoices
- Upload wizard evaluation
"""
import math
import uuid
from datetime import date
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from sqlalchemy.orm import Session

from invoicedesk.api.deps import get_blob_store, get_today, get_worker
from invoicedesk.database import get_db
from invoicedesk.exceptions import DocumentNotFoundError, ValidationError
from invoicedesk.middleware.rate_limit import upload_rate_limit
from invoicedesk.models.document import Document
from invoicedesk.schemas.common import ErrorResponse, PageResponse
from invoicedesk.schemas.documents import (
    CommitRequest,
    DocumentResponse,
    ProcessRequest,
    ProcessResponse,
    ProcessResult,
    RejectedFile,
    UploadResponse,
    WizardRequest,
    WizardResponse,
)
from invoicedesk.schemas.invoices import CommitResponse, InvoiceResponse
from invoicedesk.services.intake import IntakeService, Rejection, UploadedFile
from invoicedesk.services.query import QueryService
from invoicedesk.services.review import ReviewService
from invoicedesk.services.storage import BlobStore
from invoicedesk.services.wizard import UploadWizard
from invoicedesk.services.worker import ProcessingWorker

logger = structlog.get_logger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Document not found"},
    409: {"model": ErrorResponse, "description": "Document state does not allow the operation"},
}


def _spooled_size(file: UploadFile) -> int:
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)
    return size


def _page_response(page) -> PageResponse[DocumentResponse]:
    return PageResponse[DocumentResponse](
        items=[DocumentResponse.model_validate(d) for d in page.items],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
        pages=page.pages,
    )


@router.get(
    "/documents",
    response_model=PageResponse[DocumentResponse],
    summary="List documents",
)
async def list_documents(
    search: Optional[str] = Query(None, description="Filename or id substring"),
    status_filter: Optional[str] = Query(None, alias="status", description="Processing status"),
    page: int = Query(1, description="Page number (1-indexed)"),
    page_size: Optional[int] = Query(None, description="Items per page"),
    db: Session = Depends(get_db),
) -> PageResponse[DocumentResponse]:
    result = QueryService(db).list_documents(search=search, status=status_filter, page=page, page_size=page_size)
    return _page_response(result)


@router.get(
    "/documents/review",
    response_model=PageResponse[DocumentResponse],
    summary="List documents awaiting review",
)
async def list_pending_review(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> PageResponse[DocumentResponse]:
    """Processed documents that have not been committed yet, newest first."""
    documents, total = ReviewService(db).list_pending_review(page=page, page_size=page_size)
    return PageResponse[DocumentResponse](
        items=[DocumentResponse.model_validate(d) for d in documents],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size),
    )


@router.post(
    "/documents/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "No files, or no file accepted"},
        413: {"model": ErrorResponse, "description": "File too large"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        503: {"model": ErrorResponse, "description": "Storage unavailable"},
    },
    summary="Upload invoice documents",
    description="Upload PDF or image files. Each file is accepted or rejected on its own.",
)
@upload_rate_limit()
async def upload_documents(
    request: Request,
    files: List[UploadFile] = File(..., description="Files to upload"),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> UploadResponse:
    """
    Register uploaded files as pending documents.

    Rejected files are reported with the reason and never stored. Type and
    size are checked before a file is read. A batch in which nothing is
    accepted fails with the first rejection.
    """
    intake = IntakeService(db, blob_store)
    uploads = []
    rejected = []
    for file in files:
        filename = file.filename or ""
        try:
            intake.check(filename, _spooled_size(file))
        except ValidationError as e:
            logger.info("upload_rejected", filename=filename, reason=e.message)
            rejected.append(Rejection(filename=filename, error=e))
            continue
        data = await file.read()
        uploads.append(UploadedFile(filename=filename, content_type=file.content_type, data=data))

    result = intake.accept_batch(uploads)
    result.rejected = rejected + result.rejected
    if not result.accepted and result.rejected:
        raise result.rejected[0].error

    logger.info(
        "upload_batch_completed",
        accepted=len(result.accepted),
        rejected=len(result.rejected),
    )
    return UploadResponse(
        accepted=[DocumentResponse.model_validate(d) for d in result.accepted],
        rejected=[RejectedFile(filename=r.filename, error=r.error.to_dict()) for r in result.rejected],
    )


@router.post(
    "/documents/process",
    response_model=ProcessResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=ERROR_RESPONSES,
    summary="Request processing of documents",
)
async def process_documents(
    body: ProcessRequest,
    db: Session = Depends(get_db),
    worker: ProcessingWorker = Depends(get_worker),
) -> ProcessResponse:
    """Schedule pending documents; requests for queued or finished ones are no-ops."""
    outcomes = await worker.request_processing(db, body.document_ids)
    return ProcessResponse(
        results=[
            ProcessResult(document=DocumentResponse.model_validate(o.document), scheduled=o.scheduled)
            for o in outcomes
        ]
    )


@router.post(
    "/documents/wizard",
    response_model=WizardResponse,
    responses=ERROR_RESPONSES,
    summary="Evaluate the upload wizard",
)
async def evaluate_wizard(
    body: WizardRequest,
    db: Session = Depends(get_db),
) -> WizardResponse:
    state = UploadWizard(db).evaluate(body.step, body.document_ids, body.action)
    return WizardResponse.model_validate(state)


@router.get(
    "/documents/{document_id}",
    response_model=DocumentResponse,
    responses=ERROR_RESPONSES,
    summary="Get document",
)
async def get_document(
    document_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> DocumentResponse:
    document = db.get(Document, document_id)
    if document is None:
        raise DocumentNotFoundError(str(document_id))
    return DocumentResponse.model_validate(document)


@router.post(
    "/documents/{document_id}/process",
    response_model=ProcessResult,
    status_code=status.HTTP_202_ACCEPTED,
    responses=ERROR_RESPONSES,
    summary="Request processing of one document",
)
async def process_document(
    document_id: uuid.UUID,
    db: Session = Depends(get_db),
    worker: ProcessingWorker = Depends(get_worker),
) -> ProcessResult:
    [outcome] = await worker.request_processing(db, [document_id])
    return ProcessResult(document=DocumentResponse.model_validate(outcome.document), scheduled=outcome.scheduled)


@router.post(
    "/documents/{document_id}/cancel",
    response_model=DocumentResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel processing",
)
async def cancel_document(
    document_id: uuid.UUID,
    db: Session = Depends(get_db),
    worker: ProcessingWorker = Depends(get_worker),
) -> DocumentResponse:
    """A running extraction stops at its next checkpoint and the document is failed as cancelled."""
    return DocumentResponse.model_validate(worker.cancel(db, document_id))


@router.post(
    "/documents/{document_id}/retry",
    response_model=DocumentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=ERROR_RESPONSES,
    summary="Retry a failed document",
)
async def retry_document(
    document_id: uuid.UUID,
    db: Session = Depends(get_db),
    worker: ProcessingWorker = Depends(get_worker),
) -> DocumentResponse:
    document = await worker.retry(db, document_id)
    return DocumentResponse.model_validate(document)


@router.post(
    "/documents/{document_id}/commit",
    response_model=CommitResponse,
    responses={
        **ERROR_RESPONSES,
        500: {"model": ErrorResponse, "description": "Commit failed; nothing was changed"},
    },
    summary="Commit a reviewed document into an invoice",
)
async def commit_document(
    document_id: uuid.UUID,
    body: Optional[CommitRequest] = None,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> CommitResponse:
    """
    Create a draft invoice (or update an existing draft) from a processed document.

    A document is committed at most once; later attempts return 409.
    """
    body = body or CommitRequest()
    result = await ReviewService(db).commit(document_id, body.fields, body.invoice_id)
    return CommitResponse(
        document_id=result.document.id,
        invoice=InvoiceResponse.from_invoice(result.invoice, today),
        created=result.created,
    )
