"""
Invoice API routes.

Provides endpoints for:
- Searching and listing invoices by derived status
- Creating, updating and deleting draft invoices
- Sending invoices and recording or reversing payments
"""
import uuid
from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from invoicedesk.api.deps import get_today
from invoicedesk.database import get_db
from invoicedesk.schemas.common import ErrorResponse, PageResponse
from invoicedesk.schemas.invoices import InvoicePayload, InvoiceResponse, PaymentRequest
from invoicedesk.services.invoices import InvoiceService
from invoicedesk.services.query import QueryService

logger = structlog.get_logger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid invoice data"},
    404: {"model": ErrorResponse, "description": "Invoice not found"},
    409: {"model": ErrorResponse, "description": "Invoice status does not allow the operation"},
}


@router.get(
    "/invoices",
    response_model=PageResponse[InvoiceResponse],
    responses={400: {"model": ErrorResponse, "description": "Invalid filter"}},
    summary="Search invoices",
    description="Case-insensitive search over invoice number, id, client name and matter.",
)
async def list_invoices(
    search: Optional[str] = Query(None, description="Search term"),
    status_filter: Optional[str] = Query(None, alias="status", description="draft, sent, overdue or paid"),
    page: int = Query(1, description="Page number (1-indexed)"),
    page_size: Optional[int] = Query(None, description="Items per page"),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> PageResponse[InvoiceResponse]:
    result = QueryService(db).list_invoices(
        search=search,
        status=status_filter,
        page=page,
        page_size=page_size,
        today=today,
    )
    return PageResponse[InvoiceResponse](
        items=[InvoiceResponse.from_invoice(view.invoice, today) for view in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


@router.post(
    "/invoices",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Create a draft invoice",
)
async def create_invoice(
    body: InvoicePayload,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> InvoiceResponse:
    invoice = InvoiceService(db).create(body.to_fields())
    return InvoiceResponse.from_invoice(invoice, today)


@router.get(
    "/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    responses=ERROR_RESPONSES,
    summary="Get invoice",
)
async def get_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> InvoiceResponse:
    return InvoiceResponse.from_invoice(InvoiceService(db).get(invoice_id), today)


@router.put(
    "/invoices/{invoice_id}",
    response_model=InvoiceResponse,
    responses=ERROR_RESPONSES,
    summary="Update a draft invoice",
)
async def update_invoice(
    invoice_id: uuid.UUID,
    body: InvoicePayload,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> InvoiceResponse:
    """Only fields present in the body are changed. Sent and paid invoices are read-only."""
    invoice = InvoiceService(db).update(invoice_id, body.to_fields())
    return InvoiceResponse.from_invoice(invoice, today)


@router.delete(
    "/invoices/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
    summary="Delete a draft invoice",
)
async def delete_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> Response:
    InvoiceService(db).delete(invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/invoices/{invoice_id}/send",
    response_model=InvoiceResponse,
    responses=ERROR_RESPONSES,
    summary="Send a draft invoice",
)
async def send_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> InvoiceResponse:
    invoice = InvoiceService(db).send(invoice_id)
    return InvoiceResponse.from_invoice(invoice, today)


@router.post(
    "/invoices/{invoice_id}/payment",
    response_model=InvoiceResponse,
    responses=ERROR_RESPONSES,
    summary="Record payment",
)
async def record_payment(
    invoice_id: uuid.UUID,
    body: Optional[PaymentRequest] = None,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> InvoiceResponse:
    """Mark a sent or overdue invoice as paid."""
    payment_date = body.payment_date if body and body.payment_date else today
    invoice = InvoiceService(db).record_payment(invoice_id, payment_date)
    return InvoiceResponse.from_invoice(invoice, today)


@router.delete(
    "/invoices/{invoice_id}/payment",
    response_model=InvoiceResponse,
    responses=ERROR_RESPONSES,
    summary="Reverse payment",
)
async def reverse_payment(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> InvoiceResponse:
    invoice = InvoiceService(db).reverse_payment(invoice_id)
    return InvoiceResponse.from_invoice(invoice, today)
