"""
Pydantic schemas for invoice endpoints.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from invoicedesk.models.invoice import Invoice, InvoiceStatus
from invoicedesk.schemas.clients import ClientResponse


class LineItemPayload(BaseModel):
    """A line item as sent by the client."""

    description: str = Field("", max_length=500)
    quantity: Decimal = Field(Decimal("1"), ge=0)
    rate: Decimal = Field(..., ge=0)


class InvoicePayload(BaseModel):
    """
    Request model for creating or updating an invoice.

    Only fields that are sent are applied on update.
    """

    invoice_number: Optional[str] = Field(None, max_length=64)
    client_id: Optional[UUID] = None
    client_name: Optional[str] = None
    matter: Optional[str] = Field(None, max_length=255)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    line_items: Optional[List[LineItemPayload]] = None
    notes: Optional[str] = None
    terms: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class PaymentRequest(BaseModel):
    payment_date: Optional[date] = Field(None, description="Defaults to today")


class LineItemResponse(BaseModel):
    position: int
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    """Response model for an invoice with its derived status."""

    id: UUID
    invoice_number: str
    client: ClientResponse
    matter: str
    issue_date: date
    due_date: date
    subtotal: Decimal
    total: Decimal
    status: InvoiceStatus = Field(..., description="Status as of today; overdue is derived")
    payment_date: Optional[date] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    source_document_id: Optional[UUID] = None
    line_items: List[LineItemResponse] = Field(default_factory=list)
    created_at: datetime
    sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_invoice(cls, invoice: Invoice, today: date) -> "InvoiceResponse":
        response = cls.model_validate(invoice)
        response.status = invoice.status_on(today)
        return response


class CommitResponse(BaseModel):
    """Response model for a review commit."""

    document_id: UUID
    invoice: InvoiceResponse
    created: bool = Field(..., description="False when an existing draft was updated")
