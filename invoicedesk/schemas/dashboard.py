"""
Pydantic schemas for the dashboard summary.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel

from invoicedesk.schemas.invoices import InvoiceResponse


class AmountSummary(BaseModel):
    total: Decimal
    count: int


class InvoiceTotals(BaseModel):
    paid: AmountSummary
    outstanding: AmountSummary
    overdue: AmountSummary
    draft: AmountSummary


class DashboardResponse(BaseModel):
    """Response model for the dashboard."""

    as_of: date
    invoices: InvoiceTotals
    documents: Dict[str, int]
    recent_invoices: List[InvoiceResponse]
