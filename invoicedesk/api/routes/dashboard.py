"""
Dashboard API route.
"""
from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from invoicedesk.api.deps import get_today
from invoicedesk.database import get_db
from invoicedesk.schemas.dashboard import DashboardResponse
from invoicedesk.schemas.invoices import InvoiceResponse
from invoicedesk.services.dashboard import DashboardService

router = APIRouter()


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Dashboard summary",
    description="Invoice totals by derived status and document counts by processing status.",
)
async def get_dashboard(
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
) -> DashboardResponse:
    summary = DashboardService(db).get_summary(today=today)
    summary["recent_invoices"] = [
        InvoiceResponse.from_invoice(view.invoice, today) for view in summary["recent_invoices"]
    ]
    return DashboardResponse(**summary)
