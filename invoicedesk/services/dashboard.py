"""
Dashboard summary service.

Aggregates invoice totals by derived status and document counts by
processing status for the landing page.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from invoicedesk.models.document import Document, DocumentStatus
from invoicedesk.models.invoice import Invoice, InvoiceStatus, quantize_money
from invoicedesk.services.query import QueryService, overdue_clause

logger = structlog.get_logger(__name__)

RECENT_INVOICES = 5


class DashboardService:
    """Builds the dashboard summary."""

    def __init__(self, db: Session):
        self.db = db

    def _aggregate(self, *criteria) -> Dict[str, Any]:
        total, count = self.db.query(
            func.coalesce(func.sum(Invoice.total), 0),
            func.count(Invoice.id),
        ).filter(*criteria).one()
        return {"total": quantize_money(Decimal(str(total))), "count": count or 0}

    def get_summary(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Summary of invoice totals and document counts.

        Outstanding covers every sent, unpaid invoice; overdue is the subset
        of those past their due date on ``today``.
        """
        today = today or date.today()

        paid = self._aggregate(Invoice.status == InvoiceStatus.PAID)
        outstanding = self._aggregate(Invoice.status == InvoiceStatus.SENT)
        overdue = self._aggregate(overdue_clause(today))
        drafts = self._aggregate(Invoice.status == InvoiceStatus.DRAFT)

        by_status = dict(
            self.db.query(Document.status, func.count(Document.id))
            .group_by(Document.status)
            .all()
        )
        documents = {s.value: by_status.get(s, 0) for s in DocumentStatus}
        documents["awaiting_review"] = documents[DocumentStatus.PROCESSED.value]

        recent = QueryService(self.db).list_invoices(page=1, page_size=RECENT_INVOICES, today=today)

        return {
            "as_of": today,
            "invoices": {
                "paid": paid,
                "outstanding": outstanding,
                "overdue": overdue,
                "draft": drafts,
            },
            "documents": documents,
            "recent_invoices": recent.items,
        }
