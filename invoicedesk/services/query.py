"""
Query service for invoice and document listings.

Provides case-insensitive search, status filtering and pagination with a
stable order (newest first, ties broken by id). Invoice status is
reported as derived at query time: overdue is never read from storage.
"""
import math
from dataclasses import dataclass
from datetime import date
from typing import Generic, List, Optional, TypeVar

import structlog
from sqlalchemy import String, and_, cast, func, or_
from sqlalchemy.orm import Query, Session, contains_eager

from invoicedesk.config import Settings, get_settings
from invoicedesk.exceptions import ValidationError
from invoicedesk.models.client import Client
from invoicedesk.models.document import Document, DocumentStatus
from invoicedesk.models.invoice import Invoice, InvoiceStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T")

LIKE_ESCAPE = "\\"


@dataclass
class Page(Generic[T]):
    """One page of results plus the total number of matches."""

    items: List[T]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


@dataclass
class InvoiceView:
    """An invoice together with its status as of the query date."""

    invoice: Invoice
    status: InvoiceStatus


def like_pattern(term: str) -> str:
    """Lower-cased substring LIKE pattern with wildcards escaped."""
    escaped = (
        term.lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def overdue_clause(today: date):
    """SQL condition matching invoices that are derived overdue on ``today``."""
    return and_(
        Invoice.status == InvoiceStatus.SENT,
        Invoice.payment_date.is_(None),
        Invoice.due_date < today,
    )


class QueryService:
    """Read-side listings for the presentation layer."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def _check_paging(self, page: int, page_size: int) -> None:
        errors = []
        if page < 1:
            errors.append({"field": "page", "message": "Page must be at least 1"})
        if page_size < 1 or page_size > self.settings.max_page_size:
            errors.append(
                {"field": "page_size", "message": f"Page size must be between 1 and {self.settings.max_page_size}"}
            )
        if errors:
            raise ValidationError("Invalid pagination", errors=errors)

    @staticmethod
    def _paginate(query: Query, page: int, page_size: int) -> List:
        return query.offset((page - 1) * page_size).limit(page_size).all()

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def invoice_query(self, search: Optional[str] = None, status: Optional[str] = None, today: Optional[date] = None) -> Query:
        today = today or date.today()
        query = (
            self.db.query(Invoice)
            .join(Client, Invoice.client_id == Client.id)
            .options(contains_eager(Invoice.client))
        )

        if search and search.strip():
            pattern = like_pattern(search.strip())
            query = query.filter(
                or_(
                    func.lower(Invoice.invoice_number).like(pattern, escape=LIKE_ESCAPE),
                    func.lower(cast(Invoice.id, String)).like(pattern, escape=LIKE_ESCAPE),
                    func.lower(Client.name).like(pattern, escape=LIKE_ESCAPE),
                    func.lower(Invoice.matter).like(pattern, escape=LIKE_ESCAPE),
                )
            )

        if status:
            try:
                status_enum = InvoiceStatus(status.lower())
            except ValueError:
                raise ValidationError(
                    "Invalid status filter",
                    errors=[{"field": "status", "message": f"Must be one of: {', '.join(s.value for s in InvoiceStatus)}"}],
                )
            if status_enum == InvoiceStatus.OVERDUE:
                query = query.filter(overdue_clause(today))
            elif status_enum == InvoiceStatus.SENT:
                query = query.filter(Invoice.status == InvoiceStatus.SENT, ~overdue_clause(today))
            else:
                query = query.filter(Invoice.status == status_enum)

        return query

    def list_invoices(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        today: Optional[date] = None,
    ) -> Page[InvoiceView]:
        """
        Search invoices by number, id, client name or matter.

        Args:
            search: Case-insensitive substring.
            status: Filter on derived status (draft, sent, overdue, paid).
            page: 1-based page index.
            page_size: Items per page, defaulting to the configured size.
            today: Reference date for the overdue derivation.

        Returns:
            Page of InvoiceView with the total number of matches.
        """
        if page_size is None:
            page_size = self.settings.default_page_size
        self._check_paging(page, page_size)
        today = today or date.today()

        query = self.invoice_query(search, status, today)
        total = query.count()
        invoices = self._paginate(
            query.order_by(Invoice.created_at.desc(), Invoice.id.desc()),
            page,
            page_size,
        )

        logger.debug("invoices_listed", search=search, status=status, page=page, total=total)
        return Page(
            items=[InvoiceView(invoice=inv, status=inv.status_on(today)) for inv in invoices],
            total=total,
            page=page,
            page_size=page_size,
        )

    def get_invoice(self, invoice: Invoice, today: Optional[date] = None) -> InvoiceView:
        return InvoiceView(invoice=invoice, status=invoice.status_on(today or date.today()))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def list_documents(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[Document]:
        """Search documents by filename or id, optionally filtered by status."""
        if page_size is None:
            page_size = self.settings.default_page_size
        self._check_paging(page, page_size)

        query = self.db.query(Document)
        if search and search.strip():
            pattern = like_pattern(search.strip())
            query = query.filter(
                or_(
                    func.lower(Document.filename).like(pattern, escape=LIKE_ESCAPE),
                    func.lower(cast(Document.id, String)).like(pattern, escape=LIKE_ESCAPE),
                )
            )
        if status:
            try:
                query = query.filter(Document.status == DocumentStatus(status.lower()))
            except ValueError:
                raise ValidationError(
                    "Invalid status filter",
                    errors=[{"field": "status", "message": f"Must be one of: {', '.join(s.value for s in DocumentStatus)}"}],
                )

        total = query.count()
        documents = self._paginate(
            query.order_by(Document.created_at.desc(), Document.id.desc()),
            page,
            page_size,
        )
        return Page(items=documents, total=total, page=page, page_size=page_size)
