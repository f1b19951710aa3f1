"""
Invoice and LineItem models.

An invoice owns an ordered list of line items; its stored subtotal and
total always equal the sum of quantity x rate over those items.
"""
import enum
import uuid
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.ext.orderinglist import ordering_list

from invoicedesk.database import Base
from invoicedesk.models.types import UUID, utcnow

CENTS = Decimal("0.01")


class InvoiceStatus(str, enum.Enum):
    """
    Invoice status.

    OVERDUE is never stored: it is derived from SENT at read time.
    """

    DRAFT = "draft"
    SENT = "sent"
    OVERDUE = "overdue"
    PAID = "paid"


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(quantity: Decimal, rate: Decimal) -> Decimal:
    return quantize_money(Decimal(quantity) * Decimal(rate))


def derive_status(
    status: InvoiceStatus,
    due_date: Optional[date],
    payment_date: Optional[date],
    today: date,
) -> InvoiceStatus:
    """Reported status: a sent, unpaid invoice past its due date is overdue."""
    if status == InvoiceStatus.SENT and payment_date is None and due_date is not None and due_date < today:
        return InvoiceStatus.OVERDUE
    return status


class LineItem(Base):
    """A billable line. Has no identity outside its invoice."""

    __tablename__ = "invoice_line_items"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id: uuid.UUID = Column(
        UUID(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: int = Column(Integer, nullable=False, default=0)
    description: str = Column(String(500), nullable=False, default="")
    quantity: Decimal = Column(Numeric(precision=12, scale=4), nullable=False, default=Decimal("1"))
    rate: Decimal = Column(Numeric(precision=14, scale=2), nullable=False, default=Decimal("0"))

    invoice = relationship("Invoice", back_populates="line_items")

    @property
    def amount(self) -> Decimal:
        return line_total(self.quantity or Decimal("0"), self.rate or Decimal("0"))

    def __repr__(self) -> str:
        return f"<LineItem(position={self.position}, quantity={self.quantity}, rate={self.rate})>"


class Invoice(Base):
    """
    SQLAlchemy model for invoices.

    Attributes:
        id: Unique identifier (UUID).
        invoice_number: Human-facing number, e.g. INV-20250101.
        client_id: Billed client.
        matter: Matter description the work relates to.
        issue_date: Date of issue.
        due_date: Payment due date.
        subtotal: Sum of quantity x rate over the lines, rounded to cents.
        total: Amount due (equal to subtotal; no tax lines).
        status: Stored status (draft, sent or paid).
        payment_date: Date payment was received.
        source_document_id: Document the invoice was committed from, if any.
    """

    __tablename__ = "invoices"

    id: uuid.UUID = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    invoice_number: str = Column(String(64), nullable=False, unique=True, index=True)
    client_id: uuid.UUID = Column(UUID(), ForeignKey("clients.id"), nullable=False, index=True)
    matter: str = Column(String(255), nullable=False, default="")
    issue_date: date = Column(Date, nullable=False)
    due_date: date = Column(Date, nullable=False)
    subtotal: Decimal = Column(Numeric(precision=14, scale=2), nullable=False, default=Decimal("0.00"))
    total: Decimal = Column(Numeric(precision=14, scale=2), nullable=False, default=Decimal("0.00"))
    status: InvoiceStatus = Column(
        Enum(InvoiceStatus),
        default=InvoiceStatus.DRAFT,
        nullable=False,
        index=True,
    )
    payment_date: Optional[date] = Column(Date, nullable=True)
    notes: Optional[str] = Column(Text, nullable=True)
    terms: Optional[str] = Column(Text, nullable=True)
    source_document_id: Optional[uuid.UUID] = Column(UUID(), nullable=True)
    created_at: datetime = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    sent_at: Optional[datetime] = Column(DateTime, nullable=True)

    client = relationship("Client", back_populates="invoices", lazy="joined")
    line_items = relationship(
        "LineItem",
        back_populates="invoice",
        order_by="LineItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    def set_line_items(self, items: Iterable[LineItem]) -> None:
        """Replace the line items and recompute totals."""
        self.line_items = list(items)
        self.line_items.reorder()
        self.recalculate_totals()

    def add_line_item(self, item: LineItem) -> None:
        self.line_items.append(item)
        self.recalculate_totals()

    def remove_line_item(self, index: int) -> None:
        del self.line_items[index]
        self.line_items.reorder()
        self.recalculate_totals()

    def recalculate_totals(self) -> None:
        # Exact products; only the invoice total is rounded
        subtotal = sum(
            (Decimal(item.quantity or 0) * Decimal(item.rate or 0) for item in self.line_items),
            Decimal("0"),
        )
        self.subtotal = quantize_money(subtotal)
        self.total = self.subtotal

    def status_on(self, today: date) -> InvoiceStatus:
        return derive_status(self.status, self.due_date, self.payment_date, today)

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status={self.status})>"
