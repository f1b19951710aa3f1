"""
Invoice service.

Creates and edits draft invoices, sends them, and applies payment events.
Field validation here is shared with review commits, which feed it the
extracted fields merged with the reviewer's edits.
"""
import time
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from invoicedesk.config import Settings, get_settings
from invoicedesk.exceptions import (
    ClientNotFoundError,
    ConflictError,
    InvoiceNotFoundError,
    ValidationError,
)
from invoicedesk.models.client import Client
from invoicedesk.models.invoice import Invoice, InvoiceStatus, LineItem
from invoicedesk.models.types import utcnow
from invoicedesk.validation import parse_date, parse_decimal

logger = structlog.get_logger(__name__)


def generate_invoice_number() -> str:
    """INV- followed by the last eight digits of the current epoch milliseconds."""
    return f"INV-{str(int(time.time() * 1000))[-8:]}"


@dataclass
class LineItemData:
    description: str
    quantity: Decimal
    rate: Decimal


@dataclass
class InvoiceData:
    """Validated invoice fields; unset attributes are left untouched on update."""

    values: Dict[str, Any] = field(default_factory=dict)

    def __contains__(self, key: str) -> bool:
        return key in self.values

    def __getitem__(self, key: str) -> Any:
        return self.values[key]


class InvoiceService:
    """Business operations on invoices."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def resolve_client(self, client_id: Any = None, client_name: Optional[str] = None) -> Client:
        """
        Find the client by id, or by case-insensitive exact name.

        Raises:
            ClientNotFoundError: If a client id is given but unknown.
            ValidationError: If no client can be determined.
        """
        if client_id:
            try:
                client_uuid = client_id if isinstance(client_id, uuid.UUID) else uuid.UUID(str(client_id))
            except ValueError:
                raise ValidationError(
                    "Invalid client id",
                    errors=[{"field": "client_id", "message": "Invalid UUID format"}],
                )
            client = self.db.get(Client, client_uuid)
            if client is None:
                raise ClientNotFoundError(str(client_uuid))
            return client

        if client_name and client_name.strip():
            client = (
                self.db.query(Client)
                .filter(func.lower(Client.name) == client_name.strip().lower())
                .order_by(Client.created_at)
                .first()
            )
            if client is not None:
                return client
            raise ValidationError(
                "Client could not be resolved",
                errors=[{"field": "client_name", "message": f"No client named '{client_name.strip()}'"}],
            )

        raise ValidationError(
            "Client is required",
            errors=[{"field": "client_id", "message": "Client is required"}],
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_fields(
        self,
        payload: Dict[str, Any],
        existing: Optional[Invoice] = None,
        require_number: bool = False,
    ) -> InvoiceData:
        """
        Validate a create/update payload.

        Accepts both typed API payloads and string-valued extracted fields.
        On create (no existing invoice) missing dates and number get defaults.

        Raises:
            ValidationError: Listing every invalid field.
            ClientNotFoundError: If the client id is unknown.
        """
        errors: List[Dict[str, str]] = []
        values: Dict[str, Any] = {}
        creating = existing is None

        if "invoice_number" in payload or creating:
            number = (payload.get("invoice_number") or "").strip()
            if not number:
                if require_number:
                    errors.append({"field": "invoice_number", "message": "Invoice number is required"})
                elif creating:
                    number = generate_invoice_number()
            if number:
                values["invoice_number"] = number

        if payload.get("client_id") or payload.get("client_name") or creating:
            values["client"] = self.resolve_client(payload.get("client_id"), payload.get("client_name"))

        if "matter" in payload or creating:
            values["matter"] = (payload.get("matter") or "").strip()

        issue_date = existing.issue_date if existing else None
        if "issue_date" in payload or creating:
            raw = payload.get("issue_date")
            if raw in (None, ""):
                issue_date = date.today() if creating else None
                if not creating:
                    errors.append({"field": "issue_date", "message": "Issue date is required"})
            else:
                issue_date = parse_date(raw)
                if issue_date is None:
                    errors.append({"field": "issue_date", "message": "Invalid date"})
            if issue_date:
                values["issue_date"] = issue_date

        due_date = existing.due_date if existing else None
        if "due_date" in payload or creating:
            raw = payload.get("due_date")
            if raw in (None, ""):
                due_date = issue_date + timedelta(days=self.settings.payment_terms_days) if issue_date else None
            else:
                due_date = parse_date(raw)
                if due_date is None:
                    errors.append({"field": "due_date", "message": "Invalid date"})
            if due_date:
                values["due_date"] = due_date

        if issue_date and due_date and due_date < issue_date:
            errors.append({"field": "due_date", "message": "Due date cannot be before issue date"})

        raw_items = payload.get("line_items")
        raw_total = payload.get("total")
        if raw_items:
            values["line_items"] = self._validate_line_items(raw_items, errors)
        elif raw_total not in (None, ""):
            # Extracted documents often carry only a total; bill it as a single line
            amount = parse_decimal(raw_total)
            if amount is None or amount < 0:
                errors.append({"field": "total", "message": "Total must be a non-negative number"})
            else:
                description = (payload.get("matter") or payload.get("description") or "Services").strip()
                values["line_items"] = [LineItemData(description=description, quantity=Decimal("1"), rate=amount)]
        elif raw_items is not None:
            values["line_items"] = self._validate_line_items(raw_items, errors)

        for text_field in ("notes", "terms"):
            if text_field in payload:
                values[text_field] = payload.get(text_field)

        if errors:
            raise ValidationError("Invoice validation failed", errors=errors)
        return InvoiceData(values=values)

    @staticmethod
    def _validate_line_items(raw_items: Any, errors: List[Dict[str, str]]) -> List[LineItemData]:
        if not isinstance(raw_items, list):
            errors.append({"field": "line_items", "message": "Line items must be a list"})
            return []

        items = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                errors.append({"field": f"line_items[{index}]", "message": "Line item must be an object"})
                continue
            quantity = parse_decimal(raw.get("quantity", 1))
            rate = parse_decimal(raw.get("rate"))
            for name, value in (("quantity", quantity), ("rate", rate)):
                if value is None:
                    errors.append({"field": f"line_items[{index}].{name}", "message": "Must be a number"})
                elif value < 0:
                    errors.append({"field": f"line_items[{index}].{name}", "message": "Must be non-negative"})
            if quantity is not None and rate is not None:
                items.append(
                    LineItemData(
                        description=str(raw.get("description") or "").strip(),
                        quantity=quantity,
                        rate=rate,
                    )
                )
        return items

    def _ensure_number_available(self, number: str, exclude_id: Optional[uuid.UUID] = None) -> None:
        query = self.db.query(Invoice.id).filter(Invoice.invoice_number == number)
        if exclude_id is not None:
            query = query.filter(Invoice.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(
                f"Invoice number {number} already exists",
                details={"invoice_number": number},
            )

    def apply(self, invoice: Invoice, data: InvoiceData) -> Invoice:
        """Copy validated values onto an invoice, recomputing totals."""
        if "invoice_number" in data:
            self._ensure_number_available(data["invoice_number"], exclude_id=invoice.id)
            invoice.invoice_number = data["invoice_number"]
        if "client" in data:
            invoice.client = data["client"]
            invoice.client_id = data["client"].id
        for name in ("matter", "issue_date", "due_date", "notes", "terms"):
            if name in data:
                setattr(invoice, name, data[name])
        if "line_items" in data:
            invoice.set_line_items(
                LineItem(description=item.description, quantity=item.quantity, rate=item.rate)
                for item in data["line_items"]
            )
        else:
            invoice.recalculate_totals()
        return invoice

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def build(self, payload: Dict[str, Any], require_number: bool = False) -> Invoice:
        """Validate a payload and add a new draft invoice to the session without committing."""
        data = self.validate_fields(payload, require_number=require_number)
        invoice = Invoice(id=uuid.uuid4(), status=InvoiceStatus.DRAFT, line_items=[])
        self.apply(invoice, data)
        if "terms" not in data and invoice.terms is None:
            invoice.terms = (
                f"Payment is due within {self.settings.payment_terms_days} days of invoice date."
            )
        self.db.add(invoice)
        return invoice

    def create(self, payload: Dict[str, Any]) -> Invoice:
        invoice = self.build(payload)
        self.db.commit()
        self.db.refresh(invoice)
        logger.info("invoice_created", invoice_id=str(invoice.id), invoice_number=invoice.invoice_number)
        return invoice

    def _require_draft(self, invoice: Invoice, action: str) -> None:
        if invoice.status != InvoiceStatus.DRAFT:
            raise ConflictError(
                f"Only draft invoices can be {action}",
                details={"invoice_id": str(invoice.id), "status": invoice.status.value},
            )

    def update_draft(self, invoice: Invoice, payload: Dict[str, Any], require_number: bool = False) -> Invoice:
        """Apply a payload to a draft invoice without committing."""
        self._require_draft(invoice, "edited")
        data = self.validate_fields(payload, existing=invoice, require_number=require_number)
        return self.apply(invoice, data)

    def update(self, invoice_id: uuid.UUID, payload: Dict[str, Any]) -> Invoice:
        invoice = self.update_draft(self.get(invoice_id), payload)
        self.db.commit()
        self.db.refresh(invoice)
        logger.info("invoice_updated", invoice_id=str(invoice.id))
        return invoice

    def delete(self, invoice_id: uuid.UUID) -> None:
        invoice = self.get(invoice_id)
        self._require_draft(invoice, "deleted")
        self.db.delete(invoice)
        self.db.commit()
        logger.info("invoice_deleted", invoice_id=str(invoice_id))

    def send(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = self.get(invoice_id)
        self._require_draft(invoice, "sent")
        if not invoice.line_items:
            raise ValidationError(
                "Invoice has no line items",
                errors=[{"field": "line_items", "message": "At least one line item is required"}],
            )
        invoice.status = InvoiceStatus.SENT
        invoice.sent_at = utcnow()
        self.db.commit()
        self.db.refresh(invoice)
        logger.info("invoice_sent", invoice_id=str(invoice.id), total=str(invoice.total))
        return invoice

    def record_payment(self, invoice_id: uuid.UUID, payment_date: Optional[date] = None) -> Invoice:
        """Mark a sent (possibly overdue) invoice as paid."""
        invoice = self.get(invoice_id)
        if invoice.status != InvoiceStatus.SENT:
            raise ConflictError(
                "Only sent invoices can be paid",
                details={"invoice_id": str(invoice.id), "status": invoice.status.value},
            )
        payment_date = payment_date or date.today()
        if payment_date < invoice.issue_date:
            raise ValidationError(
                "Payment date cannot be before issue date",
                errors=[{"field": "payment_date", "message": "Before issue date"}],
            )
        invoice.status = InvoiceStatus.PAID
        invoice.payment_date = payment_date
        self.db.commit()
        self.db.refresh(invoice)
        logger.info("invoice_paid", invoice_id=str(invoice.id), payment_date=payment_date.isoformat())
        return invoice

    def reverse_payment(self, invoice_id: uuid.UUID) -> Invoice:
        """Manual reversal of a payment: paid goes back to sent."""
        invoice = self.get(invoice_id)
        if invoice.status != InvoiceStatus.PAID:
            raise ConflictError(
                "Only paid invoices can have their payment reversed",
                details={"invoice_id": str(invoice.id), "status": invoice.status.value},
            )
        invoice.status = InvoiceStatus.SENT
        invoice.payment_date = None
        self.db.commit()
        self.db.refresh(invoice)
        logger.info("invoice_payment_reversed", invoice_id=str(invoice.id))
        return invoice
