"""
Tests for invoice creation, editing and payment transitions.
"""
import re
from datetime import date, timedelta
from decimal import Decimal

import pytest

from invoicedesk.exceptions import (
    ClientNotFoundError,
    ConflictError,
    InvoiceNotFoundError,
    ValidationError,
)
from invoicedesk.models.invoice import Invoice, InvoiceStatus
from invoicedesk.services.invoices import InvoiceService, generate_invoice_number


@pytest.fixture
def service(db_session) -> InvoiceService:
    return InvoiceService(db_session)


def _payload(client, **overrides):
    payload = {
        "client_id": client.id,
        "matter": "Estate planning",
        "issue_date": date(2026, 10, 1),
        "due_date": date(2026, 10, 31),
        "line_items": [
            {"description": "Consultation", "quantity": Decimal("2"), "rate": Decimal("250.00")},
            {"description": "Filing fee", "quantity": Decimal("1"), "rate": Decimal("75.50")},
        ],
    }
    payload.update(overrides)
    return payload


class TestCreate:

    def test_create_computes_totals(self, service, sample_client):
        invoice = service.create(_payload(sample_client, invoice_number="INV-100"))

        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.subtotal == Decimal("575.50")
        assert invoice.total == Decimal("575.50")
        assert [item.description for item in invoice.line_items] == ["Consultation", "Filing fee"]
        assert invoice.client.name == "Johnson & Partners"

    def test_fractional_quantities_total(self, service, sample_client):
        invoice = service.create(
            _payload(
                sample_client,
                line_items=[{"description": "Research", "quantity": "0.3333", "rate": "1.00"}] * 3,
            )
        )

        assert invoice.total == Decimal("1.00")

    def test_defaults(self, service, sample_client):
        invoice = service.create({"client_id": sample_client.id})

        assert re.fullmatch(r"INV-\d{8}", invoice.invoice_number)
        assert invoice.issue_date == date.today()
        assert invoice.due_date == date.today() + timedelta(days=30)
        assert invoice.total == Decimal("0.00")
        assert "30 days" in invoice.terms

    def test_generate_invoice_number_format(self):
        assert re.fullmatch(r"INV-\d{8}", generate_invoice_number())

    def test_client_resolved_by_name(self, service, sample_client):
        invoice = service.create({"client_name": "  johnson & PARTNERS ", "total": "$1,200.00"})

        assert invoice.client_id == sample_client.id
        assert invoice.total == Decimal("1200.00")
        assert len(invoice.line_items) == 1

    def test_unknown_client_name(self, service, sample_client):
        with pytest.raises(ValidationError) as exc_info:
            service.create({"client_name": "Nobody Inc"})

        assert exc_info.value.details["errors"][0]["field"] == "client_name"

    def test_unknown_client_id(self, service, sample_client):
        import uuid

        with pytest.raises(ClientNotFoundError):
            service.create({"client_id": uuid.uuid4()})

    def test_due_before_issue(self, service, sample_client):
        with pytest.raises(ValidationError) as exc_info:
            service.create(_payload(sample_client, due_date=date(2026, 9, 1)))

        fields = [e["field"] for e in exc_info.value.details["errors"]]
        assert fields == ["due_date"]

    def test_invalid_values_are_collected(self, service, sample_client):
        with pytest.raises(ValidationError) as exc_info:
            service.create(_payload(
                sample_client,
                issue_date="someday",
                line_items=[{"description": "x", "quantity": "-1", "rate": "abc"}],
            ))

        fields = {e["field"] for e in exc_info.value.details["errors"]}
        assert fields == {"issue_date", "line_items[0].quantity", "line_items[0].rate"}

    def test_duplicate_number_conflicts(self, service, sample_client):
        service.create(_payload(sample_client, invoice_number="INV-1"))

        with pytest.raises(ConflictError):
            service.create(_payload(sample_client, invoice_number="INV-1"))


class TestDraftEditing:
    """Only drafts may be edited or deleted."""

    def test_update_draft(self, service, sample_client):
        invoice = service.create(_payload(sample_client))

        updated = service.update(invoice.id, {"line_items": [{"description": "Flat fee", "rate": "900"}]})

        assert updated.total == Decimal("900.00")
        assert updated.matter == "Estate planning"

    def test_update_sent_conflicts(self, service, sample_client):
        invoice = service.create(_payload(sample_client))
        service.send(invoice.id)

        with pytest.raises(ConflictError):
            service.update(invoice.id, {"matter": "Changed"})

    def test_delete_draft(self, service, db_session, sample_client):
        invoice = service.create(_payload(sample_client))

        service.delete(invoice.id)

        assert db_session.query(Invoice).count() == 0
        with pytest.raises(InvoiceNotFoundError):
            service.get(invoice.id)

    def test_delete_paid_conflicts(self, service, sample_client):
        invoice = service.create(_payload(sample_client))
        service.send(invoice.id)
        service.record_payment(invoice.id, date(2026, 10, 5))

        with pytest.raises(ConflictError):
            service.delete(invoice.id)


class TestTransitions:

    def test_send_requires_line_items(self, service, sample_client):
        invoice = service.create({"client_id": sample_client.id})

        with pytest.raises(ValidationError):
            service.send(invoice.id)

    def test_send_and_pay(self, service, sample_client):
        invoice = service.create(_payload(sample_client))

        sent = service.send(invoice.id)
        assert sent.status == InvoiceStatus.SENT
        assert sent.sent_at is not None

        paid = service.record_payment(invoice.id, date(2026, 10, 20))
        assert paid.status == InvoiceStatus.PAID
        assert paid.payment_date == date(2026, 10, 20)

    def test_overdue_invoice_can_be_paid(self, service, sample_client):
        invoice = service.create(_payload(sample_client, issue_date=date(2025, 1, 1), due_date=date(2025, 1, 31)))
        service.send(invoice.id)

        assert service.get(invoice.id).status_on(date(2026, 10, 19)) == InvoiceStatus.OVERDUE
        assert service.record_payment(invoice.id).status == InvoiceStatus.PAID

    def test_payment_before_issue_rejected(self, service, sample_client):
        invoice = service.create(_payload(sample_client))
        service.send(invoice.id)

        with pytest.raises(ValidationError):
            service.record_payment(invoice.id, date(2026, 9, 1))

    def test_pay_draft_conflicts(self, service, sample_client):
        invoice = service.create(_payload(sample_client))

        with pytest.raises(ConflictError):
            service.record_payment(invoice.id)

    def test_reverse_payment(self, service, sample_client):
        invoice = service.create(_payload(sample_client))
        service.send(invoice.id)
        service.record_payment(invoice.id, date(2026, 10, 2))

        reversed_invoice = service.reverse_payment(invoice.id)

        assert reversed_invoice.status == InvoiceStatus.SENT
        assert reversed_invoice.payment_date is None

    def test_reverse_unpaid_conflicts(self, service, sample_client):
        invoice = service.create(_payload(sample_client))
        service.send(invoice.id)

        with pytest.raises(ConflictError):
            service.reverse_payment(invoice.id)
