"""
Unit tests for invoice totals and derived status.
"""
from datetime import date
from decimal import Decimal

from invoicedesk.models.invoice import (
    Invoice,
    InvoiceStatus,
    LineItem,
    derive_status,
    line_total,
    quantize_money,
)

TODAY = date(2026, 10, 19)


class TestDerivedStatus:
    """Overdue is computed from sent invoices and never stored."""

    def test_sent_past_due_is_overdue(self):
        assert derive_status(InvoiceStatus.SENT, date(2026, 10, 18), None, TODAY) == InvoiceStatus.OVERDUE

    def test_sent_due_today_is_not_overdue(self):
        assert derive_status(InvoiceStatus.SENT, TODAY, None, TODAY) == InvoiceStatus.SENT

    def test_paid_is_never_overdue(self):
        status = derive_status(InvoiceStatus.PAID, date(2026, 1, 1), date(2026, 2, 1), TODAY)
        assert status == InvoiceStatus.PAID

    def test_draft_is_never_overdue(self):
        assert derive_status(InvoiceStatus.DRAFT, date(2026, 1, 1), None, TODAY) == InvoiceStatus.DRAFT

    def test_sent_with_payment_date_is_not_overdue(self):
        status = derive_status(InvoiceStatus.SENT, date(2026, 1, 1), date(2026, 1, 5), TODAY)
        assert status == InvoiceStatus.SENT


class TestInvoiceTotals:
    """Stored totals always equal the sum of the line items."""

    def _invoice(self) -> Invoice:
        return Invoice(
            invoice_number="INV-7",
            status=InvoiceStatus.SENT,
            issue_date=date(2026, 9, 1),
            due_date=date(2026, 10, 1),
            line_items=[],
        )

    def test_line_total_rounds_half_up(self):
        assert line_total(Decimal("3"), Decimal("0.335")) == Decimal("1.01")
        assert quantize_money(Decimal("2.005")) == Decimal("2.01")

    def test_set_line_items_recalculates(self):
        invoice = self._invoice()
        invoice.set_line_items([
            LineItem(description="Consultation", quantity=Decimal("2"), rate=Decimal("250.00")),
            LineItem(description="Filing", quantity=Decimal("1.5"), rate=Decimal("100.00")),
        ])

        assert invoice.subtotal == Decimal("650.00")
        assert invoice.total == invoice.subtotal
        assert [item.position for item in invoice.line_items] == [0, 1]

    def test_total_sums_exact_products(self):
        invoice = self._invoice()
        invoice.set_line_items(
            LineItem(description=f"Part {n}", quantity=Decimal("0.3333"), rate=Decimal("1.00")) for n in range(3)
        )

        assert invoice.subtotal == Decimal("1.00")
        assert invoice.total == quantize_money(sum(i.quantity * i.rate for i in invoice.line_items))
        assert sum(i.amount for i in invoice.line_items) == Decimal("0.99")

    def test_add_and_remove_line_items(self):
        invoice = self._invoice()
        invoice.add_line_item(LineItem(description="A", quantity=Decimal("1"), rate=Decimal("10.00")))
        invoice.add_line_item(LineItem(description="B", quantity=Decimal("1"), rate=Decimal("5.00")))
        assert invoice.total == Decimal("15.00")

        invoice.remove_line_item(0)

        assert invoice.total == Decimal("5.00")
        assert invoice.line_items[0].description == "B"
        assert invoice.line_items[0].position == 0

    def test_empty_invoice_totals_zero(self):
        invoice = self._invoice()
        invoice.recalculate_totals()

        assert invoice.total == Decimal("0.00")

    def test_status_on(self):
        invoice = self._invoice()

        assert invoice.status_on(TODAY) == InvoiceStatus.OVERDUE
        assert invoice.status_on(date(2026, 9, 15)) == InvoiceStatus.SENT
