"""
Unit tests for invoice field parsing and document extraction.
"""
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from invoicedesk.exceptions import ExtractionCancelled, ExtractionError
from invoicedesk.services.extraction import (
    DocumentExtractor,
    ExtractedText,
    InvoiceFieldParser,
)

SAMPLE_TEXT = """ACME LEGAL SERVICES
Invoice Number: INV-2041
Invoice Date: January 15, 2026
Due Date: 02/14/2026
Bill To: Johnson & Partners
Matter: Estate planning

Description Qty Rate Amount
Consultation 2 250.00 500.00
Document review 3 100.00 300.00

Subtotal: $800.00
Total Due: $800.00
"""


@pytest.fixture
def parser() -> InvoiceFieldParser:
    return InvoiceFieldParser()


class TestInvoiceFieldParser:
    """Tests for field recognition in extracted text."""

    def test_parses_labelled_fields(self, parser: InvoiceFieldParser):
        parsed = parser.parse(SAMPLE_TEXT)

        assert parsed.invoice_number == "INV-2041"
        assert parsed.issue_date == date(2026, 1, 15)
        assert parsed.due_date == date(2026, 2, 14)
        assert parsed.client_name == "Johnson & Partners"
        assert parsed.matter == "Estate planning"
        assert parsed.subtotal == Decimal("800.00")
        assert parsed.total == Decimal("800.00")

    def test_line_items_must_add_up(self, parser: InvoiceFieldParser):
        text = "Consultation 2 250.00 500.00\nBroken row 2 250.00 999.00\n"

        items = parser.parse(text).line_items

        assert len(items) == 1
        assert items[0].description == "Consultation"
        assert items[0].quantity == Decimal("2")
        assert items[0].rate == Decimal("250.00")

    def test_last_total_wins(self, parser: InvoiceFieldParser):
        parsed = parser.parse("Total: 10.00\nTotal: 1,250.00")

        assert parsed.total == Decimal("1250.00")

    def test_client_on_next_line(self, parser: InvoiceFieldParser):
        parsed = parser.parse("Bill To:\nSmith Holdings\nTotal: 5.00")

        assert parsed.client_name == "Smith Holdings"

    def test_no_fields(self, parser: InvoiceFieldParser):
        assert parser.parse("Hello there, nothing to see").is_empty()

    def test_to_fields_is_json_safe(self, parser: InvoiceFieldParser):
        fields = parser.parse(SAMPLE_TEXT).to_fields()

        assert fields["issue_date"] == "2026-01-15"
        assert fields["total"] == "800.00"
        assert fields["line_items"][0] == {"description": "Consultation", "quantity": "2", "rate": "250.00"}


class TestDocumentExtractor:
    """Tests for DocumentExtractor with a stubbed text layer."""

    def _extractor(self, text: str) -> DocumentExtractor:
        text_extractor = MagicMock()
        text_extractor.extract.return_value = ExtractedText(text=text, page_count=1)
        return DocumentExtractor(text_extractor=text_extractor)

    def test_extracts_fields(self):
        fields = self._extractor(SAMPLE_TEXT).extract(b"%PDF-1.4", "pdf")

        assert fields["invoice_number"] == "INV-2041"
        assert fields["page_count"] == 1
        assert fields["ocr_used"] is False

    def test_empty_text_fails(self):
        with pytest.raises(ExtractionError) as exc_info:
            self._extractor("   ").extract(b"%PDF-1.4", "pdf")

        assert exc_info.value.reason == "No text could be extracted from document"

    def test_no_invoice_fields_fails(self):
        with pytest.raises(ExtractionError) as exc_info:
            self._extractor("Quarterly newsletter").extract(b"%PDF-1.4", "pdf")

        assert exc_info.value.reason == "No invoice fields found in document"

    def test_checkpoint_aborts(self):
        def checkpoint():
            raise ExtractionCancelled()

        with pytest.raises(ExtractionCancelled):
            self._extractor(SAMPLE_TEXT).extract(b"%PDF-1.4", "pdf", checkpoint)
