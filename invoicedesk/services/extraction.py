"""
Field extraction from document bytes.

Text comes from pdfplumber for native PDFs and from Tesseract OCR for
images and scanned PDF pages; invoice fields are then parsed out of the
text with labelled patterns. Extraction is CPU-bound and synchronous; the
processing worker runs it in a thread pool and passes a checkpoint
callable that raises when the run has been cancelled.
"""
import io
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import pdfplumber
import structlog
from dateutil import parser as date_parser
from PIL import Image, ImageSequence

from invoicedesk.config import get_settings
from invoicedesk.exceptions import ExtractionError
from invoicedesk.middleware.logging import log_performance
from invoicedesk.validation import parse_decimal

logger = structlog.get_logger(__name__)

Checkpoint = Callable[[], None]

# Pages with less native text than this are treated as scanned
SCANNED_PAGE_MIN_CHARS = 50
OCR_RESOLUTION = 300

MONTHS = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?"
DATE_TOKEN = (
    r"(?:\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}"
    r"|\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"
    rf"|{MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?\s+{MONTHS}\s+\d{{4}})"
)
AMOUNT_TOKEN = r"(?:USD|EUR|GBP|\$|€|£)?\s*(\d{1,3}(?:,\d{3})*(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"


def _noop_checkpoint() -> None:
    return None


@dataclass
class ExtractedText:
    """Plain text recovered from a document."""

    text: str
    page_count: int
    ocr_used: bool = False


class TextExtractor:
    """
    Recovers text from PDF and image bytes.

    Uses pdfplumber for native PDFs and falls back to Tesseract for
    scanned pages and raster images.
    """

    def __init__(self, tesseract_cmd: Optional[str] = None):
        self._tesseract_cmd = tesseract_cmd if tesseract_cmd is not None else get_settings().tesseract_cmd
        self._tesseract_available: Optional[bool] = None

    @property
    def tesseract_available(self) -> bool:
        if self._tesseract_available is None:
            self._tesseract_available = self._check_tesseract()
        return self._tesseract_available

    def _check_tesseract(self) -> bool:
        try:
            import pytesseract

            if self._tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = self._tesseract_cmd
            pytesseract.get_tesseract_version()
            return True
        except Exception as e:
            logger.warning("tesseract_unavailable", error=str(e))
            return False

    def extract(self, data: bytes, file_type: str, checkpoint: Checkpoint = _noop_checkpoint) -> ExtractedText:
        if file_type == "pdf":
            return self._extract_pdf(data, checkpoint)
        return self._extract_image(data, checkpoint)

    def _extract_pdf(self, data: bytes, checkpoint: Checkpoint) -> ExtractedText:
        texts: List[str] = []
        ocr_used = False
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for page_num, page in enumerate(pdf.pages, start=1):
                    checkpoint()
                    page_text = page.extract_text() or ""
                    if len(page_text.strip()) < SCANNED_PAGE_MIN_CHARS and self.tesseract_available:
                        logger.debug("page_appears_scanned", page=page_num)
                        page_text = self._ocr_image(page.to_image(resolution=OCR_RESOLUTION).original)
                        ocr_used = True
                    texts.append(page_text)
                page_count = len(pdf.pages)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Unreadable PDF: {e}") from e

        return ExtractedText(text="\n".join(texts), page_count=page_count, ocr_used=ocr_used)

    def _extract_image(self, data: bytes, checkpoint: Checkpoint) -> ExtractedText:
        if not self.tesseract_available:
            raise ExtractionError("OCR engine unavailable for image documents")

        texts: List[str] = []
        try:
            with Image.open(io.BytesIO(data)) as image:
                # Multi-page TIFFs yield one frame per page
                for frame in ImageSequence.Iterator(image):
                    checkpoint()
                    texts.append(self._ocr_image(frame.convert("RGB")))
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Unreadable image: {e}") from e

        return ExtractedText(text="\n".join(texts), page_count=len(texts), ocr_used=True)

    def _ocr_image(self, image: Image.Image) -> str:
        import pytesseract

        try:
            return pytesseract.image_to_string(image)
        except Exception as e:
            raise ExtractionError(f"OCR failed: {e}") from e


@dataclass
class ParsedLineItem:
    description: str
    quantity: Decimal
    rate: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            "description": self.description,
            "quantity": str(self.quantity),
            "rate": str(self.rate),
        }


@dataclass
class ParsedInvoice:
    """Fields recognised in invoice text."""

    invoice_number: Optional[str] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    client_name: Optional[str] = None
    matter: Optional[str] = None
    subtotal: Optional[Decimal] = None
    total: Optional[Decimal] = None
    line_items: List[ParsedLineItem] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any([self.invoice_number, self.issue_date, self.due_date, self.total, self.line_items])

    def to_fields(self) -> Dict[str, Any]:
        """JSON-safe mapping stored on the document."""
        fields: Dict[str, Any] = {
            "invoice_number": self.invoice_number,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "client_name": self.client_name,
            "matter": self.matter,
            "subtotal": str(self.subtotal) if self.subtotal is not None else None,
            "total": str(self.total) if self.total is not None else None,
            "line_items": [item.to_dict() for item in self.line_items],
        }
        return fields


class InvoiceFieldParser:
    """Parses invoice fields out of extracted text."""

    INVOICE_NUMBER_PATTERNS = [
        re.compile(r"invoice\s*(?:no\.?|number|num|#)?\s*[:#]?\s*([A-Z0-9][A-Z0-9\-/]*\d[A-Z0-9\-/]*)", re.I),
        re.compile(r"\b(INV[-/]?\d[\w\-/]*)\b", re.I),
    ]
    DUE_DATE_PATTERN = re.compile(rf"(?:due\s+date|payment\s+due|due\s+by|due)\s*[:\-]?\s*({DATE_TOKEN})", re.I)
    ISSUE_DATE_PATTERN = re.compile(
        rf"(?:invoice\s+date|issue\s+date|date\s+issued|issued|(?<!due\s)date)\s*[:\-]?\s*({DATE_TOKEN})",
        re.I,
    )
    ANY_DATE_PATTERN = re.compile(DATE_TOKEN, re.I)
    TOTAL_PATTERN = re.compile(
        rf"(?:total\s+due|amount\s+due|balance\s+due|grand\s+total|\btotal)\s*[:\-]?\s*{AMOUNT_TOKEN}",
        re.I,
    )
    SUBTOTAL_PATTERN = re.compile(rf"\bsub-?\s?total\s*[:\-]?\s*{AMOUNT_TOKEN}", re.I)
    CLIENT_PATTERN = re.compile(r"^\s*(?:bill(?:ed)?\s+to|client)\s*[:\-]?\s*(.*)$", re.I | re.M)
    MATTER_PATTERN = re.compile(r"^\s*(?:matter|re|regarding|reference)\s*[:\-]\s*(.+)$", re.I | re.M)
    LINE_ITEM_PATTERN = re.compile(
        r"^\s*(?P<description>[A-Za-z][^\n]*?)\s+(?P<quantity>\d+(?:\.\d+)?)\s+(?:x\s+)?"
        r"[$€£]?(?P<rate>\d{1,3}(?:,\d{3})*\.\d{2}|\d+\.\d{2})\s+"
        r"[$€£]?(?P<amount>\d{1,3}(?:,\d{3})*\.\d{2}|\d+\.\d{2})\s*$",
        re.M,
    )

    def parse(self, text: str) -> ParsedInvoice:
        parsed = ParsedInvoice()
        parsed.invoice_number = self._invoice_number(text)
        parsed.due_date = self._labelled_date(self.DUE_DATE_PATTERN, text)
        parsed.issue_date = self._labelled_date(self.ISSUE_DATE_PATTERN, text) or self._first_other_date(
            text, parsed.due_date
        )
        parsed.subtotal = self._amount(self.SUBTOTAL_PATTERN, text)
        parsed.total = self._total(text)
        parsed.client_name = self._client(text)
        parsed.matter = self._first_group(self.MATTER_PATTERN, text)
        parsed.line_items = self._line_items(text)
        return parsed

    def _invoice_number(self, text: str) -> Optional[str]:
        for pattern in self.INVOICE_NUMBER_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1).upper()
        return None

    @staticmethod
    def _to_date(raw: str) -> Optional[date]:
        raw = re.sub(r"(\d+)(st|nd|rd|th)", r"\1", raw, flags=re.I)
        try:
            return date_parser.parse(raw, dayfirst=False, fuzzy=True).date()
        except (ValueError, OverflowError):
            return None

    def _labelled_date(self, pattern: re.Pattern, text: str) -> Optional[date]:
        for match in pattern.finditer(text):
            parsed = self._to_date(match.group(1))
            if parsed:
                return parsed
        return None

    def _first_other_date(self, text: str, exclude: Optional[date]) -> Optional[date]:
        for match in self.ANY_DATE_PATTERN.finditer(text):
            parsed = self._to_date(match.group(0))
            if parsed and parsed != exclude:
                return parsed
        return None

    @staticmethod
    def _amount(pattern: re.Pattern, text: str) -> Optional[Decimal]:
        match = pattern.search(text)
        return parse_decimal(match.group(1)) if match else None

    def _total(self, text: str) -> Optional[Decimal]:
        # The last "total" on the page is the amount due, earlier ones are often column headers
        amounts = [parse_decimal(m.group(1)) for m in self.TOTAL_PATTERN.finditer(text)]
        amounts = [a for a in amounts if a is not None]
        return amounts[-1] if amounts else None

    def _client(self, text: str) -> Optional[str]:
        match = self.CLIENT_PATTERN.search(text)
        if not match:
            return None
        name = match.group(1).strip()
        if name:
            return name
        # Label on its own line: the name follows on the next non-empty line
        rest = text[match.end():].lstrip("\n")
        next_line = rest.split("\n", 1)[0].strip()
        return next_line or None

    @staticmethod
    def _first_group(pattern: re.Pattern, text: str) -> Optional[str]:
        match = pattern.search(text)
        return match.group(1).strip() if match else None

    def _line_items(self, text: str) -> List[ParsedLineItem]:
        items = []
        for match in self.LINE_ITEM_PATTERN.finditer(text):
            description = match.group("description").strip()
            if re.match(r"(?:sub-?\s?)?total|amount|balance", description, re.I):
                continue
            quantity = parse_decimal(match.group("quantity"))
            rate = parse_decimal(match.group("rate"))
            amount = parse_decimal(match.group("amount"))
            if quantity is None or rate is None or amount is None:
                continue
            # Keep only rows whose arithmetic checks out
            if abs(quantity * rate - amount) > Decimal("0.01"):
                continue
            items.append(ParsedLineItem(description=description, quantity=quantity, rate=rate))
        return items


class DocumentExtractor:
    """Turns document bytes into an extracted-field mapping."""

    def __init__(
        self,
        text_extractor: Optional[TextExtractor] = None,
        parser: Optional[InvoiceFieldParser] = None,
    ):
        self.text_extractor = text_extractor or TextExtractor()
        self.parser = parser or InvoiceFieldParser()

    @log_performance("document_extraction")
    def extract(self, data: bytes, file_type: str, checkpoint: Checkpoint = _noop_checkpoint) -> Dict[str, Any]:
        """
        Extract invoice fields from raw bytes.

        Args:
            data: Document bytes.
            file_type: Canonical type ("pdf", "png", "jpg", "tiff").
            checkpoint: Called between steps; raises to abort a cancelled run.

        Returns:
            JSON-safe field mapping.

        Raises:
            ExtractionError: If no text or no invoice fields could be recovered.
        """
        checkpoint()
        extracted = self.text_extractor.extract(data, file_type, checkpoint)

        checkpoint()
        if not extracted.text.strip():
            raise ExtractionError("No text could be extracted from document")

        parsed = self.parser.parse(extracted.text)
        if parsed.is_empty():
            raise ExtractionError("No invoice fields found in document")

        checkpoint()
        fields = parsed.to_fields()
        fields["page_count"] = extracted.page_count
        fields["ocr_used"] = extracted.ocr_used
        return fields


_extractor_instance: Optional[DocumentExtractor] = None


def get_document_extractor() -> DocumentExtractor:
    """Get singleton DocumentExtractor instance."""
    global _extractor_instance
    if _extractor_instance is None:
        _extractor_instance = DocumentExtractor()
    return _extractor_instance
