"""
Document model for uploaded files and their extraction lifecycle.
"""
import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, BigInteger, Column, DateTime, Enum, String, Text

from invoicedesk.database import Base
from invoicedesk.models.types import UUID, utcnow


class DocumentStatus(str, enum.Enum):
    """Document processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    COMMITTED = "committed"


# Reason recorded when a run is cancelled
CANCELLED_REASON = "cancelled"


class Document(Base):
    """
    SQLAlchemy model for uploaded documents.

    Attributes:
        id: Unique identifier generated at intake.
        filename: Sanitised original filename.
        content_type: Declared MIME type.
        size_bytes: Size of the stored bytes.
        storage_key: Key of the raw bytes in the blob store.
        status: Current lifecycle status.
        extracted_fields: Field mapping produced by extraction (null until processed).
        error_message: Failure reason when status is failed.
        invoice_id: Invoice the document was committed into, if any.
        created_at: Upload timestamp.
        processed_at: Timestamp extraction finished successfully.
        committed_at: Timestamp of commit.
    """

    __tablename__ = "documents"

    id: uuid.UUID = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    filename: str = Column(String(255), nullable=False, index=True)
    content_type: str = Column(String(100), nullable=True)
    size_bytes: int = Column(BigInteger, nullable=False)
    storage_key: str = Column(String(500), nullable=False)
    status: DocumentStatus = Column(
        Enum(DocumentStatus),
        default=DocumentStatus.PENDING,
        nullable=False,
        index=True,
    )
    extracted_fields: Optional[Dict[str, Any]] = Column(JSON, nullable=True)
    error_message: Optional[str] = Column(Text, nullable=True)
    # Plain column: the invoice copies fields and holds no reference back
    invoice_id: Optional[uuid.UUID] = Column(UUID(), nullable=True)
    created_at: datetime = Column(DateTime, default=utcnow, nullable=False, index=True)
    processed_at: Optional[datetime] = Column(DateTime, nullable=True)
    committed_at: Optional[datetime] = Column(DateTime, nullable=True)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""

    def mark_processing(self) -> None:
        self.status = DocumentStatus.PROCESSING
        self.error_message = None

    def mark_processed(self, fields: Dict[str, Any]) -> None:
        self.status = DocumentStatus.PROCESSED
        self.extracted_fields = fields
        self.error_message = None
        self.processed_at = utcnow()

    def mark_failed(self, reason: str) -> None:
        self.status = DocumentStatus.FAILED
        self.error_message = reason

    def reset_for_retry(self) -> None:
        self.status = DocumentStatus.PENDING
        self.error_message = None
        self.extracted_fields = None
        self.processed_at = None

    def mark_committed(self, invoice_id: uuid.UUID) -> None:
        self.status = DocumentStatus.COMMITTED
        self.invoice_id = invoice_id
        self.committed_at = utcnow()

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename='{self.filename}', status={self.status})>"
