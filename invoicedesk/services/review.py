"""
Review and commit of processed documents.

Processed documents wait here for a reviewer. Committing one validates
the extracted fields merged with the reviewer's edits, writes a draft
invoice (new, or an existing draft) and marks the document committed, all
in one transaction. Commits of the same document are serialized; the
second one observes the document already committed.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invoicedesk.exceptions import (
    AlreadyCommittedError,
    CommitError,
    ConflictError,
    DocumentNotFoundError,
)
from invoicedesk.models.document import Document, DocumentStatus
from invoicedesk.models.invoice import Invoice
from invoicedesk.services.invoices import InvoiceService
from invoicedesk.services.locks import KeyedLocks

logger = structlog.get_logger(__name__)

# Shared by every request so that commits of one document queue behind each other
commit_locks = KeyedLocks()


@dataclass
class CommitResult:
    document: Document
    invoice: Invoice
    created: bool


class ReviewService:
    """Lists documents awaiting review and commits them into invoices."""

    def __init__(self, db: Session, invoices: Optional[InvoiceService] = None):
        self.db = db
        self.invoices = invoices or InvoiceService(db)

    def list_pending_review(self, page: int = 1, page_size: int = 10) -> Tuple[List[Document], int]:
        """Processed documents, newest first, with the total count."""
        query = self.db.query(Document).filter(Document.status == DocumentStatus.PROCESSED)
        total = query.count()
        documents = (
            query.order_by(Document.created_at.desc(), Document.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return documents, total

    async def commit(
        self,
        document_id: uuid.UUID,
        edited_fields: Optional[Dict[str, Any]] = None,
        invoice_id: Optional[uuid.UUID] = None,
    ) -> CommitResult:
        """
        Commit a processed document into an invoice.

        Args:
            document_id: Document to commit.
            edited_fields: Reviewer edits, overriding extracted values.
            invoice_id: Existing draft invoice to update instead of creating one.

        Raises:
            DocumentNotFoundError: If the document is unknown.
            AlreadyCommittedError: If the document was committed before.
            ConflictError: If the document is not processed or the target invoice is not a draft.
            ValidationError: If the merged fields are invalid.
            CommitError: If the transaction fails; nothing is changed.
        """
        async with commit_locks.hold(document_id):
            return self._commit_locked(document_id, edited_fields or {}, invoice_id)

    def _commit_locked(
        self,
        document_id: uuid.UUID,
        edited_fields: Dict[str, Any],
        invoice_id: Optional[uuid.UUID],
    ) -> CommitResult:
        # Another request may have committed while this one waited for the lock
        self.db.expire_all()
        document = self.db.get(Document, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        if document.status == DocumentStatus.COMMITTED:
            raise AlreadyCommittedError(str(document_id))
        if document.status != DocumentStatus.PROCESSED:
            raise ConflictError(
                f"Document {document_id} is {document.status.value}; only processed documents can be committed",
                details={"document_id": str(document_id), "status": document.status.value},
            )

        fields = {**(document.extracted_fields or {}), **edited_fields}
        if not fields.get("matter") and not fields.get("line_items"):
            fields.setdefault("description", document.filename)

        try:
            if invoice_id is not None:
                invoice = self.invoices.update_draft(self.invoices.get(invoice_id), fields, require_number=True)
                created = False
            else:
                invoice = self.invoices.build(fields, require_number=True)
                created = True
            invoice.source_document_id = document.id
            self.db.flush()
            document.mark_committed(invoice.id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("document_commit_failed", document_id=str(document_id), error=str(e))
            raise CommitError(
                f"Failed to commit document {document_id}",
                details={"document_id": str(document_id), "reason": str(e)},
            ) from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(document)
        self.db.refresh(invoice)
        logger.info(
            "document_committed",
            document_id=str(document_id),
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            created=created,
        )
        return CommitResult(document=document, invoice=invoice, created=created)
