"""
Tests for reviewing and committing processed documents.
"""
import asyncio
import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from invoicedesk.exceptions import (
    AlreadyCommittedError,
    CommitError,
    ConflictError,
    DocumentNotFoundError,
    ValidationError,
)
from invoicedesk.models.document import Document, DocumentStatus
from invoicedesk.models.invoice import Invoice, InvoiceStatus
from invoicedesk.services.invoices import InvoiceService
from invoicedesk.services.review import ReviewService


class TestPendingReview:

    def test_lists_processed_newest_first(self, db_session, make_document, sample_fields):
        older = make_document("older.pdf", status=DocumentStatus.PROCESSED, fields=sample_fields)
        make_document("pending.pdf")
        newer = make_document("newer.pdf", status=DocumentStatus.PROCESSED, fields=sample_fields)

        documents, total = ReviewService(db_session).list_pending_review()

        assert total == 2
        assert {d.id for d in documents} == {older.id, newer.id}
        assert documents[0].created_at >= documents[1].created_at


class TestCommit:
    """Commit writes exactly one invoice per document."""

    @pytest.mark.asyncio
    async def test_commit_creates_draft(self, db_session, make_document, sample_client, sample_fields):
        document = make_document(status=DocumentStatus.PROCESSED, fields=sample_fields)

        result = await ReviewService(db_session).commit(document.id)

        assert result.created is True
        assert result.invoice.invoice_number == "INV-1"
        assert result.invoice.status == InvoiceStatus.DRAFT
        assert result.invoice.total == Decimal("1500.00")
        assert result.invoice.client_id == sample_client.id
        assert result.invoice.source_document_id == document.id
        assert result.document.status == DocumentStatus.COMMITTED
        assert result.document.invoice_id == result.invoice.id
        assert db_session.query(Invoice).count() == 1

    @pytest.mark.asyncio
    async def test_edits_override_extracted(self, db_session, make_document, sample_client, sample_fields):
        document = make_document(status=DocumentStatus.PROCESSED, fields=sample_fields)

        result = await ReviewService(db_session).commit(
            document.id,
            {"invoice_number": "INV-2026-7", "line_items": [{"description": "Drafting", "quantity": "3", "rate": "200"}]},
        )

        assert result.invoice.invoice_number == "INV-2026-7"
        assert result.invoice.total == Decimal("600.00")

    @pytest.mark.asyncio
    async def test_second_commit_is_rejected(self, db_session, make_document, sample_client, sample_fields):
        document = make_document(status=DocumentStatus.PROCESSED, fields=sample_fields)
        service = ReviewService(db_session)
        await service.commit(document.id)

        with pytest.raises(AlreadyCommittedError) as exc_info:
            await service.commit(document.id)

        assert exc_info.value.details["reason"] == "already-committed"
        assert db_session.query(Invoice).count() == 1

    @pytest.mark.asyncio
    async def test_concurrent_commits_write_one_invoice(
        self, db_session, session_factory, make_document, sample_client, sample_fields
    ):
        document = make_document(status=DocumentStatus.PROCESSED, fields=sample_fields)
        first, second = session_factory(), session_factory()
        try:
            results = await asyncio.gather(
                ReviewService(first).commit(document.id),
                ReviewService(second).commit(document.id),
                return_exceptions=True,
            )
        finally:
            first.close()
            second.close()

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyCommittedError)
        assert db_session.query(Invoice).count() == 1

    @pytest.mark.asyncio
    async def test_missing_invoice_number_rejected(self, db_session, make_document, sample_client, sample_fields):
        sample_fields["invoice_number"] = None
        document = make_document(status=DocumentStatus.PROCESSED, fields=sample_fields)

        with pytest.raises(ValidationError):
            await ReviewService(db_session).commit(document.id)

        db_session.expire_all()
        assert db_session.get(Document, document.id).status == DocumentStatus.PROCESSED
        assert db_session.query(Invoice).count() == 0

    @pytest.mark.asyncio
    async def test_unprocessed_document_conflicts(self, db_session, make_document):
        document = make_document(status=DocumentStatus.PENDING)

        with pytest.raises(ConflictError):
            await ReviewService(db_session).commit(document.id)

    @pytest.mark.asyncio
    async def test_unknown_document(self, db_session):
        with pytest.raises(DocumentNotFoundError):
            await ReviewService(db_session).commit(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_update_existing_draft(self, db_session, make_document, sample_client, sample_fields):
        draft = InvoiceService(db_session).create({"client_id": sample_client.id, "invoice_number": "INV-OLD"})
        document = make_document(status=DocumentStatus.PROCESSED, fields=sample_fields)

        result = await ReviewService(db_session).commit(document.id, invoice_id=draft.id)

        assert result.created is False
        assert result.invoice.id == draft.id
        assert result.invoice.invoice_number == "INV-1"
        assert db_session.query(Invoice).count() == 1

    @pytest.mark.asyncio
    async def test_database_failure_rolls_back(self, db_session, make_document, sample_client, sample_fields):
        document = make_document(status=DocumentStatus.PROCESSED, fields=sample_fields)

        with patch.object(db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk I/O"))):
            with pytest.raises(CommitError):
                await ReviewService(db_session).commit(document.id)

        db_session.expire_all()
        assert db_session.get(Document, document.id).status == DocumentStatus.PROCESSED
        assert db_session.query(Invoice).count() == 0
