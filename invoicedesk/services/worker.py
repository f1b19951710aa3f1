"""
Processing worker for uploaded documents.

Runs extraction as a background task pool with bounded parallelism.

Per document the states move pending -> processing -> processed | failed.
A processing request for a document that is already queued, processing
or processed is a no-op. At most one run per document is in flight;
independent documents run concurrently up to the configured worker
count. Failures are recorded on the document, never raised to the
caller that requested processing.
"""
import asyncio
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import structlog
from sqlalchemy.orm import Session

from invoicedesk.exceptions import (
    ConflictError,
    DocumentNotFoundError,
    ExtractionCancelled,
    ExtractionError,
    StorageError,
)
from invoicedesk.models.document import CANCELLED_REASON, Document, DocumentStatus
from invoicedesk.services.extraction import DocumentExtractor
from invoicedesk.services.locks import KeyedLocks
from invoicedesk.services.storage import BlobStore
from invoicedesk.validation import canonical_file_type, detect_file_type

logger = structlog.get_logger(__name__)

INTERRUPTED_REASON = "interrupted"


@dataclass
class ProcessingOutcome:
    """What a processing request did for one document."""

    document: Document
    scheduled: bool


class ProcessingWorker:
    """
    Background extraction pool.

    Features:
    - Bounded parallelism via a semaphore sized to the worker count
    - Per-document serialization through keyed locks
    - Cooperative cancellation checked between extraction steps
    - Error isolation (one failed document doesn't affect the others)
    """

    DEFAULT_WORKERS = 4

    def __init__(
        self,
        session_factory: Callable[[], Session],
        blob_store: BlobStore,
        extractor: DocumentExtractor,
        max_workers: int = DEFAULT_WORKERS,
    ):
        self._session_factory = session_factory
        self._blob_store = blob_store
        self._extractor = extractor
        self._max_workers = max_workers
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._locks = KeyedLocks()
        self._tasks: Dict[uuid.UUID, asyncio.Task] = {}
        self._cancel_flags: Dict[uuid.UUID, threading.Event] = {}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="extract")

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_workers)
        return self._semaphore

    @staticmethod
    def _load(db: Session, document_id: uuid.UUID) -> Document:
        # Runs update rows from their own sessions; read the current state
        document = db.get(Document, document_id, populate_existing=True)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    def is_in_flight(self, document_id: uuid.UUID) -> bool:
        return document_id in self._tasks

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request_processing(self, db: Session, document_ids: Iterable[uuid.UUID]) -> List[ProcessingOutcome]:
        """
        Schedule pending documents for extraction.

        Every id is checked before anything is scheduled, so a batch with an
        unknown or ineligible document schedules nothing.

        Raises:
            DocumentNotFoundError: If an id is unknown.
            ConflictError: If a document is failed (retry first) or committed.
        """
        documents = []
        for document_id in dict.fromkeys(document_ids):
            document = self._load(db, document_id)
            if document.status == DocumentStatus.COMMITTED:
                raise ConflictError(
                    f"Document {document_id} is committed and cannot be processed",
                    details={"document_id": str(document_id), "status": document.status.value},
                )
            if document.status == DocumentStatus.FAILED:
                raise ConflictError(
                    f"Document {document_id} failed; retry it before processing again",
                    details={
                        "document_id": str(document_id),
                        "status": document.status.value,
                        "reason": document.error_message,
                    },
                )
            documents.append(document)

        outcomes = []
        for document in documents:
            scheduled = document.status == DocumentStatus.PENDING and not self.is_in_flight(document.id)
            if scheduled:
                self._schedule(document.id)
            outcomes.append(ProcessingOutcome(document=document, scheduled=scheduled))

        logger.info(
            "processing_requested",
            requested=len(outcomes),
            scheduled=sum(1 for o in outcomes if o.scheduled),
        )
        return outcomes

    async def retry(self, db: Session, document_id: uuid.UUID, schedule: bool = True) -> Document:
        """
        Reset a failed document to pending and optionally schedule it again.

        Raises:
            DocumentNotFoundError: If the id is unknown.
            ConflictError: If the document is not failed.
        """
        document = self._load(db, document_id)
        if document.status != DocumentStatus.FAILED:
            raise ConflictError(
                "Only failed documents can be retried",
                details={"document_id": str(document_id), "status": document.status.value},
            )

        document.reset_for_retry()
        db.commit()
        logger.info("document_retry", document_id=str(document_id))

        if schedule and not self.is_in_flight(document_id):
            self._schedule(document_id)
        db.refresh(document)
        return document

    def cancel(self, db: Session, document_id: uuid.UUID) -> Document:
        """
        Cancel a pending or running extraction.

        A queued run is dropped and the document failed immediately; a
        running one is flagged and stops at its next checkpoint. Cancelling
        an already failed document is a no-op.

        Raises:
            DocumentNotFoundError: If the id is unknown.
            ConflictError: If the document is processed or committed.
        """
        document = self._load(db, document_id)
        if document.status in (DocumentStatus.PROCESSED, DocumentStatus.COMMITTED):
            raise ConflictError(
                f"Document {document_id} is {document.status.value} and cannot be cancelled",
                details={"document_id": str(document_id), "status": document.status.value},
            )
        if document.status == DocumentStatus.FAILED:
            return document

        flag = self._cancel_flags.get(document_id)
        if flag is not None:
            flag.set()

        if document.status == DocumentStatus.PENDING:
            task = self._tasks.pop(document_id, None)
            self._cancel_flags.pop(document_id, None)
            if task is not None:
                task.cancel()
            document.mark_failed(CANCELLED_REASON)
            db.commit()
        elif flag is None:
            # Processing with no run behind it: left over from a previous process
            document.mark_failed(CANCELLED_REASON)
            db.commit()

        logger.info("document_cancel_requested", document_id=str(document_id), status=document.status.value)
        db.refresh(document)
        return document

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _schedule(self, document_id: uuid.UUID) -> None:
        flag = threading.Event()
        self._cancel_flags[document_id] = flag
        task = asyncio.get_running_loop().create_task(self._run(document_id, flag))
        self._tasks[document_id] = task

    async def _run(self, document_id: uuid.UUID, cancel_flag: threading.Event) -> None:
        current = asyncio.current_task()
        try:
            async with self._get_semaphore():
                async with self._locks.hold(document_id):
                    await self._process(document_id, cancel_flag)
        except asyncio.CancelledError:
            self._record_failure(document_id, CANCELLED_REASON, only_if=DocumentStatus.PROCESSING)
            raise
        finally:
            if self._tasks.get(document_id) is current:
                del self._tasks[document_id]
                self._cancel_flags.pop(document_id, None)

    async def _process(self, document_id: uuid.UUID, cancel_flag: threading.Event) -> None:
        if cancel_flag.is_set():
            return

        with self._session_factory() as db:
            document = db.get(Document, document_id)
            if document is None or document.status != DocumentStatus.PENDING:
                return
            document.mark_processing()
            db.commit()
            storage_key = document.storage_key
            extension = document.extension

        logger.info("document_processing_started", document_id=str(document_id))

        def checkpoint() -> None:
            if cancel_flag.is_set():
                raise ExtractionCancelled()

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(self._executor, self._blob_store.get, storage_key)
            file_type = detect_file_type(data) or canonical_file_type(extension)
            fields = await loop.run_in_executor(
                self._executor, self._extractor.extract, data, file_type, checkpoint
            )
        except ExtractionError as e:
            self._record_failure(document_id, e.reason)
            return
        except StorageError as e:
            self._record_failure(document_id, e.message)
            return
        except Exception as e:
            logger.exception("document_processing_crashed", document_id=str(document_id))
            self._record_failure(document_id, f"Unexpected extraction error: {e}")
            return

        if cancel_flag.is_set():
            self._record_failure(document_id, CANCELLED_REASON)
            return

        with self._session_factory() as db:
            document = db.get(Document, document_id)
            if document is None or document.status != DocumentStatus.PROCESSING:
                return
            document.mark_processed(fields)
            db.commit()

        logger.info(
            "document_processed",
            document_id=str(document_id),
            invoice_number=fields.get("invoice_number"),
        )

    def _record_failure(
        self,
        document_id: uuid.UUID,
        reason: str,
        only_if: DocumentStatus = DocumentStatus.PROCESSING,
    ) -> None:
        with self._session_factory() as db:
            document = db.get(Document, document_id)
            if document is None or document.status != only_if:
                return
            document.mark_failed(reason)
            db.commit()
        logger.warning("document_processing_failed", document_id=str(document_id), reason=reason)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def recover_interrupted(self) -> int:
        """Fail documents left processing by a previous process."""
        with self._session_factory() as db:
            stale = db.query(Document).filter(Document.status == DocumentStatus.PROCESSING).all()
            for document in stale:
                if not self.is_in_flight(document.id):
                    document.mark_failed(INTERRUPTED_REASON)
            db.commit()
        if stale:
            logger.warning("interrupted_documents_failed", count=len(stale))
        return len(stale)

    async def wait_idle(self) -> None:
        """Wait until every scheduled run has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding work and stop the executor."""
        for flag in self._cancel_flags.values():
            flag.set()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._executor.shutdown(wait=False)
        logger.info("processing_worker_stopped", cancelled=len(tasks))
