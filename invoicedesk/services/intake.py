"""
Upload intake service.

Validates incoming files, writes their bytes to the blob store and
registers each one as a pending Document. Each file is all-or-nothing:
a record only exists once its bytes are durably stored, and a failed
insert removes the stored bytes again.
"""
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invoicedesk.config import Settings, get_settings
from invoicedesk.exceptions import (
    EmptyFileError,
    FileTooLargeError,
    InvalidFileTypeError,
    StorageError,
    ValidationError,
)
from invoicedesk.models.document import Document, DocumentStatus
from invoicedesk.services.storage import BlobStore
from invoicedesk.validation import (
    canonical_file_type,
    detect_file_type,
    file_extension,
    sanitize_filename,
)

logger = structlog.get_logger(__name__)


@dataclass
class UploadedFile:
    """A file blob as received from the client."""

    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class Rejection:
    """A file refused at intake and the reason why."""

    filename: str
    error: ValidationError


@dataclass
class IntakeResult:
    """Outcome of a lenient batch upload."""

    accepted: List[Document] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)


class IntakeService:
    """Registers uploaded files as pending documents."""

    def __init__(self, db: Session, blob_store: BlobStore, settings: Optional[Settings] = None):
        self.db = db
        self.blob_store = blob_store
        self.settings = settings or get_settings()

    def check(self, filename: str, size: int) -> None:
        """
        Check extension, emptiness and size before any bytes are read.

        Raises:
            ValidationError: If the file may not be accepted.
        """
        filename = sanitize_filename(filename)
        allowed = self.settings.allowed_extensions
        if file_extension(filename) not in allowed:
            raise InvalidFileTypeError(filename, allowed)
        if size == 0:
            raise EmptyFileError(filename)
        if size > self.settings.max_upload_size_bytes:
            raise FileTooLargeError(filename, size, self.settings.max_upload_size_bytes)

    def validate(self, upload: UploadedFile) -> None:
        self.check(upload.filename, upload.size)

    def accept(self, upload: UploadedFile) -> Document:
        """
        Validate and store one file, returning its pending Document.

        Raises:
            ValidationError: If the file is rejected (nothing is written).
            StorageError: If bytes or record could not be persisted.
        """
        self.validate(upload)

        filename = sanitize_filename(upload.filename)
        extension = file_extension(filename)
        sniffed = detect_file_type(upload.data)
        if sniffed and sniffed != canonical_file_type(extension):
            logger.warning(
                "upload_content_mismatch",
                filename=filename,
                extension=extension,
                detected=sniffed,
            )

        document_id = uuid.uuid4()
        storage_key = f"{document_id}.{extension}"

        self.blob_store.put(storage_key, upload.data)

        document = Document(
            id=document_id,
            filename=filename,
            content_type=upload.content_type,
            size_bytes=upload.size,
            storage_key=storage_key,
            status=DocumentStatus.PENDING,
        )
        try:
            self.db.add(document)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self.blob_store.delete(storage_key)
            logger.error("document_insert_failed", document_id=str(document_id), error=str(e))
            raise StorageError(
                "Failed to register uploaded document",
                details={"filename": filename, "reason": str(e)},
            ) from e

        self.db.refresh(document)
        logger.info(
            "document_uploaded",
            document_id=str(document_id),
            filename=filename,
            size=upload.size,
        )
        return document

    def accept_all(self, uploads: Iterable[UploadedFile]) -> List[Document]:
        """
        Strict batch: every file is validated before any is stored.

        Raises:
            ValidationError: For the first rejected file; no records are created.
        """
        uploads = list(uploads)
        if not uploads:
            raise ValidationError("No files provided", errors=[{"field": "files", "message": "required"}])
        for upload in uploads:
            self.validate(upload)
        return [self.accept(upload) for upload in uploads]

    def accept_batch(self, uploads: Iterable[UploadedFile]) -> IntakeResult:
        """
        Lenient batch: accepted files are stored, rejected files are reported.

        Storage errors still abort the call.
        """
        result = IntakeResult()
        for upload in uploads:
            try:
                result.accepted.append(self.accept(upload))
            except ValidationError as e:
                logger.info("upload_rejected", filename=upload.filename, reason=e.message)
                result.rejected.append(Rejection(filename=upload.filename, error=e))
        return result
